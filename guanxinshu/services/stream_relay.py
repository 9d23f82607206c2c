"""Relay streamed report text to the HTTP response and release remote files."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Protocol, Sequence

import anyio

from guanxinshu.clients.gemini import RemoteDocument

logger = logging.getLogger(__name__)


class DocumentDeleter(Protocol):
    async def delete_document(self, document: RemoteDocument) -> None:
        ...


async def release_documents(
    client: DocumentDeleter, documents: Sequence[RemoteDocument]
) -> None:
    """Delete every remote document; failures are logged and never raised."""
    for document in documents:
        try:
            await client.delete_document(document)
        except Exception:  # pylint: disable=broad-except
            logger.exception(
                "Failed to delete remote document",
                extra={"document": document.name},
            )


class StreamRelay:
    """Forward each generated fragment as UTF-8 bytes as soon as it arrives.

    Remote documents are released exactly once, whether the stream completes,
    raises midway, or is closed early because the client disconnected.
    """

    def __init__(
        self,
        stream: AsyncIterator[str],
        *,
        documents: Sequence[RemoteDocument],
        client: DocumentDeleter,
    ) -> None:
        self._stream = stream
        self._documents = list(documents)
        self._client = client
        self._released = False

    @property
    def documents(self) -> list[RemoteDocument]:
        return list(self._documents)

    @property
    def released(self) -> bool:
        return self._released

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._relay()

    async def _relay(self) -> AsyncIterator[bytes]:
        try:
            async for text in self._stream:
                if text:
                    yield text.encode("utf-8")
        except Exception:
            logger.exception(
                "Report stream failed",
                extra={"documents": [document.name for document in self._documents]},
            )
            raise
        finally:
            with anyio.CancelScope(shield=True):
                try:
                    aclose = getattr(self._stream, "aclose", None)
                    if aclose is not None:
                        await aclose()
                finally:
                    await self.release()

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await release_documents(self._client, self._documents)
        logger.info(
            "Released remote documents",
            extra={"count": len(self._documents)},
        )


__all__ = ["DocumentDeleter", "StreamRelay", "release_documents"]
