"""
Finalize an upload session: reassemble files, hand them to Gemini and open
the streaming report generation.

Local chunks are removed as soon as the files have been handed to the model
provider, before generation starts. Remote documents are removed after the
stream ends (see ``StreamRelay``) or immediately when finalization fails or
is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol, Sequence

import anyio

from guanxinshu.clients.gemini import RemoteDocument
from guanxinshu.services.analysis_prompt import build_analysis_prompt
from guanxinshu.services.chunk_store import (
    ChunkStore,
    IncompleteUploadError,
    SessionNotFoundError,
)
from guanxinshu.services.stream_relay import StreamRelay, release_documents

logger = logging.getLogger(__name__)


class AnalysisModelClient(Protocol):
    async def upload_document(
        self, *, data: bytes, mime_type: str, display_name: str | None = None
    ) -> RemoteDocument:
        ...

    async def delete_document(self, document: RemoteDocument) -> None:
        ...

    async def open_report_stream(
        self, *, documents: Sequence[RemoteDocument], prompt: str
    ) -> AsyncIterator[str]:
        ...


class AnalysisOrchestrator:
    """Turn an uploaded session into a streaming report."""

    def __init__(self, store: ChunkStore, client: AnalysisModelClient) -> None:
        self._store = store
        self._client = client

    async def start(
        self,
        session_id: str,
        previous_report_content: Optional[str] = None,
    ) -> StreamRelay:
        """Claim the session, upload its files and open one generation stream."""
        if not self._store.exists(session_id):
            raise SessionNotFoundError(session_id)
        self._store.claim(session_id)

        documents: list[RemoteDocument] = []
        try:
            manifests = self._store.list_files(session_id)
            if not manifests:
                raise IncompleteUploadError(
                    f"Upload session '{session_id}' contains no files."
                )
            incomplete = [m for m in manifests if not m.is_complete]
            if incomplete:
                details = "; ".join(
                    f"file {m.file_index} missing chunk(s) "
                    f"{', '.join(str(i) for i in m.missing_chunks)}"
                    for m in incomplete
                )
                raise IncompleteUploadError(
                    f"Upload session '{session_id}' is incomplete: {details}."
                )

            for manifest in manifests:
                payload = await asyncio.to_thread(
                    self._store.read_all, session_id, manifest.file_index
                )
                document = await self._client.upload_document(
                    data=payload,
                    mime_type=manifest.mime_type or "application/pdf",
                    display_name=f"{session_id}-file{manifest.file_index}",
                )
                documents.append(document)

            self._remove_local(session_id)

            prompt = build_analysis_prompt(previous_report_content)
            stream = await self._client.open_report_stream(
                documents=documents, prompt=prompt
            )
        except BaseException as exc:
            context = {"session_id": session_id, "uploaded": len(documents)}
            if isinstance(exc, Exception):
                logger.exception("Analysis finalization failed", extra=context)
            else:
                logger.warning("Analysis finalization cancelled", extra=context)
            with anyio.CancelScope(shield=True):
                self._remove_local(session_id)
                await release_documents(self._client, documents)
            raise

        logger.info(
            "Streaming analysis report",
            extra={
                "session_id": session_id,
                "documents": len(documents),
                "with_history": bool(previous_report_content),
            },
        )
        return StreamRelay(stream, documents=documents, client=self._client)

    def _remove_local(self, session_id: str) -> None:
        try:
            self._store.remove(session_id)
        except OSError:
            logger.exception(
                "Failed to remove local upload session",
                extra={"session_id": session_id},
            )


__all__ = ["AnalysisModelClient", "AnalysisOrchestrator"]
