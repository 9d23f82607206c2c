"""Accept one base64 chunk per request and persist it in the chunk store."""

from __future__ import annotations

import logging

from guanxinshu.schemas import ChunkUpload
from guanxinshu.services.chunk_store import (
    ChunkStore,
    ChunkStoreError,
    SessionAlreadyClaimedError,
)

logger = logging.getLogger(__name__)


class ChunkTooLargeError(ChunkStoreError):
    """Raised when a single fragment exceeds the configured size."""


class UploadReceiver:
    """Write chunks and per-file metadata for an upload session."""

    def __init__(
        self,
        store: ChunkStore,
        *,
        max_chunk_chars: int,
        session_ttl_seconds: int,
    ) -> None:
        self._store = store
        self._max_chunk_chars = max_chunk_chars
        self._session_ttl_seconds = session_ttl_seconds

    def receive(self, chunk: ChunkUpload) -> None:
        if len(chunk.data) > self._max_chunk_chars:
            raise ChunkTooLargeError(
                f"Chunk exceeds the {self._max_chunk_chars} character limit."
            )

        is_new_session = not self._store.exists(chunk.session_id)
        if is_new_session:
            # Opportunistic sweep of sessions abandoned by earlier clients.
            self._store.prune(self._session_ttl_seconds)
        elif self._store.is_claimed(chunk.session_id):
            raise SessionAlreadyClaimedError(chunk.session_id)

        self._store.put(
            chunk.session_id, chunk.file_index, chunk.chunk_index, chunk.data
        )
        if chunk.chunk_index == 0:
            self._store.put_metadata(
                chunk.session_id,
                chunk.file_index,
                mime_type=chunk.mime_type,
                chunk_count=chunk.chunk_count,
            )

        logger.debug(
            "Stored upload chunk",
            extra={
                "session_id": chunk.session_id,
                "file_index": chunk.file_index,
                "chunk_index": chunk.chunk_index,
                "chunk_count": chunk.chunk_count,
            },
        )


__all__ = ["ChunkTooLargeError", "UploadReceiver"]
