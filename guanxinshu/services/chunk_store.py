"""Session-scoped storage for base64 file fragments awaiting analysis.

Uploads arrive one chunk per request and are addressed by
``(session_id, file_index, chunk_index)``. Metadata for a file (declared MIME
type and chunk count) is recorded once, when chunk ``0`` arrives. Reassembly
validates that every declared chunk is present before concatenating the
fragments in index order and decoding the combined base64 text.

Two backends are provided: a directory-per-session store on the local
filesystem for the running service and a dict-backed store for tests.
"""

from __future__ import annotations

import abc
import base64
import binascii
import json
import logging
import re
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

_PART_PATTERN = re.compile(r"^file(?P<file>\d+)\.part(?P<chunk>\d+)$")
_META_PATTERN = re.compile(r"^file(?P<file>\d+)\.meta$")
_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_CLAIM_MARKER = ".claim"


class ChunkStoreError(RuntimeError):
    """Base class for upload session failures."""


class SessionNotFoundError(ChunkStoreError):
    """Raised when a session has no stored chunks (expired, finalized or unknown)."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Upload session '{session_id}' was not found.")
        self.session_id = session_id


class SessionAlreadyClaimedError(ChunkStoreError):
    """Raised when a session is already being finalized by another request."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Upload session '{session_id}' is already being analyzed.")
        self.session_id = session_id


class IncompleteUploadError(ChunkStoreError):
    """Raised when a file is missing metadata or one of its declared chunks."""


class InvalidChunkDataError(ChunkStoreError):
    """Raised when the reassembled text is not valid base64."""


@dataclass(slots=True)
class FileManifest:
    """What is known about one file of a session."""

    file_index: int
    mime_type: Optional[str] = None
    chunk_count: Optional[int] = None
    received: frozenset[int] = field(default_factory=frozenset)

    @property
    def missing_chunks(self) -> List[int]:
        if self.chunk_count is None:
            # Metadata is written with chunk 0, so chunk 0 is what is missing.
            return [0] if 0 not in self.received else []
        return [i for i in range(self.chunk_count) if i not in self.received]

    @property
    def is_complete(self) -> bool:
        return self.chunk_count is not None and not self.missing_chunks


def validate_session_id(session_id: str) -> str:
    """Reject identifiers that are unsafe to use as a directory name."""
    if not _SESSION_ID_PATTERN.match(session_id or ""):
        raise ValueError(f"Invalid upload session id: {session_id!r}")
    return session_id


class ChunkStore(abc.ABC):
    """Storage contract shared by the upload receiver and the orchestrator."""

    @abc.abstractmethod
    def put(self, session_id: str, file_index: int, chunk_index: int, data: str) -> None:
        """Store a fragment, creating the session when needed. Rewrites overwrite."""

    @abc.abstractmethod
    def put_metadata(
        self, session_id: str, file_index: int, *, mime_type: str, chunk_count: int
    ) -> None:
        """Persist the file's declared MIME type and chunk count."""

    @abc.abstractmethod
    def exists(self, session_id: str) -> bool:
        ...

    @abc.abstractmethod
    def list_files(self, session_id: str) -> List[FileManifest]:
        """Return a manifest per file index seen in the session, ordered by index."""

    @abc.abstractmethod
    def remove(self, session_id: str) -> None:
        """Delete everything stored for the session. Missing sessions are ignored."""

    @abc.abstractmethod
    def claim(self, session_id: str) -> None:
        """Atomically mark the session as being finalized."""

    @abc.abstractmethod
    def is_claimed(self, session_id: str) -> bool:
        ...

    @abc.abstractmethod
    def prune(self, max_age_seconds: float) -> int:
        """Remove sessions untouched for longer than ``max_age_seconds``."""

    @abc.abstractmethod
    def _read_chunk(self, session_id: str, file_index: int, chunk_index: int) -> str:
        ...

    def get_manifest(self, session_id: str, file_index: int) -> FileManifest:
        for manifest in self.list_files(session_id):
            if manifest.file_index == file_index:
                return manifest
        raise IncompleteUploadError(
            f"File {file_index} was never uploaded to session '{session_id}'."
        )

    def read_all(self, session_id: str, file_index: int) -> bytes:
        """Reassemble and decode a file, failing fast on incomplete uploads."""
        if not self.exists(session_id):
            raise SessionNotFoundError(session_id)

        manifest = self.get_manifest(session_id, file_index)
        missing = manifest.missing_chunks
        if manifest.chunk_count is None or missing:
            raise IncompleteUploadError(
                f"File {file_index} in session '{session_id}' is incomplete; "
                f"missing chunk(s): {', '.join(str(i) for i in missing)}."
            )

        encoded = "".join(
            self._read_chunk(session_id, file_index, chunk_index)
            for chunk_index in range(manifest.chunk_count)
        )
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidChunkDataError(
                f"File {file_index} in session '{session_id}' is not valid base64."
            ) from exc


class FileSystemChunkStore(ChunkStore):
    """Directory-per-session store rooted under a temp folder."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _session_dir(self, session_id: str) -> Path:
        return self._root / validate_session_id(session_id)

    def put(self, session_id: str, file_index: int, chunk_index: int, data: str) -> None:
        session_dir = self._session_dir(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        part_path = session_dir / f"file{file_index}.part{chunk_index}"
        part_path.write_text(data, encoding="utf-8")

    def put_metadata(
        self, session_id: str, file_index: int, *, mime_type: str, chunk_count: int
    ) -> None:
        session_dir = self._session_dir(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        meta_path = session_dir / f"file{file_index}.meta"
        meta_path.write_text(
            json.dumps({"mimeType": mime_type, "chunkCount": chunk_count}),
            encoding="utf-8",
        )

    def exists(self, session_id: str) -> bool:
        return self._session_dir(session_id).is_dir()

    def list_files(self, session_id: str) -> List[FileManifest]:
        session_dir = self._session_dir(session_id)
        if not session_dir.is_dir():
            raise SessionNotFoundError(session_id)

        manifests: Dict[int, FileManifest] = {}
        received: Dict[int, set[int]] = {}
        for entry in session_dir.iterdir():
            part_match = _PART_PATTERN.match(entry.name)
            if part_match:
                file_index = int(part_match.group("file"))
                received.setdefault(file_index, set()).add(int(part_match.group("chunk")))
                manifests.setdefault(file_index, FileManifest(file_index=file_index))
                continue
            meta_match = _META_PATTERN.match(entry.name)
            if meta_match:
                file_index = int(meta_match.group("file"))
                meta = json.loads(entry.read_text(encoding="utf-8"))
                manifest = manifests.setdefault(file_index, FileManifest(file_index=file_index))
                manifest.mime_type = meta.get("mimeType") or "application/pdf"
                manifest.chunk_count = int(meta["chunkCount"])

        for file_index, manifest in manifests.items():
            manifest.received = frozenset(received.get(file_index, ()))
        return [manifests[index] for index in sorted(manifests)]

    def _read_chunk(self, session_id: str, file_index: int, chunk_index: int) -> str:
        part_path = self._session_dir(session_id) / f"file{file_index}.part{chunk_index}"
        return part_path.read_text(encoding="utf-8")

    def remove(self, session_id: str) -> None:
        shutil.rmtree(self._session_dir(session_id), ignore_errors=True)

    def claim(self, session_id: str) -> None:
        session_dir = self._session_dir(session_id)
        if not session_dir.is_dir():
            raise SessionNotFoundError(session_id)
        try:
            # O_EXCL creation: only one finalize request can win the marker.
            with open(session_dir / _CLAIM_MARKER, "x", encoding="utf-8") as marker:
                marker.write(str(time.time()))
        except FileExistsError as exc:
            raise SessionAlreadyClaimedError(session_id) from exc
        except FileNotFoundError as exc:
            raise SessionNotFoundError(session_id) from exc

    def is_claimed(self, session_id: str) -> bool:
        return (self._session_dir(session_id) / _CLAIM_MARKER).exists()

    def prune(self, max_age_seconds: float) -> int:
        threshold = time.time() - max_age_seconds
        removed = 0
        for session_dir in self._root.iterdir():
            if not session_dir.is_dir():
                continue
            try:
                modified = session_dir.stat().st_mtime
            except FileNotFoundError:
                continue
            if modified < threshold:
                shutil.rmtree(session_dir, ignore_errors=True)
                removed += 1
        if removed:
            logger.info("Pruned expired upload sessions", extra={"count": removed})
        return removed


@dataclass(slots=True)
class _MemorySession:
    chunks: Dict[int, Dict[int, str]] = field(default_factory=dict)
    metadata: Dict[int, tuple[str, int]] = field(default_factory=dict)
    claimed: bool = False
    touched_at: float = field(default_factory=time.monotonic)


class InMemoryChunkStore(ChunkStore):
    """Process-local store used by tests and single-process tooling."""

    def __init__(self) -> None:
        self._sessions: Dict[str, _MemorySession] = {}
        self._lock = threading.Lock()

    def _touch(self, session_id: str) -> _MemorySession:
        session = self._sessions.setdefault(validate_session_id(session_id), _MemorySession())
        session.touched_at = time.monotonic()
        return session

    def put(self, session_id: str, file_index: int, chunk_index: int, data: str) -> None:
        with self._lock:
            session = self._touch(session_id)
            session.chunks.setdefault(file_index, {})[chunk_index] = data

    def put_metadata(
        self, session_id: str, file_index: int, *, mime_type: str, chunk_count: int
    ) -> None:
        with self._lock:
            session = self._touch(session_id)
            session.metadata[file_index] = (mime_type, chunk_count)

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def list_files(self, session_id: str) -> List[FileManifest]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            indices = sorted(set(session.chunks) | set(session.metadata))
            manifests = []
            for file_index in indices:
                mime_type, chunk_count = session.metadata.get(file_index, (None, None))
                manifests.append(
                    FileManifest(
                        file_index=file_index,
                        mime_type=mime_type,
                        chunk_count=chunk_count,
                        received=frozenset(session.chunks.get(file_index, {})),
                    )
                )
            return manifests

    def _read_chunk(self, session_id: str, file_index: int, chunk_index: int) -> str:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return session.chunks[file_index][chunk_index]

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def claim(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.claimed:
                raise SessionAlreadyClaimedError(session_id)
            session.claimed = True

    def is_claimed(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            return bool(session and session.claimed)

    def prune(self, max_age_seconds: float) -> int:
        threshold = time.monotonic() - max_age_seconds
        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if session.touched_at < threshold
            ]
            for session_id in expired:
                del self._sessions[session_id]
        return len(expired)


__all__ = [
    "ChunkStore",
    "ChunkStoreError",
    "FileManifest",
    "FileSystemChunkStore",
    "InMemoryChunkStore",
    "IncompleteUploadError",
    "InvalidChunkDataError",
    "SessionAlreadyClaimedError",
    "SessionNotFoundError",
    "validate_session_id",
]
