"""Service layer exports."""

from .analysis_orchestrator import AnalysisOrchestrator
from .analysis_prompt import build_analysis_prompt
from .chunk_store import (
    ChunkStore,
    ChunkStoreError,
    FileManifest,
    FileSystemChunkStore,
    InMemoryChunkStore,
    IncompleteUploadError,
    InvalidChunkDataError,
    SessionAlreadyClaimedError,
    SessionNotFoundError,
)
from .journal import JournalEntryNotFoundError, JournalService
from .stream_relay import StreamRelay, release_documents
from .upload_receiver import ChunkTooLargeError, UploadReceiver

__all__ = [
    "AnalysisOrchestrator",
    "ChunkStore",
    "ChunkStoreError",
    "ChunkTooLargeError",
    "FileManifest",
    "FileSystemChunkStore",
    "InMemoryChunkStore",
    "IncompleteUploadError",
    "InvalidChunkDataError",
    "JournalEntryNotFoundError",
    "JournalService",
    "SessionAlreadyClaimedError",
    "SessionNotFoundError",
    "StreamRelay",
    "UploadReceiver",
    "build_analysis_prompt",
    "release_documents",
]
