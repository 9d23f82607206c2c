"""Public schema exports."""

from .analysis import (
    SESSION_ID_PATTERN,
    AnalysisExecuteRequest,
    ChunkUpload,
    ReportCreateRequest,
    SavedReport,
    UploadAck,
)
from .journal import (
    JournalEntry,
    JournalEntryUpdate,
    JournalStats,
    SearchResult,
    TodoItem,
    TodoToggleRequest,
)

__all__ = [
    "SESSION_ID_PATTERN",
    "AnalysisExecuteRequest",
    "ChunkUpload",
    "JournalEntry",
    "JournalEntryUpdate",
    "JournalStats",
    "ReportCreateRequest",
    "SavedReport",
    "SearchResult",
    "TodoItem",
    "TodoToggleRequest",
    "UploadAck",
]
