"""Expose constructed client wrappers."""

from .gemini import GeminiClient, GeminiModelError, RemoteDocument
from .sqlite_store import JournalStore

__all__ = [
    "GeminiClient",
    "GeminiModelError",
    "JournalStore",
    "RemoteDocument",
]
