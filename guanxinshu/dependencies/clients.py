"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from guanxinshu.clients import GeminiClient, JournalStore
from guanxinshu.core.config import get_settings
from guanxinshu.services import (
    AnalysisOrchestrator,
    ChunkStore,
    FileSystemChunkStore,
    JournalService,
    UploadReceiver,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_gemini_client() -> GeminiClient:
    """Provide Gemini client instance."""
    settings = _settings()
    return GeminiClient(settings.gemini)


@lru_cache()
def get_journal_store() -> JournalStore:
    """Provide shared SQLite journal store."""
    settings = _settings()
    return JournalStore(settings.database_path)


@lru_cache()
def get_chunk_store() -> ChunkStore:
    """Provide the filesystem store holding in-flight upload sessions."""
    settings = _settings()
    return FileSystemChunkStore(settings.analysis.upload_root)


def get_upload_receiver() -> UploadReceiver:
    """Build an upload receiver bound to the shared chunk store."""
    settings = _settings()
    return UploadReceiver(
        get_chunk_store(),
        max_chunk_chars=settings.analysis.max_chunk_chars,
        session_ttl_seconds=settings.analysis.session_ttl_seconds,
    )


def get_analysis_orchestrator() -> AnalysisOrchestrator:
    """Build an orchestrator using the shared chunk store and Gemini."""
    return AnalysisOrchestrator(get_chunk_store(), get_gemini_client())


def get_journal_service() -> JournalService:
    """Build a journal service over the shared store."""
    return JournalService(get_journal_store())


__all__ = [
    "get_analysis_orchestrator",
    "get_chunk_store",
    "get_gemini_client",
    "get_journal_service",
    "get_journal_store",
    "get_upload_receiver",
]
