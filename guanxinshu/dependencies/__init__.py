"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_analysis_orchestrator,
    get_chunk_store,
    get_gemini_client,
    get_journal_service,
    get_journal_store,
    get_upload_receiver,
)
from .config import (
    USER_ID_HEADER,
    SettingsDependency,
    get_app_settings,
    get_current_user_id,
)

__all__ = [
    "SettingsDependency",
    "USER_ID_HEADER",
    "get_analysis_orchestrator",
    "get_app_settings",
    "get_chunk_store",
    "get_current_user_id",
    "get_gemini_client",
    "get_journal_service",
    "get_journal_store",
    "get_upload_receiver",
]
