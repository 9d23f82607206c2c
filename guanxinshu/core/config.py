"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the analysis pipeline and
the operational scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
import os
import tempfile

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


def _default_upload_root() -> Path:
    return Path(tempfile.gettempdir()) / "guanxinshu_uploads"


class GeminiSettings(BaseSettings):
    """Configuration for Gemini model access."""

    model_config = SettingsConfigDict(extra="ignore", protected_namespaces=())

    api_key: str = Field(..., validation_alias="GEMINI_API_KEY")
    model_name: str = Field("gemini-2.5-flash", validation_alias="GEMINI_MODEL_NAME")


class AnalysisSettings(BaseSettings):
    """Settings for the chunked upload and streaming analysis pipeline."""

    model_config = SettingsConfigDict(extra="ignore")

    upload_root: Path = Field(
        default_factory=_default_upload_root,
        validation_alias="ANALYSIS_UPLOAD_DIR",
        description="Directory holding in-flight upload sessions.",
    )
    max_chunk_chars: int = Field(
        4 * 1024 * 1024,
        validation_alias="ANALYSIS_MAX_CHUNK_CHARS",
        description="Largest base64 fragment accepted in a single upload call.",
    )
    session_ttl_seconds: int = Field(
        3600,
        validation_alias="ANALYSIS_SESSION_TTL",
        description="Age after which abandoned upload sessions are pruned.",
    )

    @field_validator("max_chunk_chars", "session_ttl_seconds")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    database_path: str = Field(
        "data/guanxinshu.db",
        validation_alias="JOURNAL_DB_PATH",
        description="SQLite file storing journal entries and saved reports.",
    )
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AnalysisSettings",
    "AppSettings",
    "GeminiSettings",
    "get_settings",
]
