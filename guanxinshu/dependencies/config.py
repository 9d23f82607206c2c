"""
FastAPI dependency utilities for injecting configuration and the caller identity.
"""

from functools import lru_cache
from http import HTTPStatus
from typing import Optional

from fastapi import Depends, Header, HTTPException

from guanxinshu.core.config import AppSettings, get_settings

USER_ID_HEADER = "X-User-Id"


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
) -> str:
    """Return the opaque user id injected by the upstream identity provider."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Unauthorized: please sign in again.",
        )
    return user_id


SettingsDependency = Depends(get_app_settings)

__all__ = [
    "SettingsDependency",
    "USER_ID_HEADER",
    "get_app_settings",
    "get_current_user_id",
]
