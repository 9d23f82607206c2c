"""
Pydantic models for journal entries and the admin dashboard.
"""

import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class JournalEntry(BaseModel):
    """A single day's reflection; the content blob is free-form JSON."""

    date: datetime.date
    content: Dict[str, Any] = Field(default_factory=dict)


class JournalEntryUpdate(BaseModel):
    """Body accepted when saving a day's entry."""

    content: Dict[str, Any] = Field(
        ..., description="Arbitrary JSON object holding the day's fields."
    )


class TodoItem(BaseModel):
    """A to-do extracted from a recent entry."""

    date: datetime.date
    key: str
    content: str
    done: bool = False


class TodoToggleRequest(BaseModel):
    done: bool


class JournalStats(BaseModel):
    """Writing streaks shown on the admin dashboard."""

    model_config = ConfigDict(populate_by_name=True)

    current_streak: int = Field(0, serialization_alias="currentStreak")
    longest_streak: int = Field(0, serialization_alias="longestStreak")
    total_days: int = Field(0, serialization_alias="totalDays")


class SearchResult(BaseModel):
    date: datetime.date
    preview: str


__all__ = [
    "JournalEntry",
    "JournalEntryUpdate",
    "JournalStats",
    "SearchResult",
    "TodoItem",
    "TodoToggleRequest",
]
