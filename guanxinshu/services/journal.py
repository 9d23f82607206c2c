"""Service layer for journal entries, dashboard statistics and saved reports."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from guanxinshu.clients.sqlite_store import JournalStore
from guanxinshu.schemas import (
    JournalEntry,
    JournalStats,
    SavedReport,
    SearchResult,
    TodoItem,
)
from guanxinshu.services.journal_insights import (
    DONE_SUFFIX,
    TODO_SUFFIX,
    collect_todos,
    compute_streaks,
    find_missing_dates,
    search_entries,
)

logger = logging.getLogger(__name__)

RECENT_TODO_ENTRIES = 14


class JournalEntryNotFoundError(LookupError):
    """Raised when an entry or to-do key does not exist for the user."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JournalService:
    """Scope every journal operation to a single user id."""

    def __init__(
        self,
        store: JournalStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    def _today(self) -> date:
        return self._clock().date()

    def get_entry(self, user_id: str, entry_date: date) -> Optional[JournalEntry]:
        row = self._store.get_entry(user_id=user_id, entry_date=entry_date)
        if row is None:
            return None
        return JournalEntry(date=row["date"], content=row["content"])

    def save_entry(
        self, user_id: str, entry_date: date, content: Dict[str, Any]
    ) -> JournalEntry:
        # The date lives in the row key, not the blob.
        cleaned = {key: value for key, value in content.items() if key != "date"}
        self._store.upsert_entry(
            user_id=user_id,
            entry_date=entry_date,
            content=cleaned,
            updated_at=self._clock(),
        )
        logger.info(
            "Saved journal entry",
            extra={"user_id": user_id, "entry_date": entry_date.isoformat()},
        )
        return JournalEntry(date=entry_date, content=cleaned)

    def recorded_dates(self, user_id: str) -> List[date]:
        return self._store.list_entry_dates(user_id=user_id)

    def stats(self, user_id: str) -> JournalStats:
        return compute_streaks(self.recorded_dates(user_id), self._today())

    def missing_dates(self, user_id: str, days: int = 30) -> List[date]:
        return find_missing_dates(self.recorded_dates(user_id), self._today(), days)

    def search(self, user_id: str, query: str, limit: int = 50) -> List[SearchResult]:
        return search_entries(self._store.list_entries(user_id=user_id), query, limit)

    def pending_todos(self, user_id: str) -> List[TodoItem]:
        entries = self._store.list_entries(user_id=user_id, limit=RECENT_TODO_ENTRIES)
        return collect_todos(entries, self._clock())

    def set_todo_done(
        self, user_id: str, entry_date: date, key: str, done: bool
    ) -> TodoItem:
        row = self._store.get_entry(user_id=user_id, entry_date=entry_date)
        if row is None:
            raise JournalEntryNotFoundError(f"No journal entry for {entry_date}.")
        content = dict(row["content"])
        if not key.endswith(TODO_SUFFIX) or not content.get(key):
            raise JournalEntryNotFoundError(f"No to-do '{key}' on {entry_date}.")

        content[f"{key}{DONE_SUFFIX}"] = done
        self._store.upsert_entry(
            user_id=user_id,
            entry_date=entry_date,
            content=content,
            updated_at=self._clock(),
        )
        return TodoItem(date=entry_date, key=key, content=content[key], done=done)

    def save_report(self, user_id: str, title: str, content: str) -> SavedReport:
        record = self._store.save_report(
            user_id=user_id, title=title, content=content, created_at=self._clock()
        )
        return SavedReport(**record)

    def list_reports(self, user_id: str) -> List[SavedReport]:
        return [SavedReport(**record) for record in self._store.list_reports(user_id=user_id)]

    def latest_report(self, user_id: str) -> Optional[SavedReport]:
        record = self._store.latest_report(user_id=user_id)
        return SavedReport(**record) if record else None


__all__ = ["JournalEntryNotFoundError", "JournalService"]
