"""Derived views over journal entries: streaks, gaps, search and to-dos."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping

from guanxinshu.schemas import JournalStats, SearchResult, TodoItem

TODO_SUFFIX = "_todo"
DONE_SUFFIX = "_done"
PREVIEW_LENGTH = 120


def compute_streaks(dates: Iterable[date], today: date) -> JournalStats:
    """Count consecutive writing days.

    The current streak ends today, or yesterday when today's entry has not
    been written yet; anything older breaks it.
    """
    ordered = sorted(set(dates))
    if not ordered:
        return JournalStats()

    longest = run = 1
    for previous, current in zip(ordered, ordered[1:]):
        run = run + 1 if current - previous == timedelta(days=1) else 1
        longest = max(longest, run)

    recorded = set(ordered)
    cursor = today if today in recorded else today - timedelta(days=1)
    current_streak = 0
    while cursor in recorded:
        current_streak += 1
        cursor -= timedelta(days=1)

    return JournalStats(
        current_streak=current_streak,
        longest_streak=longest,
        total_days=len(ordered),
    )


def find_missing_dates(dates: Iterable[date], today: date, days: int = 30) -> List[date]:
    """Dates in the ``days`` before today without an entry, newest first."""
    recorded = set(dates)
    if not recorded:
        return []
    window = (today - timedelta(days=offset) for offset in range(1, days + 1))
    return [day for day in window if day not in recorded]


def _string_values(content: Mapping[str, Any]) -> Iterable[str]:
    for value in content.values():
        if isinstance(value, str) and value.strip():
            yield value
        elif isinstance(value, Mapping):
            yield from _string_values(value)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, str) and item.strip():
                    yield item


def _preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > PREVIEW_LENGTH:
        return text[: PREVIEW_LENGTH - 3] + "..."
    return text


def search_entries(
    entries: Iterable[Dict[str, Any]], query: str, limit: int = 50
) -> List[SearchResult]:
    needle = query.strip().casefold()
    if not needle:
        return []
    results: List[SearchResult] = []
    for entry in sorted(entries, key=lambda item: item["date"], reverse=True):
        for text in _string_values(entry.get("content") or {}):
            if needle in text.casefold():
                results.append(SearchResult(date=entry["date"], preview=_preview(text)))
                break
        if len(results) >= limit:
            break
    return results


def collect_todos(
    entries: Iterable[Dict[str, Any]],
    now: datetime,
    done_visibility: timedelta = timedelta(days=3),
) -> List[TodoItem]:
    """Pending to-dos plus recently completed ones, newest entry first."""
    todos: List[TodoItem] = []
    for entry in sorted(entries, key=lambda item: item["date"], reverse=True):
        content = entry.get("content") or {}
        recently_updated = now - entry["updated_at"] < done_visibility
        for key in sorted(content):
            if not key.endswith(TODO_SUFFIX):
                continue
            text = content[key]
            if not isinstance(text, str) or not text.strip():
                continue
            done = bool(content.get(f"{key}{DONE_SUFFIX}"))
            if done and not recently_updated:
                continue
            todos.append(TodoItem(date=entry["date"], key=key, content=text, done=done))
    return todos


__all__ = [
    "collect_todos",
    "compute_streaks",
    "find_missing_dates",
    "search_entries",
]
