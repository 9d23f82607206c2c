"""SQLite-backed storage for journal entries and saved analysis reports."""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


class JournalStore:
    """Rows keyed by ``(user_id, entry_date)`` holding a JSON content blob."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS journal_entries (
                    user_id TEXT NOT NULL,
                    entry_date TEXT NOT NULL,
                    content TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, entry_date)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS analysis_reports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

    def upsert_entry(
        self,
        *,
        user_id: str,
        entry_date: date,
        content: Dict[str, Any],
        updated_at: datetime | None = None,
    ) -> None:
        stamp = (updated_at or datetime.now(timezone.utc)).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO journal_entries (user_id, entry_date, content, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, entry_date) DO UPDATE SET
                    content = excluded.content,
                    updated_at = excluded.updated_at
                """,
                (user_id, entry_date.isoformat(), json.dumps(content), stamp),
            )

    def get_entry(self, *, user_id: str, entry_date: date) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM journal_entries WHERE user_id = ? AND entry_date = ?",
                (user_id, entry_date.isoformat()),
            ).fetchone()
        if not row:
            return None
        return self._row_to_entry(row)

    def list_entry_dates(self, *, user_id: str) -> List[date]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT entry_date FROM journal_entries WHERE user_id = ? "
                "ORDER BY entry_date",
                (user_id,),
            ).fetchall()
        return [date.fromisoformat(row["entry_date"]) for row in rows]

    def list_entries(
        self, *, user_id: str, limit: int | None = None
    ) -> List[Dict[str, Any]]:
        """Return entries newest first, optionally capped at ``limit`` rows."""
        query = (
            "SELECT * FROM journal_entries WHERE user_id = ? "
            "ORDER BY entry_date DESC"
        )
        params: tuple[Any, ...] = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def save_report(
        self,
        *,
        user_id: str,
        title: str,
        content: str,
        created_at: datetime | None = None,
    ) -> Dict[str, Any]:
        stamp = created_at or datetime.now(timezone.utc)
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO analysis_reports (user_id, title, content, created_at) "
                "VALUES (?, ?, ?, ?)",
                (user_id, title, content, stamp.isoformat()),
            )
            report_id = cursor.lastrowid
        return {"id": report_id, "title": title, "content": content, "created_at": stamp}

    def list_reports(self, *, user_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM analysis_reports WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_report(row) for row in rows]

    def latest_report(self, *, user_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM analysis_reports WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT 1",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return self._row_to_report(row)

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "date": date.fromisoformat(row["entry_date"]),
            "content": json.loads(row["content"]),
            "updated_at": datetime.fromisoformat(row["updated_at"]),
        }

    @staticmethod
    def _row_to_report(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "title": row["title"],
            "content": row["content"],
            "created_at": datetime.fromisoformat(row["created_at"]),
        }


__all__ = ["JournalStore"]
