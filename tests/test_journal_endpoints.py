try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from guanxinshu import dependencies
from guanxinshu.clients import JournalStore
from guanxinshu.main import app
from guanxinshu.services import JournalService

pytestmark = pytest.mark.anyio("asyncio")

NOW = datetime(2026, 3, 15, 21, 30, tzinfo=timezone.utc)
HEADERS = {"X-User-Id": "user-1"}


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock():
    return Clock(NOW)


@pytest.fixture()
def journal(tmp_path, clock):
    service = JournalService(JournalStore(str(tmp_path / "journal.db")), clock=clock)
    app.dependency_overrides.clear()
    app.dependency_overrides[dependencies.get_journal_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
        headers=HEADERS,
    )


async def test_save_and_fetch_entry(journal):
    async with _client() as client:
        saved = await client.put(
            "/api/journal/2026-03-15",
            json={"content": {"date": "ignored", "mood": "平靜", "work_todo": "寫報告"}},
        )
        fetched = await client.get("/api/journal/2026-03-15")

    assert saved.status_code == 200
    assert fetched.status_code == 200
    assert fetched.json() == {
        "date": "2026-03-15",
        "content": {"mood": "平靜", "work_todo": "寫報告"},
    }


async def test_missing_entry_is_404_with_error_body(journal):
    async with _client() as client:
        response = await client.get("/api/journal/2026-01-01")

    assert response.status_code == 404
    assert "error" in response.json()


async def test_entries_are_scoped_per_user(journal):
    journal.save_entry("user-2", date(2026, 3, 15), {"mood": "private"})

    async with _client() as client:
        response = await client.get("/api/journal/2026-03-15")
        dates = await client.get("/api/journal/dates")

    assert response.status_code == 404
    assert dates.json() == []


async def test_missing_user_header_is_unauthorized(journal):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get("/api/journal/dates")

    assert response.status_code == 401
    assert response.json()["error"]


async def test_recorded_dates_and_stats(journal):
    for offset in (0, 1, 2, 6):
        journal.save_entry("user-1", NOW.date() - timedelta(days=offset), {"mood": "ok"})

    async with _client() as client:
        dates = await client.get("/api/journal/dates")
        stats = await client.get("/api/admin/stats")

    assert dates.json() == ["2026-03-09", "2026-03-13", "2026-03-14", "2026-03-15"]
    assert stats.json() == {"currentStreak": 3, "longestStreak": 3, "totalDays": 4}


async def test_missing_dates_window(journal):
    journal.save_entry("user-1", date(2026, 3, 13), {"mood": "ok"})

    async with _client() as client:
        response = await client.get("/api/admin/missing-dates", params={"days": 3})
        invalid = await client.get("/api/admin/missing-dates", params={"days": 0})

    assert response.json() == ["2026-03-14", "2026-03-12"]
    assert invalid.status_code == 422
    assert "days" in invalid.json()["error"]


async def test_search(journal):
    journal.save_entry("user-1", date(2026, 3, 10), {"reflection": "今天跑步五公里"})
    journal.save_entry("user-1", date(2026, 3, 11), {"reflection": "在家看書"})

    async with _client() as client:
        response = await client.get("/api/admin/search", params={"q": "跑步"})

    assert response.json() == [{"date": "2026-03-10", "preview": "今天跑步五公里"}]


async def test_toggle_todo_and_visibility(journal, clock):
    journal.save_entry(
        "user-1", date(2026, 3, 14), {"work_todo": "整理收據", "life_todo": "澆花"}
    )

    async with _client() as client:
        toggled = await client.patch(
            "/api/journal/2026-03-14/todos/work_todo", json={"done": True}
        )
        todos = await client.get("/api/journal/todos")

        clock.now = NOW + timedelta(days=4)
        later = await client.get("/api/journal/todos")

    assert toggled.status_code == 200
    assert toggled.json() == {
        "date": "2026-03-14",
        "key": "work_todo",
        "content": "整理收據",
        "done": True,
    }
    assert {item["key"]: item["done"] for item in todos.json()} == {
        "life_todo": False,
        "work_todo": True,
    }
    assert [item["key"] for item in later.json()] == ["life_todo"]


async def test_toggle_unknown_todo_is_404(journal):
    journal.save_entry("user-1", date(2026, 3, 14), {"mood": "ok"})

    async with _client() as client:
        response = await client.patch(
            "/api/journal/2026-03-14/todos/work_todo", json={"done": True}
        )

    assert response.status_code == 404


async def test_reports_round_trip(journal, clock):
    async with _client() as client:
        empty = await client.get("/api/reports/latest")
        first = await client.post(
            "/api/reports", json={"title": "二月報告", "content": "## 總結\n穩定"}
        )
        clock.now = NOW + timedelta(days=1)
        await client.post("/api/reports", json={"title": "三月報告", "content": "進步"})
        latest = await client.get("/api/reports/latest")
        listed = await client.get("/api/reports")

    assert empty.status_code == 404
    assert first.status_code == 201
    assert first.json()["createdAt"].startswith("2026-03-15T21:30:00")
    assert latest.json()["title"] == "三月報告"
    assert [report["title"] for report in listed.json()] == ["三月報告", "二月報告"]
