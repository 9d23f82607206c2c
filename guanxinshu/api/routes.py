"""
FastAPI routes for the journaling service.
"""

from __future__ import annotations

import logging
from datetime import date
from http import HTTPStatus
from typing import Annotated, Any, List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from guanxinshu.clients.gemini import GeminiModelError
from guanxinshu.dependencies import (
    get_analysis_orchestrator,
    get_current_user_id,
    get_journal_service,
    get_upload_receiver,
)
from guanxinshu.schemas import (
    AnalysisExecuteRequest,
    ChunkUpload,
    JournalEntry,
    JournalEntryUpdate,
    JournalStats,
    ReportCreateRequest,
    SavedReport,
    SearchResult,
    TodoItem,
    TodoToggleRequest,
    UploadAck,
)
from guanxinshu.services import (
    ChunkStoreError,
    ChunkTooLargeError,
    IncompleteUploadError,
    InvalidChunkDataError,
    JournalEntryNotFoundError,
    SessionAlreadyClaimedError,
    SessionNotFoundError,
)

router = APIRouter()
logger = logging.getLogger(__name__)

UserId = Annotated[str, Depends(get_current_user_id)]

_CHUNK_STORE_STATUS: dict[type[ChunkStoreError], HTTPStatus] = {
    SessionNotFoundError: HTTPStatus.BAD_REQUEST,
    IncompleteUploadError: HTTPStatus.BAD_REQUEST,
    InvalidChunkDataError: HTTPStatus.BAD_REQUEST,
    SessionAlreadyClaimedError: HTTPStatus.CONFLICT,
    ChunkTooLargeError: HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
}

SESSION_NOT_FOUND_MESSAGE = "找不到該上傳區塊。可能已被清除或上傳失敗。"


def _error(status: HTTPStatus, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _chunk_store_error(exc: ChunkStoreError) -> JSONResponse:
    status = _CHUNK_STORE_STATUS.get(type(exc), HTTPStatus.INTERNAL_SERVER_ERROR)
    message = SESSION_NOT_FOUND_MESSAGE if isinstance(exc, SessionNotFoundError) else str(exc)
    return _error(status, message)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.post("/analyze/upload", response_model=UploadAck)
async def upload_chunk(
    payload: ChunkUpload,
    _user_id: UserId,
    receiver: Annotated[Any, Depends(get_upload_receiver)],
) -> Any:
    """Store one base64 fragment of a file for a later analysis request."""
    try:
        receiver.receive(payload)
    except ChunkStoreError as exc:
        return _chunk_store_error(exc)
    except OSError as exc:
        logger.exception(
            "Upload chunk write failed", extra={"session_id": payload.session_id}
        )
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc) or "Upload failed")
    return UploadAck()


@router.post("/analyze/execute")
async def execute_analysis(
    payload: AnalysisExecuteRequest,
    user_id: UserId,
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
    journal: Annotated[Any, Depends(get_journal_service)],
) -> Any:
    """Finalize an upload session and stream the generated report as plain text."""
    previous_report = payload.previous_report_content
    if not previous_report and payload.compare_with_latest:
        latest = journal.latest_report(user_id)
        previous_report = latest.content if latest else None

    try:
        relay = await orchestrator.start(payload.session_id, previous_report)
    except ChunkStoreError as exc:
        return _chunk_store_error(exc)
    except GeminiModelError as exc:
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Analysis execution failed", extra={"session_id": payload.session_id})
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc) or "分析失敗")

    return StreamingResponse(
        relay,
        media_type="text/plain; charset=utf-8",
        background=BackgroundTask(relay.release),
    )


@router.get("/journal/dates", response_model=List[date])
async def list_recorded_dates(
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> List[date]:
    return journal.recorded_dates(user_id)


@router.get("/journal/todos", response_model=List[TodoItem])
async def list_pending_todos(
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> List[TodoItem]:
    """To-dos from recent entries: open ones plus those completed lately."""
    return journal.pending_todos(user_id)


@router.get("/journal/{entry_date}", response_model=JournalEntry)
async def get_journal_entry(
    entry_date: date,
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> Any:
    entry = journal.get_entry(user_id, entry_date)
    if entry is None:
        return _error(HTTPStatus.NOT_FOUND, f"No journal entry for {entry_date}.")
    return entry


@router.put("/journal/{entry_date}", response_model=JournalEntry)
async def save_journal_entry(
    entry_date: date,
    payload: JournalEntryUpdate,
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> JournalEntry:
    return journal.save_entry(user_id, entry_date, payload.content)


@router.patch("/journal/{entry_date}/todos/{key}", response_model=TodoItem)
async def toggle_todo(
    entry_date: date,
    key: str,
    payload: TodoToggleRequest,
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> Any:
    try:
        return journal.set_todo_done(user_id, entry_date, key, payload.done)
    except JournalEntryNotFoundError as exc:
        return _error(HTTPStatus.NOT_FOUND, str(exc))


@router.get("/admin/stats", response_model=JournalStats)
async def journal_stats(
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> JournalStats:
    return journal.stats(user_id)


@router.get("/admin/missing-dates", response_model=List[date])
async def missing_dates(
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
    days: int = Query(30, ge=1, le=366, description="Size of the look-back window."),
) -> List[date]:
    return journal.missing_dates(user_id, days)


@router.get("/admin/search", response_model=List[SearchResult])
async def search_journal(
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
    q: str = Query(..., min_length=1, description="Keyword to look for."),
) -> List[SearchResult]:
    return journal.search(user_id, q)


@router.post("/reports", response_model=SavedReport, status_code=HTTPStatus.CREATED)
async def save_report(
    payload: ReportCreateRequest,
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> SavedReport:
    return journal.save_report(user_id, payload.title, payload.content)


@router.get("/reports", response_model=List[SavedReport])
async def list_reports(
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> List[SavedReport]:
    return journal.list_reports(user_id)


@router.get("/reports/latest", response_model=SavedReport)
async def latest_report(
    user_id: UserId,
    journal: Annotated[Any, Depends(get_journal_service)],
) -> Any:
    report = journal.latest_report(user_id)
    if report is None:
        return _error(HTTPStatus.NOT_FOUND, "No saved reports yet.")
    return report
