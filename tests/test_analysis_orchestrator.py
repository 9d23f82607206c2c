try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import base64
import os

import pytest

from _stubs import RecordingModelClient, StreamBroken
from guanxinshu.clients.gemini import GeminiModelError
from guanxinshu.services import (
    AnalysisOrchestrator,
    FileSystemChunkStore,
    InMemoryChunkStore,
    IncompleteUploadError,
    SessionAlreadyClaimedError,
    SessionNotFoundError,
)

SESSION_ID = "1739770000000abc12"


def _store_file(store, session_id, file_index, payload: bytes, chunk_chars: int):
    encoded = base64.b64encode(payload).decode("ascii")
    chunks = [encoded[i : i + chunk_chars] for i in range(0, len(encoded), chunk_chars)]
    for chunk_index, data in enumerate(chunks):
        store.put(session_id, file_index, chunk_index, data)
    store.put_metadata(
        session_id, file_index, mime_type="application/pdf", chunk_count=len(chunks)
    )
    return len(chunks)


async def _drain(relay) -> bytes:
    collected = b""
    async for fragment in relay:
        collected += fragment
    return collected


@pytest.mark.asyncio
async def test_seven_megabyte_file_in_three_chunks_is_uploaded_intact(tmp_path):
    store = FileSystemChunkStore(tmp_path)
    client = RecordingModelClient()
    payload = os.urandom(7 * 1024 * 1024)
    # 3 MiB of raw bytes per chunk -> 4 MiB of base64 text per chunk.
    chunk_count = _store_file(store, SESSION_ID, 0, payload, chunk_chars=4 * 1024 * 1024)
    assert chunk_count == 3

    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)
    await _drain(relay)

    assert len(client.uploads) == 1
    assert client.uploads[0][0] == payload
    assert client.uploads[0][1] == "application/pdf"


@pytest.mark.asyncio
async def test_success_streams_fragments_and_cleans_up_everything():
    store = InMemoryChunkStore()
    client = RecordingModelClient(fragments=("第一段", "", "第二段"))
    _store_file(store, SESSION_ID, 0, b"%PDF-1.4 journal one", chunk_chars=8)
    _store_file(store, SESSION_ID, 1, b"%PDF-1.4 journal two", chunk_chars=12)

    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)

    # Local chunks are gone before a single token is generated.
    assert not store.exists(SESSION_ID)
    assert client.deleted == []

    body = await _drain(relay)

    assert body.decode("utf-8") == "第一段第二段"
    assert [upload[0] for upload in client.uploads] == [
        b"%PDF-1.4 journal one",
        b"%PDF-1.4 journal two",
    ]
    assert client.stream_documents == [["files/doc-0", "files/doc-1"]]
    assert len(client.prompts) == 1
    assert sorted(client.deleted) == client.uploaded_names
    assert relay.released


@pytest.mark.asyncio
async def test_fragments_are_forwarded_as_they_arrive():
    store = InMemoryChunkStore()
    client = RecordingModelClient(fragments=("a", "b", "c"))
    _store_file(store, SESSION_ID, 0, b"journal", chunk_chars=4)

    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)
    iterator = relay.__aiter__()

    assert await iterator.__anext__() == b"a"
    assert client.deleted == []
    assert await iterator.__anext__() == b"b"
    await iterator.aclose()


@pytest.mark.asyncio
async def test_missing_session_makes_no_upstream_calls():
    store = InMemoryChunkStore()
    client = RecordingModelClient()

    with pytest.raises(SessionNotFoundError):
        await AnalysisOrchestrator(store, client).start("never-uploaded")

    assert client.uploads == []
    assert client.prompts == []


@pytest.mark.asyncio
async def test_incomplete_upload_fails_before_any_upload():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    store.put(SESSION_ID, 0, 0, "QUJD")
    store.put_metadata(SESSION_ID, 0, mime_type="application/pdf", chunk_count=2)

    with pytest.raises(IncompleteUploadError) as excinfo:
        await AnalysisOrchestrator(store, client).start(SESSION_ID)

    assert "file 0 missing chunk(s) 1" in str(excinfo.value)
    assert client.uploads == []
    assert client.prompts == []
    assert not store.exists(SESSION_ID)


@pytest.mark.asyncio
async def test_session_with_only_orphan_chunks_is_incomplete():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    store.put(SESSION_ID, 0, 1, "QUJD")

    with pytest.raises(IncompleteUploadError):
        await AnalysisOrchestrator(store, client).start(SESSION_ID)

    assert client.uploads == []


@pytest.mark.asyncio
async def test_generation_failure_releases_uploaded_documents():
    store = InMemoryChunkStore()
    client = RecordingModelClient(fail_open=True)
    _store_file(store, SESSION_ID, 0, b"one", chunk_chars=4)
    _store_file(store, SESSION_ID, 1, b"two", chunk_chars=4)

    with pytest.raises(GeminiModelError):
        await AnalysisOrchestrator(store, client).start(SESSION_ID)

    assert sorted(client.deleted) == ["files/doc-0", "files/doc-1"]
    assert not store.exists(SESSION_ID)


@pytest.mark.asyncio
async def test_upload_failure_releases_documents_created_so_far():
    store = InMemoryChunkStore()
    client = RecordingModelClient(fail_upload_at=1)
    _store_file(store, SESSION_ID, 0, b"one", chunk_chars=4)
    _store_file(store, SESSION_ID, 1, b"two", chunk_chars=4)

    with pytest.raises(GeminiModelError):
        await AnalysisOrchestrator(store, client).start(SESSION_ID)

    assert client.deleted == ["files/doc-0"]
    assert client.prompts == []
    assert not store.exists(SESSION_ID)


@pytest.mark.asyncio
async def test_mid_stream_failure_delivers_partial_output_then_raises():
    store = InMemoryChunkStore()
    client = RecordingModelClient(fragments=("1", "2", "3", "4", "5"), fail_after=2)
    _store_file(store, SESSION_ID, 0, b"one", chunk_chars=4)
    _store_file(store, SESSION_ID, 1, b"two", chunk_chars=4)

    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)
    received = []
    with pytest.raises(StreamBroken):
        async for fragment in relay:
            received.append(fragment)

    assert received == [b"1", b"2"]
    assert sorted(client.delete_attempts) == ["files/doc-0", "files/doc-1"]


@pytest.mark.asyncio
async def test_consumer_disconnect_still_releases_documents():
    store = InMemoryChunkStore()
    client = RecordingModelClient(fragments=("a", "b", "c"))
    _store_file(store, SESSION_ID, 0, b"journal", chunk_chars=4)

    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)
    iterator = relay.__aiter__()
    await iterator.__anext__()
    await iterator.aclose()

    assert client.deleted == ["files/doc-0"]


@pytest.mark.asyncio
async def test_cancelled_stream_task_still_releases_documents():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    _store_file(store, SESSION_ID, 0, b"journal", chunk_chars=4)
    started = asyncio.Event()

    async def _slow_stream():
        yield "first"
        started.set()
        await asyncio.sleep(3600)
        yield "never"

    async def _open(*, documents, prompt):
        client.prompts.append(prompt)
        return _slow_stream()

    client.open_report_stream = _open
    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)

    async def _consume():
        async for _ in relay:
            pass

    task = asyncio.create_task(_consume())
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert client.deleted == ["files/doc-0"]


@pytest.mark.asyncio
async def test_timeout_while_opening_stream_releases_uploaded_documents():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    _store_file(store, SESSION_ID, 0, b"one", chunk_chars=4)
    _store_file(store, SESSION_ID, 1, b"two", chunk_chars=4)

    async def _hanging_open(*, documents, prompt):
        client.prompts.append(prompt)
        await asyncio.sleep(3600)

    client.open_report_stream = _hanging_open

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(AnalysisOrchestrator(store, client).start(SESSION_ID), 0.2)

    assert client.uploaded_names == ["files/doc-0", "files/doc-1"]
    assert sorted(client.deleted) == ["files/doc-0", "files/doc-1"]
    assert not store.exists(SESSION_ID)


@pytest.mark.asyncio
async def test_cancel_during_uploads_releases_documents_and_local_session():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    _store_file(store, SESSION_ID, 0, b"one", chunk_chars=4)
    _store_file(store, SESSION_ID, 1, b"two", chunk_chars=4)
    first_uploaded = asyncio.Event()
    record_upload = client.upload_document

    async def _stalling_upload(**kwargs):
        if client.uploads:
            first_uploaded.set()
            await asyncio.sleep(3600)
        return await record_upload(**kwargs)

    client.upload_document = _stalling_upload
    task = asyncio.create_task(AnalysisOrchestrator(store, client).start(SESSION_ID))
    await first_uploaded.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert client.deleted == ["files/doc-0"]
    assert client.prompts == []
    assert not store.exists(SESSION_ID)


@pytest.mark.asyncio
async def test_release_happens_exactly_once():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    _store_file(store, SESSION_ID, 0, b"journal", chunk_chars=4)

    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)
    await _drain(relay)
    await relay.release()
    await relay.release()

    assert client.delete_attempts == ["files/doc-0"]


@pytest.mark.asyncio
async def test_delete_failures_are_logged_not_raised(caplog):
    store = InMemoryChunkStore()
    client = RecordingModelClient(fail_delete=True)
    _store_file(store, SESSION_ID, 0, b"one", chunk_chars=4)
    _store_file(store, SESSION_ID, 1, b"two", chunk_chars=4)

    relay = await AnalysisOrchestrator(store, client).start(SESSION_ID)
    body = await _drain(relay)

    assert body
    assert sorted(client.delete_attempts) == ["files/doc-0", "files/doc-1"]
    assert "Failed to delete remote document" in caplog.text


@pytest.mark.asyncio
async def test_concurrent_finalize_is_rejected_without_touching_the_session():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    _store_file(store, SESSION_ID, 0, b"journal", chunk_chars=4)
    store.claim(SESSION_ID)

    with pytest.raises(SessionAlreadyClaimedError):
        await AnalysisOrchestrator(store, client).start(SESSION_ID)

    assert store.exists(SESSION_ID)
    assert client.uploads == []


@pytest.mark.asyncio
async def test_previous_report_is_passed_into_the_prompt():
    store = InMemoryChunkStore()
    client = RecordingModelClient()
    _store_file(store, SESSION_ID, 0, b"journal", chunk_chars=4)

    relay = await AnalysisOrchestrator(store, client).start(
        SESSION_ID, previous_report_content="上次的報告：壓力偏高"
    )
    await _drain(relay)

    assert "上次的報告：壓力偏高" in client.prompts[0]
