"""Client wrapper for interacting with Google Gemini models and the File API."""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Iterable, Sequence

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPICallError, NotFound

from guanxinshu.core.config import GeminiSettings


_TEXT_FALLBACKS: tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-flash",
)
_STREAM_EXHAUSTED = object()

logger = logging.getLogger(__name__)


class GeminiModelError(RuntimeError):
    """Raised when Gemini cannot fulfill a request."""


@dataclass(frozen=True, slots=True)
class RemoteDocument:
    """Handle to a file held by the Gemini File API."""

    name: str
    uri: str
    mime_type: str

    def as_part(self) -> dict[str, Any]:
        return {"file_data": {"file_uri": self.uri, "mime_type": self.mime_type}}


class GeminiClient:
    """Upload documents, stream report generation, and release remote files."""

    def __init__(self, settings: GeminiSettings) -> None:
        self._settings = settings
        # Configure the global client once per process.
        genai.configure(api_key=settings.api_key)

    async def upload_document(
        self,
        *,
        data: bytes,
        mime_type: str,
        display_name: str | None = None,
    ) -> RemoteDocument:
        """Send a reassembled file to the File API and return its handle."""

        def _invoke() -> Any:
            try:
                return genai.upload_file(
                    io.BytesIO(data),
                    mime_type=mime_type,
                    display_name=display_name,
                )
            except GoogleAPICallError as exc:  # pragma: no cover - network call
                raise GeminiModelError(f"Gemini file upload failed: {exc.message}") from exc

        uploaded = await asyncio.to_thread(_invoke)
        document = RemoteDocument(
            name=uploaded.name,
            uri=uploaded.uri,
            mime_type=uploaded.mime_type or mime_type,
        )
        logger.info(
            "Uploaded document to Gemini",
            extra={"document": document.name, "bytes": len(data)},
        )
        return document

    async def delete_document(self, document: RemoteDocument) -> None:
        """Delete a previously uploaded file."""

        def _invoke() -> None:
            try:
                genai.delete_file(document.name)
            except GoogleAPICallError as exc:  # pragma: no cover - network call
                raise GeminiModelError(
                    f"Gemini file delete failed for {document.name}: {exc.message}"
                ) from exc

        await asyncio.to_thread(_invoke)

    async def open_report_stream(
        self,
        *,
        documents: Sequence[RemoteDocument],
        prompt: str,
    ) -> AsyncIterator[str]:
        """Start a streaming generation and return an iterator of text fragments.

        The request is issued before this coroutine returns, so configuration
        and quota failures surface here rather than midway through the stream.
        """
        contents = [
            {
                "role": "user",
                "parts": [*(document.as_part() for document in documents), {"text": prompt}],
            }
        ]

        def _invoke() -> Any:
            return self._invoke_with_models(
                models=self._text_model_candidates(),
                env_var="GEMINI_MODEL_NAME",
                error_prefix="Gemini generate_content failed",
                call=lambda model: model.generate_content(contents, stream=True),
            )

        response = await asyncio.to_thread(_invoke)
        return _iterate_text(iter(response))

    def _invoke_with_models(
        self,
        *,
        models: Iterable[str],
        env_var: str,
        error_prefix: str,
        call: Callable[[genai.GenerativeModel], Any],
    ) -> Any:
        """Try the configured model followed by fallbacks when available."""

        model_sequence = list(models)
        last_not_found: NotFound | None = None
        for index, model_name in enumerate(model_sequence):
            generative_model = genai.GenerativeModel(model_name)
            try:
                return call(generative_model)
            except NotFound as exc:  # pragma: no cover - network call
                last_not_found = exc
                logger.warning(
                    "Gemini model '%s' not found (attempt %d/%d); trying fallback.",
                    model_name,
                    index + 1,
                    len(model_sequence),
                )
                continue
            except GoogleAPICallError as exc:  # pragma: no cover - network call
                raise GeminiModelError(f"{error_prefix}: {exc.message}") from exc

        if last_not_found is not None:
            primary = model_sequence[0] if model_sequence else "unknown"
            raise GeminiModelError(
                "Gemini model '"
                f"{primary}"
                "' is not available. Update "
                f"{env_var} to a supported value."
            ) from last_not_found

        raise GeminiModelError(f"{error_prefix}: Unknown error invoking Gemini.")

    def _text_model_candidates(self) -> list[str]:
        return self._collect_candidates(self._settings.model_name, _TEXT_FALLBACKS)

    @staticmethod
    def _collect_candidates(
        configured: str | None,
        fallbacks: tuple[str, ...],
    ) -> list[str]:
        """Return distinct model names prioritizing the configured value."""
        seen: set[str] = set()
        candidates: list[str] = []
        for name in (configured, *fallbacks):
            if not name:
                continue
            cleaned = name.strip()
            if not cleaned or cleaned in seen:
                continue
            seen.add(cleaned)
            candidates.append(cleaned)
        return candidates


async def _iterate_text(chunks: Any) -> AsyncIterator[str]:
    """Pull chunks from the blocking SDK iterator without stalling the loop."""
    try:
        while True:
            try:
                chunk = await asyncio.to_thread(next, chunks, _STREAM_EXHAUSTED)
            except GoogleAPICallError as exc:  # pragma: no cover - network call
                raise GeminiModelError(f"Gemini stream interrupted: {exc.message}") from exc
            if chunk is _STREAM_EXHAUSTED:
                return
            text = _chunk_text(chunk)
            if text:
                yield text
    finally:
        _close_response_iterator(chunks)


def _close_response_iterator(chunks: Any) -> None:
    # Closing the SDK generator drops the underlying gRPC stream so generation
    # stops instead of running to completion in the worker thread.
    close = getattr(chunks, "close", None)
    if close is None:
        return
    try:
        close()
    except ValueError:
        # A cancelled ``next`` may still be running in its worker thread.
        logger.warning("Gemini response iterator still busy; leaving it to finish.")


def _chunk_text(chunk: Any) -> str:
    # ``.text`` raises ValueError for chunks without text parts (e.g. the final
    # chunk that only carries the finish reason).
    try:
        return chunk.text or ""
    except ValueError:
        return ""


__all__ = ["GeminiClient", "GeminiModelError", "RemoteDocument"]
