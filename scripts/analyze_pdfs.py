#!/usr/bin/env python
"""Run the journal PDF analysis pipeline from the command line.

Files are chunked exactly like the web client does, pushed through the upload
receiver into a throwaway session, then finalized and the report is streamed
to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import mimetypes
import sys
import tempfile
import time
import uuid
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from guanxinshu.clients import GeminiClient  # noqa: E402
from guanxinshu.core.config import get_settings  # noqa: E402
from guanxinshu.core.logging import configure_logging  # noqa: E402
from guanxinshu.schemas import ChunkUpload  # noqa: E402
from guanxinshu.services import (  # noqa: E402
    AnalysisOrchestrator,
    FileSystemChunkStore,
    UploadReceiver,
)

CHUNK_CHARS = 3 * 1024 * 1024


def _new_session_id() -> str:
    return f"{int(time.time() * 1000)}{uuid.uuid4().hex[:6]}"


def _chunk(encoded: str, size: int) -> list[str]:
    return [encoded[i : i + size] for i in range(0, len(encoded), size)] or [""]


def upload_files(receiver: UploadReceiver, session_id: str, paths: list[Path]) -> None:
    for file_index, path in enumerate(paths):
        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        chunks = _chunk(encoded, CHUNK_CHARS)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/pdf"
        for chunk_index, data in enumerate(chunks):
            receiver.receive(
                ChunkUpload(
                    session_id=session_id,
                    file_index=file_index,
                    mime_type=mime_type,
                    chunk_index=chunk_index,
                    chunk_count=len(chunks),
                    data=data,
                )
            )
        print(f"Uploaded {path.name} in {len(chunks)} chunk(s).", file=sys.stderr)


async def run(paths: list[Path], previous_report: str | None) -> int:
    settings = get_settings()
    with tempfile.TemporaryDirectory(prefix="guanxinshu-cli-") as workdir:
        store = FileSystemChunkStore(workdir)
        receiver = UploadReceiver(
            store,
            max_chunk_chars=settings.analysis.max_chunk_chars,
            session_ttl_seconds=settings.analysis.session_ttl_seconds,
        )
        session_id = _new_session_id()
        upload_files(receiver, session_id, paths)

        orchestrator = AnalysisOrchestrator(store, GeminiClient(settings.gemini))
        relay = await orchestrator.start(session_id, previous_report)
        async for fragment in relay:
            sys.stdout.write(fragment.decode("utf-8"))
            sys.stdout.flush()
    print()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Analyze exported journal PDFs and stream the report."
    )
    parser.add_argument("files", nargs="+", type=Path, help="PDF files to analyze.")
    parser.add_argument(
        "--previous-report",
        type=Path,
        default=None,
        help="Text/Markdown file with an earlier report to compare against.",
    )
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    missing = [str(path) for path in args.files if not path.is_file()]
    if missing:
        print(f"File(s) not found: {', '.join(missing)}", file=sys.stderr)
        return 2

    previous = None
    if args.previous_report:
        previous = args.previous_report.read_text(encoding="utf-8")
    return asyncio.run(run(args.files, previous))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
