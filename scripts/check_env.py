"""Verify deployment configuration before the service starts.

Checks performed:

1. ``AppSettings`` can be built from the ``.env`` file (``GEMINI_API_KEY`` is
   present, numeric limits are positive).
2. The upload session directory and the journal database directory exist or
   can be created, and are writable.
3. Optionally, the ``.env`` file still matches a recorded SHA256 baseline so
   unexpected edits are caught.

Example usages::

    python -m scripts.check_env record --env-file /opt/guanxinshu/.env \
        --hash-file /opt/guanxinshu/.env.sha256

    python -m scripts.check_env verify --env-file /opt/guanxinshu/.env \
        --hash-file /opt/guanxinshu/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from guanxinshu.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_STORAGE_ERROR = 4
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _unwritable_directories(settings: AppSettings) -> list[Path]:
    """Return configured storage directories the process cannot write to."""
    candidates = [
        Path(settings.analysis.upload_root),
        Path(settings.database_path).resolve().parent,
    ]
    failures = []
    for directory in candidates:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            failures.append(directory)
            continue
        if not os.access(directory, os.W_OK):
            failures.append(directory)
    return failures


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Checksum baseline {hash_file} is missing; run 'record' first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected != actual:
        print(
            "Environment checksum mismatch!\n"
            f"  expected: {expected}\n"
            f"  actual:   {actual}",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR
    print("Environment checksum OK.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate settings, storage directories and .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text, needs_hash in (
        ("record", "Validate and store the .env checksum baseline.", True),
        ("verify", "Validate and compare the .env checksum with the baseline.", True),
        ("check", "Validate settings and storage only.", False),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        if needs_hash:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    unwritable = _unwritable_directories(settings)
    if unwritable:
        for directory in unwritable:
            print(f"Directory {directory} is not writable.", file=sys.stderr)
        return EXIT_STORAGE_ERROR

    if args.command == "record":
        return _record_checksum(env_file, args.hash_file)
    if args.command == "verify":
        return _verify_checksum(env_file, args.hash_file)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
