"""Verify the integration service's environment before it starts.

The tool performs two checks:

1. It loads ``AppSettings`` from the given ``.env`` file so missing OAuth
   client credentials or a half-configured token store are reported up front
   instead of on the first MyCase or Drive request.
2. It can record and verify a checksum of the ``.env`` file so unexpected
   edits (a rotated secret, a stray deploy) are noticed.

Example usages::

    python -m scripts.check_env record --env-file /srv/evidence/.env \
        --hash-file /srv/evidence/.env.sha256

    python -m scripts.check_env verify --env-file /srv/evidence/.env \
        --hash-file /srv/evidence/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from app.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _describe(settings: AppSettings) -> str:
    store = settings.storage
    location = (
        store.dynamodb_table_name if store.backend == "dynamodb" else store.sqlite_path
    )
    lines = [
        f"environment:   {settings.environment}",
        f"token store:   {store.backend} ({location})",
        f"mycase:        client {settings.mycase.client_id} -> {settings.mycase.redirect_uri}",
        f"google:        client {settings.google.client_id} -> {settings.google.redirect_uri}",
        f"refresh skew:  {settings.oauth.refresh_skew_seconds}s",
    ]
    if not settings.security.token_encryption_secret:
        lines.append(
            "warning:       TOKEN_ENCRYPTION_SECRET unset; tokens are keyed by the Google client secret"
        )
    return "\n".join(lines)


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Run the 'record' command first to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Check for rotated OAuth secrets before restarting the service.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate integration settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env).",
        )

    for name, help_text, needs_hash in (
        ("record", "Validate settings and store the checksum baseline.", True),
        ("verify", "Validate settings and compare against the baseline.", True),
        ("check", "Validate settings and print a summary.", False),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_env_file(subparser)
        if needs_hash:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file
    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist.",
            file=sys.stderr,
        )
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

    command: str = args.command
    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: print(_describe(settings)) or EXIT_OK,
    }
    return handlers[command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
