"""Check that the dashboard's environment file is complete and unchanged.

Settings are loaded from the given ``.env`` file through ``AppSettings``, so a
missing ``TOKEN_ENCRYPTION_SECRET`` or an out-of-range OAuth value is caught
before the API starts failing requests. Each run also lists which OAuth
providers have client credentials; ``--require-provider`` turns a missing one
into a validation failure.

The ``record`` and ``verify`` commands keep a SHA256 baseline of the file so
unexpected edits are noticed::

    python -m scripts.check_env record --env-file /srv/agent-dashboard/.env \
        --hash-file /srv/agent-dashboard/.env.sha256 --require-provider google

    python -m scripts.check_env verify --env-file /srv/agent-dashboard/.env \
        --hash-file /srv/agent-dashboard/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from agent_dashboard.core.config import AppSettings, _load_env_file
from agent_dashboard.core.providers import build_provider_registry
from agent_dashboard.models.oauth import Provider

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool."
        )
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _missing_providers(settings: AppSettings, required: Sequence[str]) -> list[str]:
    """Print the provider summary and return required providers lacking credentials."""
    registry = build_provider_registry(settings)
    for config in registry:
        services = ", ".join(service.value for service in config.scopes)
        state = "configured" if config.configured else "not configured"
        print(f"{config.provider.value:<10} {state:<15} services: {services}")
    return [name for name in required if not registry.get(name).configured]


def _checksum(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _record(env_file: Path, hash_file: Path) -> int:
    checksum = _checksum(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _checksum(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting the API.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--env-file",
        default=".env",
        type=Path,
        help="Path to the environment file (default: .env in the repo root).",
    )
    common.add_argument(
        "--require-provider",
        action="append",
        default=[],
        choices=[provider.value for provider in Provider],
        help="Fail unless this OAuth provider has client credentials. Repeatable.",
    )

    parser = argparse.ArgumentParser(
        description="Validate dashboard settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "check", parents=[common], help="Validate settings only."
    )
    for command, help_text in (
        ("record", "Validate settings and store the checksum baseline."),
        ("verify", "Validate settings and compare the checksum with the baseline."),
    ):
        subparser = subparsers.add_parser(command, parents=[common], help=help_text)
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

    try:
        settings = _load_settings(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    missing = _missing_providers(settings, args.require_provider)
    if missing:
        print(
            "Required providers are missing client credentials: " + ", ".join(missing),
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    if args.command == "record":
        return _record(env_file, args.hash_file)
    if args.command == "verify":
        return _verify(env_file, args.hash_file)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
