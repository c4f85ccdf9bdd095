"""Pytest configuration shared across the suite."""

from __future__ import annotations

from pathlib import Path

import pytest

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from agent_dashboard.core.config import AppSettings, OAuthSettings
from agent_dashboard.core.providers import build_provider_registry
from agent_dashboard.clients import SQLiteStateStore, SQLiteTokenStore
from agent_dashboard.services import TokenCipherService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings()  # type: ignore[call-arg]


@pytest.fixture
def registry(settings: AppSettings):
    return build_provider_registry(settings)


@pytest.fixture
def oauth_settings() -> OAuthSettings:
    return OAuthSettings(state_ttl_seconds=600)


@pytest.fixture
def cipher() -> TokenCipherService:
    return TokenCipherService(secret="unit-test-secret")


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "oauth.db")


@pytest.fixture
def token_store(db_path: str, cipher: TokenCipherService) -> SQLiteTokenStore:
    return SQLiteTokenStore(db_path, cipher=cipher)


@pytest.fixture
def state_store(db_path: str) -> SQLiteStateStore:
    return SQLiteStateStore(db_path)
