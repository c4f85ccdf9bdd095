"""
Application configuration models and helpers.

Centralizes settings management so the request handlers, the provider
registry and the maintenance scripts share one configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file into the environment."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()

_BASE_CONFIG = SettingsConfigDict(extra="ignore", populate_by_name=True)


class GoogleSettings(BaseSettings):
    """Client registration for Google OAuth."""

    model_config = _BASE_CONFIG

    client_id: str = Field("", validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field("", validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: str = Field(
        "http://localhost:8000/api/auth/google/callback",
        validation_alias="GOOGLE_REDIRECT_URI",
    )


class MicrosoftSettings(BaseSettings):
    """Client registration for Microsoft identity platform OAuth."""

    model_config = _BASE_CONFIG

    client_id: str = Field("", validation_alias="MICROSOFT_CLIENT_ID")
    client_secret: str = Field("", validation_alias="MICROSOFT_CLIENT_SECRET")
    redirect_uri: str = Field(
        "http://localhost:8000/api/auth/microsoft/callback",
        validation_alias="MICROSOFT_REDIRECT_URI",
    )
    tenant_id: str = Field(
        "common",
        validation_alias="MICROSOFT_TENANT_ID",
        description="Directory tenant; 'common' accepts any Microsoft account.",
    )


class ZoomSettings(BaseSettings):
    """Client registration for Zoom OAuth."""

    model_config = _BASE_CONFIG

    client_id: str = Field("", validation_alias="ZOOM_CLIENT_ID")
    client_secret: str = Field("", validation_alias="ZOOM_CLIENT_SECRET")
    redirect_uri: str = Field(
        "http://localhost:8000/api/auth/zoom/callback",
        validation_alias="ZOOM_REDIRECT_URI",
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _BASE_CONFIG

    token_encryption_secret: str = Field(
        ...,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    state_signing_secret: Optional[str] = Field(
        None,
        validation_alias="OAUTH_STATE_SECRET",
        description="HMAC key for OAuth state values. Defaults to the encryption secret.",
    )

    @property
    def state_secret(self) -> str:
        return self.state_signing_secret or self.token_encryption_secret


class OAuthSettings(BaseSettings):
    """OAuth flow and outbound call configuration."""

    model_config = _BASE_CONFIG

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")
    http_timeout_seconds: float = Field(10.0, validation_alias="OAUTH_HTTP_TIMEOUT")
    retry_attempts: int = Field(3, validation_alias="OAUTH_RETRY_ATTEMPTS")
    retry_base_delay_seconds: float = Field(
        0.5, validation_alias="OAUTH_RETRY_BASE_DELAY"
    )

    @field_validator("state_ttl_seconds")
    @classmethod
    def _bound_state_ttl(cls, value: int) -> int:
        """State values must expire within the hour."""
        if not 0 < value <= 3600:
            raise ValueError("OAUTH_STATE_TTL must be between 1 and 3600 seconds.")
        return value

    @field_validator("retry_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("OAUTH_RETRY_ATTEMPTS must be at least 1.")
        return value


class DeploymentSettings(BaseSettings):
    """Settings for chatbot deployment to messaging platforms."""

    model_config = _BASE_CONFIG

    public_api_url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("PUBLIC_API_URL", "NEXT_PUBLIC_API_URL"),
        description="Public origin used to build webhook URLs. Defaults to the request origin.",
    )
    telegram_webhook_secret: Optional[str] = Field(
        None,
        validation_alias="TELEGRAM_WEBHOOK_SECRET",
        description="When set, webhooks are registered with a per-bot secret token.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _BASE_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[str] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    token_db_path: str = Field(
        "data/oauth_tokens.db",
        validation_alias="TOKEN_DB_PATH",
        description="SQLite database holding OAuth tokens and pending states.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    microsoft: MicrosoftSettings = Field(default_factory=MicrosoftSettings)
    zoom: ZoomSettings = Field(default_factory=ZoomSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "DeploymentSettings",
    "GoogleSettings",
    "MicrosoftSettings",
    "OAuthSettings",
    "SecuritySettings",
    "ZoomSettings",
    "get_settings",
]
