"""
Domain models for OAuth token persistence.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SecretStr


class Provider(str, Enum):
    GOOGLE = "google"
    MICROSOFT = "microsoft"
    ZOOM = "zoom"


class Service(str, Enum):
    GMAIL = "gmail"
    CALENDAR = "calendar"
    DRIVE = "drive"
    MAIL = "mail"
    MEETING = "meeting"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRecord(BaseModel):
    """Represents the token stored for one (user, provider, service) triple."""

    user_id: str = Field(..., description="Identity of the authenticating user.")
    provider: Provider
    service: Service
    access_token: SecretStr
    refresh_token: Optional[SecretStr] = None
    expires_at: datetime = Field(
        ..., description="Issuance time plus the provider-declared lifetime."
    )
    scope: str = Field("", description="Space-delimited granted scopes.")
    token_type: str = "Bearer"
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def seconds_remaining(self, now: datetime | None = None) -> int:
        """Whole seconds until expiry; negative once expired."""
        current = now or _utcnow()
        return int((self.expires_at - current).total_seconds())

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or _utcnow())


__all__ = ["Provider", "Service", "TokenRecord"]
