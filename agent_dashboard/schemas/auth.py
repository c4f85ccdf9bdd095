"""Schemas related to OAuth flows."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., min_length=1, description="Authorization code returned by the provider.")
    state: str = Field(..., min_length=1, description="Opaque state token issued when starting OAuth.")


class AuthorizationStart(BaseModel):
    """Returned instead of a redirect when the caller asks for JSON."""

    authorization_url: str
    state: str


class CallbackResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Authentication successful"
    provider: str
    service: str
    component_id: Optional[str] = Field(None, alias="componentId")
    redirect_to: Optional[str] = Field(None, alias="redirectTo")


class AuthStatus(BaseModel):
    """Whether a usable token exists; never includes the token itself."""

    model_config = ConfigDict(populate_by_name=True)

    authenticated: bool
    reason: Optional[Literal["expired", "not_found", "invalid"]] = None
    scope: Optional[str] = None
    expires_in_seconds: Optional[int] = Field(None, alias="expiresInSeconds")


class TokenDebugInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token_exists: bool = Field(..., alias="tokenExists")
    is_expired: Optional[bool] = Field(None, alias="isExpired")
    access_token_exists: Optional[bool] = Field(None, alias="accessTokenExists")
    refresh_token_exists: Optional[bool] = Field(None, alias="refreshTokenExists")
    expires_in_seconds: Optional[int] = Field(None, alias="expiresInSeconds")
    scope: Optional[str] = None
    message: Optional[str] = None


__all__ = [
    "AuthStatus",
    "AuthorizationStart",
    "CallbackResult",
    "OAuthCallbackPayload",
    "TokenDebugInfo",
]
