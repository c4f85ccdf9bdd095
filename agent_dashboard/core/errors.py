"""
Error taxonomy shared by the OAuth and deployment services.

Each error carries the HTTP status it maps to and a short machine-readable
code; the application converts them into ``{"error": message}`` bodies.
"""

from __future__ import annotations

from http import HTTPStatus

from fastapi.responses import JSONResponse


class DashboardError(Exception):
    """Base class for failures reported to API callers."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    retryable: bool = False

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequest(DashboardError):
    status_code = HTTPStatus.BAD_REQUEST
    code = "invalid_request"


class UnsupportedProvider(DashboardError):
    """Raised when a provider/service pair has no entry in the provider table."""

    status_code = HTTPStatus.BAD_REQUEST
    code = "unsupported_provider"


class StateMismatch(DashboardError):
    """Raised when a callback state is forged, replayed, or expired."""

    status_code = HTTPStatus.BAD_REQUEST
    code = "state_mismatch"


class AuthorizationDenied(DashboardError):
    """Raised when the provider reports an error instead of a code."""

    status_code = HTTPStatus.BAD_REQUEST
    code = "authorization_denied"


class ExchangeFailed(DashboardError):
    """Raised when the token endpoint rejects or garbles a code exchange."""

    status_code = HTTPStatus.BAD_REQUEST
    code = "exchange_failed"


class ReauthenticationRequired(DashboardError):
    """Raised when no usable token exists and it cannot be refreshed."""

    status_code = HTTPStatus.UNAUTHORIZED
    code = "reauthentication_required"


class InvalidCredential(DashboardError):
    """Raised when a bot token is rejected by the messaging provider."""

    status_code = HTTPStatus.BAD_REQUEST
    code = "invalid_credential"


class WebhookRegistrationFailed(DashboardError):
    """Raised when a provider accepts the bot token but refuses the webhook."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "webhook_registration_failed"


class StorageFailure(DashboardError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "storage_failure"


class UpstreamUnavailable(DashboardError):
    status_code = HTTPStatus.BAD_GATEWAY
    code = "upstream_unavailable"
    retryable = True


class UpstreamTimeout(UpstreamUnavailable):
    status_code = HTTPStatus.GATEWAY_TIMEOUT
    code = "upstream_timeout"


def error_response(exc: DashboardError) -> JSONResponse:
    """Render an error as the API's `{"error": message}` body."""
    content: dict = {"error": exc.message}
    if exc.retryable:
        content["retryable"] = True
    return JSONResponse(status_code=int(exc.status_code), content=content)


__all__ = [
    "AuthorizationDenied",
    "DashboardError",
    "ExchangeFailed",
    "InvalidCredential",
    "InvalidRequest",
    "ReauthenticationRequired",
    "StateMismatch",
    "StorageFailure",
    "UnsupportedProvider",
    "UpstreamTimeout",
    "UpstreamUnavailable",
    "WebhookRegistrationFailed",
    "error_response",
]
