"""
FastAPI application entrypoint for the agent dashboard backend.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agent_dashboard.api.routes import router as api_router
from agent_dashboard.core.config import get_settings
from agent_dashboard.core.errors import DashboardError, error_response
from agent_dashboard.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def _handle_dashboard_error(request: Request, exc: DashboardError) -> JSONResponse:
    if exc.status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=HTTPStatus.BAD_REQUEST,
        content={"error": details or "Invalid request."},
    )


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="AI Agent Dashboard API",
        version="0.1.0",
        description="OAuth connections and chatbot deployment for the agent builder.",
    )
    app.add_exception_handler(DashboardError, _handle_dashboard_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
