"""
FastAPI routes for the agent dashboard backend.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from http import HTTPStatus
from typing import Annotated, Any
from urllib.parse import urlencode, urlsplit

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from agent_dashboard.clients.oauth import OAuthStateEncoder
from agent_dashboard.core.config import AppSettings
from agent_dashboard.core.errors import (
    DashboardError,
    InvalidCredential,
    InvalidRequest,
    StateMismatch,
    error_response,
)
from agent_dashboard.dependencies import (
    SettingsDependency,
    get_deployment_service,
    get_oauth_flow_service,
    get_oauth_token_service,
    get_session_encoder,
    get_telegram_webhook_service,
)
from agent_dashboard.schemas import (
    AuthorizationStart,
    AuthStatus,
    CallbackResult,
    DiscordDeployRequest,
    DiscordDeployResponse,
    OAuthCallbackPayload,
    TelegramDeployRequest,
    TelegramDeployResponse,
    TelegramUpdate,
    TokenDebugInfo,
)
from agent_dashboard.services.oauth_flow import CompletedAuthorization

router = APIRouter()
logger = logging.getLogger(__name__)

STATE_COOKIE = "oauth_state"
USER_COOKIE = "user_id"
USER_COOKIE_MAX_AGE = 60 * 60 * 24 * 30


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/status", response_model=AuthStatus, response_model_exclude_none=True)
async def get_auth_status(
    request: Request,
    token_service: Annotated[Any, Depends(get_oauth_token_service)],
    session_encoder: Annotated[Any, Depends(get_session_encoder)],
    service: str | None = Query(None, description="Service to check, e.g. calendar."),
    provider: str = Query("google"),
) -> AuthStatus:
    """Report whether a valid, non-expired token exists for the service."""
    return await asyncio.to_thread(
        token_service.status,
        user_id=_session_user(request, session_encoder),
        provider=provider,
        service=service,
    )


@router.get("/auth/debug", response_model=TokenDebugInfo, response_model_exclude_none=True)
async def get_auth_debug(
    request: Request,
    token_service: Annotated[Any, Depends(get_oauth_token_service)],
    session_encoder: Annotated[Any, Depends(get_session_encoder)],
    service: str | None = Query(None),
    provider: str = Query("google"),
) -> TokenDebugInfo:
    """Describe the stored token without revealing it."""
    if service is None and provider == "google":
        service = "gmail"
    return await asyncio.to_thread(
        token_service.debug,
        user_id=_session_user(request, session_encoder),
        provider=provider,
        service=service,
    )


@router.get("/auth/{provider}", status_code=HTTPStatus.FOUND)
async def start_oauth_flow(
    request: Request,
    provider: str,
    flow_service: Annotated[Any, Depends(get_oauth_flow_service)],
    session_encoder: Annotated[Any, Depends(get_session_encoder)],
    settings: SettingsDependency,
    service: str | None = Query(None, description="Requested capability, e.g. gmail."),
    component_id: str | None = Query(
        None,
        alias="componentId",
        description="Workflow node that started the flow.",
    ),
    redirect_to: str | None = Query(
        None, description="Front-end location to return to after authentication."
    ),
    redirect: bool = Query(
        True, description="When false, return the authorization URL as JSON."
    ),
) -> Response:
    """Kick off the OAuth flow by issuing state and redirecting to the provider."""
    session_user = _session_user(request, session_encoder)
    user_id = session_user or f"anon-{uuid.uuid4().hex}"
    auth_request = await asyncio.to_thread(
        flow_service.begin,
        provider=provider,
        service=service,
        user_id=user_id,
        component_id=component_id,
        redirect_to=_checked_redirect_target(redirect_to, settings),
    )

    if redirect:
        response: Response = RedirectResponse(
            url=auth_request.authorization_url, status_code=HTTPStatus.FOUND
        )
    else:
        response = JSONResponse(
            content=AuthorizationStart(
                authorization_url=auth_request.authorization_url,
                state=auth_request.state,
            ).model_dump()
        )
    response.set_cookie(
        STATE_COOKIE,
        auth_request.state,
        max_age=settings.oauth.state_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    if session_user is None:
        _set_session_cookie(response, user_id, session_encoder, settings)
    return response


@router.get("/auth/{provider}/callback")
async def handle_oauth_callback_get(
    request: Request,
    provider: str,
    flow_service: Annotated[Any, Depends(get_oauth_flow_service)],
    session_encoder: Annotated[Any, Depends(get_session_encoder)],
    settings: SettingsDependency,
    code: str | None = Query(None, description="Authorization code."),
    state: str | None = Query(None, description="OAuth state token."),
    error: str | None = Query(None, description="Error reported by the provider."),
    redirect: bool = Query(
        False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Complete the provider redirect; browsers are sent back to the front-end."""
    wants_redirect = redirect or "text/html" in request.headers.get("accept", "").lower()
    cookie_state = request.cookies.get(STATE_COOKIE)
    return_to = flow_service.redirect_target(state)

    try:
        if error:
            await asyncio.to_thread(
                flow_service.deny,
                provider=provider,
                error=error,
                state=state,
                cookie_state=cookie_state,
            )
        if not code or not state:
            raise InvalidRequest("Missing required parameters: code and state.")
        completed = await flow_service.complete(
            provider=provider, code=code, state=state, cookie_state=cookie_state
        )
    except DashboardError as exc:
        logger.warning("OAuth callback for %s failed: %s", provider, exc.message)
        frontend = settings.frontend_base_url
        if wants_redirect and frontend:
            failure: Response = RedirectResponse(
                url=f"{frontend.rstrip('/')}/auth/error?{urlencode({'error': exc.code})}",
                status_code=HTTPStatus.FOUND,
            )
        elif wants_redirect and return_to:
            failure = RedirectResponse(
                url=_append_query(return_to, error=exc.code),
                status_code=HTTPStatus.FOUND,
            )
        else:
            failure = error_response(exc)
        failure.delete_cookie(STATE_COOKIE, path="/")
        return failure

    result = _callback_result(completed)
    target = completed.redirect_to or settings.frontend_base_url
    if target and wants_redirect:
        response: Response = RedirectResponse(
            url=_append_query(
                target,
                connected=completed.record.provider.value,
                service=completed.record.service.value,
                componentId=completed.component_id,
            ),
            status_code=HTTPStatus.FOUND,
        )
    else:
        response = JSONResponse(content=result.model_dump(by_alias=True))
    _remember_user(response, completed, session_encoder, settings)
    return response


@router.post("/auth/{provider}/callback", response_model=CallbackResult)
async def handle_oauth_callback_post(
    request: Request,
    provider: str,
    payload: OAuthCallbackPayload,
    flow_service: Annotated[Any, Depends(get_oauth_flow_service)],
    session_encoder: Annotated[Any, Depends(get_session_encoder)],
    settings: SettingsDependency,
) -> Response:
    """Complete the exchange for front-ends that capture the redirect themselves."""
    try:
        completed = await flow_service.complete(
            provider=provider,
            code=payload.code,
            state=payload.state,
            cookie_state=request.cookies.get(STATE_COOKIE),
        )
    except DashboardError as exc:
        logger.warning("OAuth callback for %s failed: %s", provider, exc.message)
        failure = error_response(exc)
        failure.delete_cookie(STATE_COOKIE, path="/")
        return failure

    response = JSONResponse(content=_callback_result(completed).model_dump(by_alias=True))
    _remember_user(response, completed, session_encoder, settings)
    return response


@router.post("/deploy/discord", response_model=DiscordDeployResponse)
async def deploy_to_discord(
    payload: DiscordDeployRequest,
    deployment_service: Annotated[Any, Depends(get_deployment_service)],
) -> DiscordDeployResponse:
    """Validate a Discord bot token and return the server invite URL."""
    return await deployment_service.deploy_discord(payload)


@router.post("/deploy/telegram", response_model=TelegramDeployResponse)
async def deploy_to_telegram(
    request: Request,
    payload: TelegramDeployRequest,
    deployment_service: Annotated[Any, Depends(get_deployment_service)],
) -> TelegramDeployResponse:
    """Validate a Telegram bot token and point its webhook at this service."""
    return await deployment_service.deploy_telegram(
        payload, request_origin=str(request.base_url).rstrip("/")
    )


@router.post("/webhook/telegram/{bot_id}", status_code=HTTPStatus.OK)
async def telegram_webhook(
    request: Request,
    bot_id: str,
    webhook_service: Annotated[Any, Depends(get_telegram_webhook_service)],
    secret_token: str | None = Header(
        None, alias="X-Telegram-Bot-Api-Secret-Token"
    ),
) -> dict:
    """Acknowledge a Telegram update; processing failures never change the reply."""
    if not webhook_service.verify_secret(bot_id, secret_token):
        raise InvalidCredential(
            "Invalid webhook secret token.", status_code=HTTPStatus.FORBIDDEN
        )

    try:
        update = TelegramUpdate.model_validate(await request.json())
        await webhook_service.handle_update(bot_id, update)
    except Exception:  # Telegram retries anything but a fast 200.
        logger.exception("Failed to process Telegram update for bot %s", bot_id)
    return {"status": "ok"}


@router.post("/webhook/telegram-bot", status_code=HTTPStatus.OK)
async def telegram_webhook_by_query(
    request: Request,
    webhook_service: Annotated[Any, Depends(get_telegram_webhook_service)],
    bot_id: str | None = Query(None, alias="botId"),
    secret_token: str | None = Header(
        None, alias="X-Telegram-Bot-Api-Secret-Token"
    ),
) -> dict:
    """Variant of the Telegram webhook taking the bot id as a query parameter."""
    if not bot_id:
        raise InvalidRequest("Bot ID is required")
    return await telegram_webhook(
        request=request,
        bot_id=bot_id,
        webhook_service=webhook_service,
        secret_token=secret_token,
    )


def _callback_result(completed: CompletedAuthorization) -> CallbackResult:
    return CallbackResult(
        provider=completed.record.provider.value,
        service=completed.record.service.value,
        component_id=completed.component_id,
        redirect_to=completed.redirect_to,
    )


def _session_user(request: Request, session_encoder: OAuthStateEncoder) -> str | None:
    """Resolve the caller from the signed session cookie; unsigned values are ignored."""
    cookie = request.cookies.get(USER_COOKIE)
    if not cookie:
        return None
    try:
        user_id = session_encoder.decode(cookie).get("user_id")
    except StateMismatch:
        logger.info("Ignoring session cookie with an invalid signature")
        return None
    return user_id if isinstance(user_id, str) and user_id else None


def _set_session_cookie(
    response: Response,
    user_id: str,
    session_encoder: OAuthStateEncoder,
    settings: AppSettings,
) -> None:
    response.set_cookie(
        USER_COOKIE,
        session_encoder.encode({"user_id": user_id}),
        max_age=USER_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def _remember_user(
    response: Response,
    completed: CompletedAuthorization,
    session_encoder: OAuthStateEncoder,
    settings: AppSettings,
) -> None:
    _set_session_cookie(response, completed.record.user_id, session_encoder, settings)
    response.delete_cookie(STATE_COOKIE, path="/")


def _checked_redirect_target(
    redirect_to: str | None, settings: AppSettings
) -> str | None:
    """Allow relative paths or URLs on the configured front-end origin only."""
    if not redirect_to:
        return None
    target = urlsplit(redirect_to)
    if not target.scheme and not target.netloc and redirect_to.startswith("/"):
        if settings.frontend_base_url:
            return f"{settings.frontend_base_url.rstrip('/')}{redirect_to}"
        return redirect_to
    frontend = urlsplit(settings.frontend_base_url or "")
    if frontend.netloc and (target.scheme, target.netloc) == (frontend.scheme, frontend.netloc):
        return redirect_to
    raise InvalidRequest("redirect_to must point at the dashboard front-end.")


def _append_query(url: str, **params: str | None) -> str:
    query = urlencode({key: value for key, value in params.items() if value})
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"
