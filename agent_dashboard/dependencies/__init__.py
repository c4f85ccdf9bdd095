"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_deployment_service,
    get_oauth_clients,
    get_oauth_flow_service,
    get_oauth_state_encoder,
    get_oauth_token_service,
    get_provider_registry,
    get_session_encoder,
    get_state_store,
    get_telegram_webhook_service,
    get_token_cipher_service,
    get_token_store,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_deployment_service",
    "get_oauth_clients",
    "get_oauth_flow_service",
    "get_oauth_state_encoder",
    "get_oauth_token_service",
    "get_provider_registry",
    "get_session_encoder",
    "get_state_store",
    "get_telegram_webhook_service",
    "get_token_cipher_service",
    "get_token_store",
]
