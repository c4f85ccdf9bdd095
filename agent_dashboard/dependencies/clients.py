"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from agent_dashboard.clients import (
    DiscordClient,
    OAuthProviderClient,
    OAuthStateEncoder,
    SQLiteStateStore,
    SQLiteTokenStore,
    TelegramBotClient,
)
from agent_dashboard.core.config import get_settings
from agent_dashboard.core.providers import ProviderRegistry, build_provider_registry
from agent_dashboard.models.oauth import Provider
from agent_dashboard.services import (
    DeploymentService,
    OAuthFlowService,
    OAuthTokenService,
    TelegramWebhookService,
    TokenCipherService,
)
from agent_dashboard.utils.http import RetryConfig


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


def _retry_config() -> RetryConfig:
    oauth = _settings().oauth
    return RetryConfig(
        attempts=oauth.retry_attempts,
        base_delay_seconds=oauth.retry_base_delay_seconds,
    )


@lru_cache()
def get_provider_registry() -> ProviderRegistry:
    """Build the immutable provider table once per process."""
    return build_provider_registry(_settings())


@lru_cache()
def get_oauth_clients() -> Mapping[Provider, OAuthProviderClient]:
    """Provide one OAuth client per registered provider."""
    timeout = _settings().oauth.http_timeout_seconds
    retry = _retry_config()
    return MappingProxyType(
        {
            config.provider: OAuthProviderClient(
                config, timeout=timeout, retry_config=retry
            )
            for config in get_provider_registry()
        }
    )


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder keyed by the state signing secret."""
    return OAuthStateEncoder(secret_key=_settings().security.state_secret)


@lru_cache()
def get_session_encoder() -> OAuthStateEncoder:
    """Sign the `user_id` session cookie with a key distinct from OAuth state."""
    return OAuthStateEncoder(secret_key=f"{_settings().security.state_secret}:session")


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    return TokenCipherService(secret=_settings().security.token_encryption_secret)


@lru_cache()
def get_token_store() -> SQLiteTokenStore:
    """Provide the shared SQLite token store."""
    return SQLiteTokenStore(
        _settings().token_db_path, cipher=get_token_cipher_service()
    )


@lru_cache()
def get_state_store() -> SQLiteStateStore:
    """Provide the pending authorization state table."""
    return SQLiteStateStore(_settings().token_db_path)


def get_oauth_flow_service() -> OAuthFlowService:
    """Build the authorization flow service."""
    return OAuthFlowService(
        registry=get_provider_registry(),
        clients=get_oauth_clients(),
        state_encoder=get_oauth_state_encoder(),
        state_store=get_state_store(),
        token_store=get_token_store(),
        oauth_settings=_settings().oauth,
    )


def get_oauth_token_service() -> OAuthTokenService:
    """Build the token status and refresh service."""
    return OAuthTokenService(
        token_store=get_token_store(),
        registry=get_provider_registry(),
        clients=get_oauth_clients(),
    )


@lru_cache()
def get_deployment_service() -> DeploymentService:
    """Provide the Discord/Telegram deployment service."""
    settings = _settings()
    timeout = settings.oauth.http_timeout_seconds
    retry = _retry_config()
    return DeploymentService(
        discord_client=DiscordClient(timeout=timeout, retry_config=retry),
        telegram_client=TelegramBotClient(timeout=timeout, retry_config=retry),
        settings=settings.deployment,
    )


@lru_cache()
def get_telegram_webhook_service() -> TelegramWebhookService:
    """Provide the inbound Telegram update handler."""
    return TelegramWebhookService(
        expected_secret=get_deployment_service().webhook_secret,
    )


__all__ = [
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
