"""Service layer exports."""

from .deployment import DeploymentService
from .oauth_flow import AuthorizationRequest, CompletedAuthorization, OAuthFlowService
from .oauth_tokens import OAuthTokenService
from .telegram_webhook import TelegramWebhookService
from .token_cipher import TokenCipherService, TokenDecryptionError

__all__ = [
    "AuthorizationRequest",
    "CompletedAuthorization",
    "DeploymentService",
    "OAuthFlowService",
    "OAuthTokenService",
    "TelegramWebhookService",
    "TokenCipherService",
    "TokenDecryptionError",
]
