from .constants import AuthState, REQUIRED_SCOPES
from .oauth_client import RefreshedTokens, TokenInfo, TwitchOAuthClient
from .token_store import TokenStore
from .token_validator import (
    AuthValidationSummary,
    TokenValidationResult,
    TokenValidator,
    is_placeholder_token,
)
from .twitch_auth_manager import TwitchAuthManager, TwitchAuthProvider

__all__ = [
    "AuthState",
    "REQUIRED_SCOPES",
    "RefreshedTokens",
    "TokenInfo",
    "TwitchOAuthClient",
    "TokenStore",
    "AuthValidationSummary",
    "TokenValidationResult",
    "TokenValidator",
    "is_placeholder_token",
    "TwitchAuthManager",
    "TwitchAuthProvider",
]
