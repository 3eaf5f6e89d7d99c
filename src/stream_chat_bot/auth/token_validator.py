"""
Twitch token validation.

Checks that configured tokens are real, introspects them (refreshing once
on 401 or network failure), compares scopes with the required set and
drives the interactive OAuth flow when new tokens are needed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from loguru import logger

from ..config_manager import Config, TwitchConfig
from ..exceptions import TokenRefreshError, TwitchApiError
from .constants import REQUIRED_SCOPES
from .oauth_client import TokenInfo, TwitchOAuthClient
from .token_store import TokenStore

# Obvious sentinel values left in config files instead of real tokens
PLACEHOLDER_EXACT = ("undefined", "null", "none", "")
PLACEHOLDER_PREFIXES = ("test_", "placeholder", "demo_", "temp_", "example_")
PLACEHOLDER_SUFFIXES = ("_here",)

OAuthFlow = Callable[[TwitchConfig], Awaitable[Optional[Dict[str, Any]]]]


def is_placeholder_token(token: Optional[str]) -> bool:
    """
    Return True when a token is a placeholder rather than a real OAuth token.

    Args:
        token: Raw token value from config or the token store

    Returns:
        bool: True for None, empty, or any known sentinel pattern
    """
    if token is None:
        return True
    value = str(token).strip().lower()
    if value in PLACEHOLDER_EXACT:
        return True
    return value.startswith(PLACEHOLDER_PREFIXES) or value.endswith(PLACEHOLDER_SUFFIXES)


@dataclass
class TokenValidationResult:
    """Outcome of validating one platform's tokens."""

    is_valid: bool = False
    needs_refresh: bool = False
    needs_new_tokens: bool = False
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    retryable: bool = False
    user_experience: str = "interrupted"
    missing_client_credentials: bool = False
    refreshed: bool = False
    user_id: Optional[str] = None
    login: Optional[str] = None
    scopes: List[str] = field(default_factory=list)
    # Config carrying the latest (possibly refreshed) tokens
    config: Optional[TwitchConfig] = None


@dataclass
class AuthValidationSummary:
    is_valid: bool = True
    platforms: Dict[str, TokenValidationResult] = field(default_factory=dict)


class TokenValidator:
    """
    Validates Twitch tokens and runs the interactive flow when required.

    Args:
        oauth_client: Client for the OAuth endpoints; built from config when None
        token_store: Persists refreshed or newly issued tokens
        oauth_flow: Interactive authorization callable returning
            {"access_token", "refresh_token"} or None when declined
        required_scopes: Scopes the token must carry
    """

    def __init__(
        self,
        oauth_client: Optional[TwitchOAuthClient] = None,
        token_store: Optional[TokenStore] = None,
        oauth_flow: Optional[OAuthFlow] = None,
        required_scopes=REQUIRED_SCOPES,
    ):
        self._oauth_client = oauth_client
        self._token_store = token_store
        self._oauth_flow = oauth_flow
        self.required_scopes = tuple(required_scopes)

    def _client_for(self, config: TwitchConfig) -> TwitchOAuthClient:
        if self._oauth_client is not None:
            return self._oauth_client
        return TwitchOAuthClient(config.client_id, config.resolved_client_secret())

    async def validate_twitch_tokens(self, config: TwitchConfig) -> TokenValidationResult:
        """
        Validate the tokens in a Twitch config section.

        Order: credentials present, tokens present, not placeholders,
        introspection (one refresh on 401/network), scope comparison.
        Persisted tokens take precedence over the ones in config.
        """
        config = self._merge_stored_tokens(config)
        result = TokenValidationResult(config=config)

        if not config.client_id or not config.resolved_client_secret():
            result.errors.append("Missing clientId or clientSecret")
            result.needs_new_tokens = True
            result.missing_client_credentials = True
            return result

        if not config.access_token or not config.refresh_token:
            result.errors.append("Missing accessToken or refreshToken")
            result.needs_new_tokens = True
            return result

        if is_placeholder_token(config.access_token):
            result.errors.append(
                "Placeholder or test accessToken detected - real OAuth token required"
            )
            result.needs_new_tokens = True
            return result

        info = await self._introspect(self._client_for(config), result)
        if info is None:
            return result

        actual = set(info.scopes)
        missing = [scope for scope in self.required_scopes if scope not in actual]
        if missing:
            logger.warning(
                f"[TokenValidator] Token missing required scopes: {', '.join(missing)}"
            )
            result.errors.extend(f"Missing required OAuth scope: {scope}" for scope in missing)
            result.needs_new_tokens = True
            result.scopes = info.scopes
            return result

        result.is_valid = True
        result.user_experience = "seamless"
        result.user_id = info.user_id
        result.login = info.login
        result.scopes = info.scopes
        logger.info("[TokenValidator] Token scopes validated successfully")
        return result

    def _merge_stored_tokens(self, config: TwitchConfig) -> TwitchConfig:
        if self._token_store is None:
            return config
        try:
            stored = self._token_store.load()
        except ValueError as e:
            logger.warning(f"[TokenValidator] Ignoring unreadable token store: {e}")
            return config
        if not stored or not stored.get("accessToken"):
            return config
        logger.debug("[TokenValidator] Using tokens from the token store")
        return config.model_copy(
            update={
                "access_token": stored["accessToken"],
                "refresh_token": stored.get("refreshToken") or config.refresh_token,
            }
        )

    async def _introspect(
        self, client: TwitchOAuthClient, result: TokenValidationResult
    ) -> Optional[TokenInfo]:
        refreshed = False
        while True:
            status: Optional[int] = None
            try:
                return await client.validate_token(result.config.access_token)
            except httpx.TransportError as e:
                failure = f"Network error during token validation: {e}"
                logger.warning(f"[TokenValidator] {failure}")
            except TwitchApiError as e:
                status = e.status
                failure = f"Token validation failed: {e}"
                if status != 401:
                    result.errors.append(failure)
                    result.needs_new_tokens = True
                    return None

            if refreshed:
                result.errors.append(failure)
                result.needs_new_tokens = True
                result.needs_refresh = status == 401
                result.retryable = status is None
                return None

            if not await self._refresh(client, result, network_failure=status is None):
                return None
            refreshed = True

    async def _refresh(
        self, client: TwitchOAuthClient, result: TokenValidationResult, network_failure: bool
    ) -> bool:
        config = result.config
        if not config.refresh_token:
            result.errors.append("No refresh token available - OAuth flow required")
            result.needs_refresh = True
            result.needs_new_tokens = True
            return False

        try:
            tokens = await client.refresh_token(config.refresh_token)
        except TokenRefreshError as e:
            if not network_failure:
                result.errors.append("Access token expired or invalid")
            result.errors.append(f"Refresh token exchange failed: {e}")
            result.needs_refresh = True
            result.needs_new_tokens = True
            result.retryable = e.retryable
            return False

        expires_at = None
        if tokens.expires_in:
            expires_at = (
                datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in)
            ).isoformat()

        result.config = config.model_copy(
            update={"access_token": tokens.access_token, "refresh_token": tokens.refresh_token}
        )
        result.refreshed = True
        if self._token_store is not None:
            self._token_store.save(tokens.access_token, tokens.refresh_token, expires_at)
        logger.info("[TokenValidator] Token refreshed successfully, retrying validation")
        return True

    async def validate_all_tokens(self, config: Config) -> AuthValidationSummary:
        """Validate every enabled platform that needs tokens (only Twitch today)."""
        summary = AuthValidationSummary()
        if config.twitch.enabled:
            logger.info("[TokenValidator] Validating Twitch authentication tokens...")
            twitch = await self.validate_twitch_tokens(config.twitch)
            summary.platforms["twitch"] = twitch
            if not twitch.is_valid:
                summary.is_valid = False
        return summary

    async def run_oauth_flow(self, config: TwitchConfig) -> Optional[Dict[str, Any]]:
        """
        Run the interactive authorization flow.

        Returns:
            Token dict on success, None when unavailable, declined or failed.
        """
        if self._oauth_flow is None:
            logger.error("[TokenValidator] Interactive OAuth flow is not available")
            return None
        try:
            tokens = await self._oauth_flow(config)
        except Exception as e:
            logger.error(f"[TokenValidator] OAuth flow failed: {e}")
            return None
        if not tokens or not tokens.get("access_token"):
            logger.error("[TokenValidator] OAuth flow failed")
            return None
        logger.success("[TokenValidator] OAuth flow completed successfully")
        return tokens

    async def handle_authentication_flow(
        self, results: AuthValidationSummary, config: Config
    ) -> bool:
        """
        React to a failed validation by running the OAuth flow and
        re-validating in memory.

        Returns:
            bool: True when every platform ends up authenticated
        """
        if results.is_valid:
            logger.info("[TokenValidator] All authentication tokens validated successfully")
            return True

        twitch = results.platforms.get("twitch")
        if twitch is None or twitch.is_valid:
            logger.error(
                "[TokenValidator] Authentication validation failed - "
                "unable to connect to streaming platforms"
            )
            return False

        if twitch.missing_client_credentials:
            logger.error(
                "[TokenValidator] Missing clientId or clientSecret for Twitch authentication. "
                "Set twitch.clientId in the config and TWITCH_CLIENT_SECRET in the environment."
            )
            return False

        for error in twitch.errors:
            logger.warning(f"[TokenValidator] {error}")

        tokens = await self.run_oauth_flow(twitch.config or config.twitch)
        if not tokens:
            return False

        updated = (twitch.config or config.twitch).model_copy(
            update={
                "access_token": tokens["access_token"],
                "refresh_token": tokens.get("refresh_token"),
            }
        )
        if self._token_store is not None:
            self._token_store.save(
                tokens["access_token"], tokens.get("refresh_token"), tokens.get("expires_at")
            )

        revalidation = await self.validate_twitch_tokens(updated)
        results.platforms["twitch"] = revalidation
        results.is_valid = revalidation.is_valid

        if revalidation.is_valid:
            logger.success("[TokenValidator] Authentication restored after OAuth flow")
            return True

        logger.error("[TokenValidator] Authentication validation failed after OAuth flow")
        return False
