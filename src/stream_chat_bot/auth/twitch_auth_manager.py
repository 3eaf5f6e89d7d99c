"""
Authentication lifecycle for the game-streaming platform.

State machine: UNINITIALIZED -> INITIALIZING -> READY, or ERROR on failure.
ERROR is recoverable: update_config() resets to UNINITIALIZED and a new
initialize() can reach READY.
"""

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

import httpx
from loguru import logger

from ..config_manager import TwitchConfig
from ..exceptions import (
    AuthConfigError,
    AuthenticationError,
    ChatBotError,
    TokenRefreshError,
    TwitchApiError,
)
from .constants import (
    NOT_INITIALIZED_MESSAGE,
    REFRESH_THRESHOLD_SECONDS,
    REQUIRED_SCOPES,
    AuthState,
)
from .oauth_client import TokenInfo, TwitchOAuthClient
from .token_store import TokenStore


class TwitchAuthProvider:
    """
    Handle given to platform adapters.

    Always reads the manager's current token, so a refresh performed by the
    manager is visible without handing out a new provider.
    """

    def __init__(self, manager: "TwitchAuthManager"):
        self._manager = manager

    @property
    def client_id(self) -> str:
        return self._manager.config.client_id

    @property
    def user_id(self) -> str:
        return self._manager.get_user_id()

    @property
    def scopes(self) -> List[str]:
        return self._manager.get_scopes()

    async def get_access_token(self) -> str:
        return await self._manager.get_access_token()


class TwitchAuthManager:
    """
    Owns the Twitch tokens for one channel.

    Args:
        config: Twitch config section
        oauth_client: OAuth endpoint client; built from config when None
        token_store: Persisted tokens; built from config.token_store_path when None
        clock: Wall clock in seconds, injectable for tests
    """

    def __init__(
        self,
        config: TwitchConfig,
        oauth_client: Optional[TwitchOAuthClient] = None,
        token_store: Optional[TokenStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._oauth_client = oauth_client
        self._token_store = token_store
        # Injected instances survive update_config()
        self._given_oauth_client = oauth_client
        self._given_token_store = token_store
        self._clock = clock

        self.state = AuthState.UNINITIALIZED
        self.last_error: Optional[Exception] = None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._expires_at: Optional[float] = None
        self._user_id: Optional[str] = None
        self._login: Optional[str] = None
        self._scopes: List[str] = []

    @property
    def oauth_client(self) -> TwitchOAuthClient:
        if self._oauth_client is None:
            self._oauth_client = TwitchOAuthClient(
                self.config.client_id, self.config.resolved_client_secret()
            )
        return self._oauth_client

    @property
    def token_store(self) -> TokenStore:
        if self._token_store is None:
            self._token_store = TokenStore(self.config.token_store_path)
        return self._token_store

    def get_state(self) -> AuthState:
        return self.state

    def validate_config(self) -> None:
        """
        Check that every field needed for authentication is configured.

        Raises:
            AuthConfigError: Listing the missing fields
        """
        missing = []
        if not self.config.client_id:
            missing.append("clientId")
        if not self.config.resolved_client_secret():
            missing.append("clientSecret")
        if not self.config.channel:
            missing.append("channel")
        if missing:
            raise AuthConfigError(missing)

    def update_config(self, config: TwitchConfig) -> None:
        """Swap the config and return to UNINITIALIZED, dropping cached tokens."""
        self.config = config
        self._oauth_client = self._given_oauth_client
        self._token_store = self._given_token_store
        self._access_token = None
        self._refresh_token = None
        self._expires_at = None
        self._user_id = None
        self._login = None
        self._scopes = []
        self.last_error = None
        self.state = AuthState.UNINITIALIZED
        logger.debug("[TwitchAuth] Configuration updated, state reset to UNINITIALIZED")

    async def initialize(self) -> None:
        """
        Load, validate and (if needed) refresh tokens.

        No-op when already READY or INITIALIZING.

        Raises:
            AuthenticationError: Tokens are missing or unusable; state becomes ERROR
        """
        if self.state == AuthState.READY:
            logger.debug("[TwitchAuth] Already initialized")
            return
        if self.state == AuthState.INITIALIZING:
            logger.debug("[TwitchAuth] Initialization already in progress")
            return

        self.state = AuthState.INITIALIZING
        try:
            self.validate_config()
            self._load_tokens()
            if not self._access_token:
                raise AuthenticationError("No access token available - OAuth flow required")

            info = await self._validate_with_refresh()
            missing = [scope for scope in REQUIRED_SCOPES if scope not in info.scopes]
            if missing:
                raise AuthenticationError(
                    f"Missing required OAuth scopes: {', '.join(missing)}"
                )

            self._user_id = info.user_id
            self._login = info.login
            self._scopes = list(info.scopes)
            if info.expires_in:
                self._expires_at = self._clock() + info.expires_in
        except (ChatBotError, httpx.HTTPError) as e:
            self.state = AuthState.ERROR
            self.last_error = e
            logger.error(f"[TwitchAuth] Initialization failed: {e}")
            if isinstance(e, AuthenticationError):
                raise
            raise AuthenticationError(str(e)) from e

        self.state = AuthState.READY
        logger.success(f"[TwitchAuth] Authenticated as {self._login} ({self._user_id})")

    def _load_tokens(self) -> None:
        stored = self.token_store.load()
        if stored and stored.get("accessToken"):
            self._access_token = stored["accessToken"]
            self._refresh_token = stored.get("refreshToken") or self.config.refresh_token
            self._expires_at = _parse_expires_at(stored.get("expiresAt"))
            return
        self._access_token = self.config.access_token
        self._refresh_token = self.config.refresh_token

    async def _validate_with_refresh(self) -> TokenInfo:
        try:
            return await self.oauth_client.validate_token(self._access_token)
        except TwitchApiError as e:
            if e.status != 401:
                raise
            logger.info("[TwitchAuth] Access token rejected (401), refreshing")
        await self.refresh_access_token()
        return await self.oauth_client.validate_token(self._access_token)

    async def refresh_access_token(self) -> str:
        """
        Exchange the refresh token and persist the result.

        Returns:
            str: The new access token

        Raises:
            TokenRefreshError: The exchange failed
        """
        if not self._refresh_token:
            raise TokenRefreshError("No refresh token available - OAuth flow required")

        tokens = await self.oauth_client.refresh_token(self._refresh_token)
        self._access_token = tokens.access_token
        self._refresh_token = tokens.refresh_token or self._refresh_token
        self._expires_at = self._clock() + tokens.expires_in if tokens.expires_in else None
        if tokens.scopes:
            self._scopes = list(tokens.scopes)

        expires_at = None
        if self._expires_at is not None:
            expires_at = datetime.fromtimestamp(self._expires_at, tz=timezone.utc).isoformat()
        self.token_store.save(self._access_token, self._refresh_token, expires_at)
        logger.info("[TwitchAuth] Access token refreshed and persisted")
        return self._access_token

    def _require_ready(self) -> None:
        if self.state != AuthState.READY:
            raise AuthenticationError(NOT_INITIALIZED_MESSAGE)

    def get_auth_provider(self) -> TwitchAuthProvider:
        self._require_ready()
        return TwitchAuthProvider(self)

    def get_user_id(self) -> str:
        self._require_ready()
        return self._user_id

    def get_scopes(self) -> List[str]:
        self._require_ready()
        return list(self._scopes)

    async def get_access_token(self) -> str:
        """Current access token, refreshed first when it expires soon."""
        self._require_ready()
        if (
            self._expires_at is not None
            and self._expires_at - self._clock() < REFRESH_THRESHOLD_SECONDS
        ):
            try:
                await self.refresh_access_token()
            except TokenRefreshError as e:
                if not e.retryable:
                    self.state = AuthState.ERROR
                    self.last_error = e
                logger.error(f"[TwitchAuth] Proactive token refresh failed: {e}")
                raise
        return self._access_token


def _parse_expires_at(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        logger.warning(f"[TwitchAuth] Ignoring unparseable token expiry: {value}")
        return None
