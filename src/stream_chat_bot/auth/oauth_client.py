"""
Minimal async client for the Twitch OAuth endpoints.

Only two calls are needed: token introspection (validate) and the
refresh-token exchange.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import httpx
from loguru import logger

from ..exceptions import TokenRefreshError, TwitchApiError
from .constants import HTTP_TIMEOUT_SECONDS, TWITCH_TOKEN_URL, TWITCH_VALIDATE_URL


@dataclass
class TokenInfo:
    """Result of a successful introspection call."""

    client_id: str
    login: str
    user_id: str
    scopes: List[str] = field(default_factory=list)
    expires_in: Optional[int] = None


@dataclass
class RefreshedTokens:
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int] = None
    scopes: List[str] = field(default_factory=list)


class TwitchOAuthClient:
    """
    Thin wrapper over httpx for the two OAuth endpoints.

    A shared httpx.AsyncClient may be injected (tests use one backed by
    httpx.MockTransport); otherwise a short-lived client is created per call.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._http_client = http_client
        self._timeout = timeout

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, timeout=self._timeout, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, timeout=self._timeout, **kwargs)

    async def validate_token(self, access_token: str) -> TokenInfo:
        """
        Introspect an access token.

        Raises:
            TwitchApiError: Non-2xx response (401 means invalid/expired token)
            httpx.TransportError: Network failure
        """
        response = await self._request(
            "GET", TWITCH_VALIDATE_URL, headers={"Authorization": f"OAuth {access_token}"}
        )
        if response.status_code != 200:
            raise TwitchApiError(response.status_code, _error_message(response))

        data = response.json()
        return TokenInfo(
            client_id=data.get("client_id", ""),
            login=data.get("login", ""),
            user_id=str(data.get("user_id", "")),
            scopes=list(data.get("scopes") or []),
            expires_in=data.get("expires_in"),
        )

    async def refresh_token(self, refresh_token: str) -> RefreshedTokens:
        """
        Exchange a refresh token for a new access token.

        Raises:
            TokenRefreshError: invalid_grant, missing credentials, or network
                failure (retryable=True for the latter)
        """
        if not refresh_token:
            raise TokenRefreshError("No refresh token available")
        if not self.client_id or not self.client_secret:
            raise TokenRefreshError("Missing clientId or clientSecret for token refresh")

        try:
            response = await self._request(
                "POST",
                TWITCH_TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
        except httpx.TransportError as e:
            logger.warning(f"[TwitchOAuth] Network error during token refresh: {e}")
            raise TokenRefreshError(f"Network error during token refresh: {e}", retryable=True) from e

        if response.status_code != 200:
            message = _error_message(response)
            logger.error(f"[TwitchOAuth] Token refresh failed: {response.status_code} - {message}")
            raise TokenRefreshError(
                f"Token refresh failed: {message}",
                status=response.status_code,
                retryable=response.status_code >= 500,
            )

        data = response.json()
        logger.info("[TwitchOAuth] Access token refreshed")
        return RefreshedTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_in=data.get("expires_in"),
            scopes=list(data.get("scope") or []),
        )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    return data.get("message") or data.get("error") or response.reason_phrase
