"""
Stream chat bot exception classes.

Recoverable failures are caught close to where they happen; these types
let callers tell configuration, authentication and renderer problems apart.
"""

from typing import List, Optional


class ChatBotError(Exception):
    """Base exception for the chat bot."""

    pass


class ConfigurationError(ChatBotError):
    """Missing or malformed configuration."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        self.fields = fields or []
        super().__init__(message)


class AuthenticationError(ChatBotError):
    """Tokens are unusable or the auth manager is not ready."""

    pass


class AuthConfigError(AuthenticationError):
    """Required auth configuration fields are missing."""

    def __init__(self, missing_fields: List[str]):
        self.missing_fields = missing_fields
        super().__init__(
            f"Missing required Twitch configuration: {', '.join(missing_fields)}"
        )


class TokenRefreshError(AuthenticationError):
    """Refresh-token exchange failed."""

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        self.status = status
        self.retryable = retryable
        super().__init__(message)


class TwitchApiError(ChatBotError):
    """Non-2xx answer from a Twitch OAuth endpoint."""

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(f"{status} - {message}")


class RendererError(ChatBotError):
    """Base class for renderer (OBS) failures."""

    pass


class RendererNotConnectedError(RendererError):
    """A call was issued while the renderer connection is not identified."""

    def __init__(self):
        super().__init__("OBS is not connected")


class RendererConnectionTimeout(RendererError):
    """The renderer did not become ready within the allowed wait."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"OBS connection not ready after {timeout_ms}ms")


class IngressShapeError(ChatBotError):
    """A raw platform item is missing fields required for a canonical event."""

    def __init__(self, event_type: str, missing: str):
        self.event_type = event_type
        self.missing = missing
        super().__init__(f"{event_type} notification missing {missing}")


class DisplayQueueError(ChatBotError):
    """Invalid display item."""

    pass
