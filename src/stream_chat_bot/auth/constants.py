"""
Twitch authentication constants.
"""

from enum import Enum


class AuthState(str, Enum):
    """Auth manager lifecycle states. ERROR is recoverable via update_config()."""

    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"
    ERROR = "ERROR"


# Scopes required by the EventSub subscriptions the bot relies on
REQUIRED_SCOPES = (
    "user:read:chat",
    "chat:edit",
    "channel:read:subscriptions",
    "bits:read",
    "channel:read:redemptions",
    "moderator:read:followers",
)

TWITCH_VALIDATE_URL = "https://id.twitch.tv/oauth2/validate"
TWITCH_TOKEN_URL = "https://id.twitch.tv/oauth2/token"

HTTP_TIMEOUT_SECONDS = 10.0

# Refresh proactively when the access token expires within this window
REFRESH_THRESHOLD_SECONDS = 600

NOT_INITIALIZED_MESSAGE = "Authentication not initialized. Call initialize() first."
