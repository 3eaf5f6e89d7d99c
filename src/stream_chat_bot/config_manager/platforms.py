# config_manager/platforms.py
import os
from typing import Dict, Optional

from pydantic import Field

from .general import ConfigModel


class PlatformConfig(ConfigModel):
    """Switches shared by every streaming platform."""

    enabled: bool = Field(False, alias="enabled")
    username: str = Field("", alias="username")
    messages_enabled: Optional[bool] = Field(None, alias="messagesEnabled")
    greetings_enabled: bool = Field(True, alias="greetingsEnabled")
    gifts_enabled: bool = Field(True, alias="giftsEnabled")
    follows_enabled: bool = Field(True, alias="followsEnabled")
    paypiggies_enabled: bool = Field(True, alias="paypiggiesEnabled")
    raids_enabled: bool = Field(True, alias="raidsEnabled")
    redemptions_enabled: bool = Field(True, alias="redemptionsEnabled")
    shares_enabled: bool = Field(True, alias="sharesEnabled")
    # None inherits general.ignoreSelfMessages
    ignore_self_messages: Optional[bool] = Field(None, alias="ignoreSelfMessages")
    viewer_count_enabled: bool = Field(True, alias="viewerCountEnabled")
    viewer_count_source: Optional[str] = Field(None, alias="viewerCountSource")


class TikTokConfig(PlatformConfig):
    """Short-video live platform."""

    user_id: Optional[str] = Field(None, alias="userId")


class YouTubeConfig(PlatformConfig):
    """Video platform live chat."""

    pass


class TwitchConfig(PlatformConfig):
    """Game-streaming platform with OAuth-protected EventSub ingress."""

    client_id: str = Field("", alias="clientId")
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    channel: str = Field("", alias="channel")
    access_token: Optional[str] = Field(None, alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    token_store_path: str = Field("./data/twitch-tokens.json", alias="tokenStorePath")

    def resolved_client_secret(self) -> Optional[str]:
        """Config value first, then the TWITCH_CLIENT_SECRET environment secret."""
        if self.client_secret:
            return self.client_secret
        return os.getenv("TWITCH_CLIENT_SECRET") or None


class VfxConfig(ConfigModel):
    """Where VFX media files live and which command each notification plays."""

    file_path: str = Field("./vfx", alias="filePath")
    notification_commands: Dict[str, str] = Field(
        default_factory=dict, alias="notificationCommands"
    )
