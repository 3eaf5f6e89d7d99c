# config_manager/obs.py
import os
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

from pydantic import Field, model_validator

from .general import ConfigModel

PLATFORMS = ("tiktok", "twitch", "youtube")


def _default_chat_logos() -> Dict[str, str]:
    return {
        "tiktok": "chat-logo-tiktok",
        "twitch": "chat-logo-twitch",
        "youtube": "chat-logo-youtube",
    }


def _default_notification_logos() -> Dict[str, str]:
    return {
        "tiktok": "notification-logo-tiktok",
        "twitch": "notification-logo-twitch",
        "youtube": "notification-logo-youtube",
    }


class ObsConfig(ConfigModel):
    """Renderer (OBS WebSocket) connection and source names."""

    enabled: bool = Field(False, alias="enabled")
    address: str = Field("ws://localhost:4455", alias="address")
    password: Optional[str] = Field(None, alias="password")
    connection_timeout_ms: int = Field(10000, alias="connectionTimeoutMs", ge=1)

    reconnect_base_delay_ms: int = Field(2000, alias="reconnectBaseDelayMs", ge=1)
    reconnect_max_delay_ms: int = Field(60000, alias="reconnectMaxDelayMs", ge=1)
    reconnect_multiplier: float = Field(1.3, alias="reconnectMultiplier", ge=1)

    notification_txt: str = Field("notification-text", alias="notificationTxt")
    notification_scene: str = Field("notification-scene", alias="notificationScene")
    notification_msg_group: str = Field("notification-group", alias="notificationMsgGroup")
    chat_msg_txt: str = Field("chat-message-text", alias="chatMsgTxt")
    chat_msg_scene: str = Field("chat-message-scene", alias="chatMsgScene")
    chat_msg_group: str = Field("chat-message-group", alias="chatMsgGroup")
    tts_txt: str = Field("tts-text", alias="ttsTxt")
    tts_scene: str = Field("tts-scene", alias="ttsScene")

    chat_platform_logos: Dict[str, str] = Field(
        default_factory=_default_chat_logos, alias="chatPlatformLogos"
    )
    notification_platform_logos: Dict[str, str] = Field(
        default_factory=_default_notification_logos, alias="notificationPlatformLogos"
    )

    @model_validator(mode="after")
    def check_reconnect_bounds(self) -> "ObsConfig":
        if self.reconnect_max_delay_ms < self.reconnect_base_delay_ms:
            raise ValueError("reconnectMaxDelayMs must be >= reconnectBaseDelayMs")
        return self

    def resolved_password(self) -> Optional[str]:
        """Config value first, then the OBS_PASSWORD environment secret."""
        if self.password is not None:
            return self.password
        return os.getenv("OBS_PASSWORD") or None

    def host_port(self) -> Tuple[str, int]:
        parsed = urlparse(self.address if "://" in self.address else f"ws://{self.address}")
        return parsed.hostname or "localhost", parsed.port or 4455


class GoalPlatformConfig(ConfigModel):
    """Goal target for a single platform."""

    enabled: bool = Field(True, alias="enabled")
    target_amount: float = Field(1000, alias="targetAmount", gt=0)
    currency: str = Field("coins", alias="currency")
    paypiggy_equivalent: float = Field(50, alias="paypiggyEquivalent", ge=0)
    source: str = Field("tiktok-goal-txt", alias="source")


class YouTubeGoalConfig(GoalPlatformConfig):
    target_amount: float = Field(1.00, alias="targetAmount", gt=0)
    currency: str = Field("dollars", alias="currency")
    paypiggy_equivalent: float = Field(4.99, alias="paypiggyEquivalent", ge=0)
    source: str = Field("youtube-goal-txt", alias="source")


class TwitchGoalConfig(GoalPlatformConfig):
    target_amount: float = Field(100, alias="targetAmount", gt=0)
    currency: str = Field("bits", alias="currency")
    paypiggy_equivalent: float = Field(350, alias="paypiggyEquivalent", ge=0)
    source: str = Field("twitch-goal-txt", alias="source")


class GoalsConfig(ConfigModel):
    """Per-platform donation goals shown in renderer text sources."""

    enabled: bool = Field(False, alias="enabled")
    tiktok: GoalPlatformConfig = Field(default_factory=GoalPlatformConfig, alias="tiktok")
    youtube: YouTubeGoalConfig = Field(default_factory=YouTubeGoalConfig, alias="youtube")
    twitch: TwitchGoalConfig = Field(default_factory=TwitchGoalConfig, alias="twitch")

    def for_platform(self, platform: str) -> Optional[GoalPlatformConfig]:
        if platform not in PLATFORMS:
            return None
        return getattr(self, platform)


class HandcamConfig(ConfigModel):
    """Glow filter pulsed on the handcam source when a gift is shown (durations in seconds)."""

    glow_enabled: bool = Field(False, alias="glowEnabled")
    source_name: str = Field("handcam-source", alias="sourceName")
    scene_name: str = Field("handcam-scene", alias="sceneName")
    glow_filter_name: str = Field("Glow", alias="glowFilterName")
    max_size: int = Field(50, alias="maxSize", ge=0)
    ramp_up_duration: float = Field(0.5, alias="rampUpDuration", ge=0)
    hold_duration: float = Field(6.0, alias="holdDuration", ge=0)
    ramp_down_duration: float = Field(0.5, alias="rampDownDuration", ge=0)
    total_steps: int = Field(30, alias="totalSteps", ge=1)
    easing_enabled: bool = Field(True, alias="easingEnabled")
