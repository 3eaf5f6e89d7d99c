# config_manager/main.py
from typing import Dict, Optional

from pydantic import Field

from .general import (
    ConfigModel,
    CooldownsConfig,
    DisplayQueueConfig,
    GeneralConfig,
    SpamConfig,
    TimingConfig,
)
from .obs import GoalsConfig, HandcamConfig, ObsConfig
from .platforms import PlatformConfig, TikTokConfig, TwitchConfig, VfxConfig, YouTubeConfig


class Config(ConfigModel):
    """
    Root configuration.

    `general` and `obs` are required; every other section has defaults.
    """

    general: GeneralConfig = Field(..., alias="general")
    obs: ObsConfig = Field(..., alias="obs")
    timing: TimingConfig = Field(default_factory=TimingConfig, alias="timing")
    cooldowns: CooldownsConfig = Field(default_factory=CooldownsConfig, alias="cooldowns")
    spam: SpamConfig = Field(default_factory=SpamConfig, alias="spam")
    goals: GoalsConfig = Field(default_factory=GoalsConfig, alias="goals")
    display_queue: DisplayQueueConfig = Field(
        default_factory=DisplayQueueConfig, alias="displayQueue"
    )
    tiktok: TikTokConfig = Field(default_factory=TikTokConfig, alias="tiktok")
    twitch: TwitchConfig = Field(default_factory=TwitchConfig, alias="twitch")
    youtube: YouTubeConfig = Field(default_factory=YouTubeConfig, alias="youtube")
    commands: Dict[str, str] = Field(default_factory=dict, alias="commands")
    farewell: Dict[str, str] = Field(default_factory=dict, alias="farewell")
    vfx: VfxConfig = Field(default_factory=VfxConfig, alias="vfx")
    handcam: HandcamConfig = Field(default_factory=HandcamConfig, alias="handcam")

    def platform(self, name: str) -> Optional[PlatformConfig]:
        """Return the section for a platform name, or None if unknown."""
        if name not in ("tiktok", "twitch", "youtube"):
            return None
        return getattr(self, name)
