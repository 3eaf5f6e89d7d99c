# config_manager/general.py
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional


class ConfigModel(BaseModel):
    """Base for config sections: camelCase YAML keys, snake_case attributes."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GracefulExitConfig(ConfigModel):
    """Optional rendered-chat-message budget."""

    enabled: bool = Field(False, alias="enabled")
    target_message_count: Optional[int] = Field(None, alias="targetMessageCount", ge=1)
    near_completion_threshold: float = Field(0.9, alias="nearCompletionThreshold", ge=0, le=1)


class GeneralConfig(ConfigModel):
    """General behaviour switches and command cooldowns (all durations in ms)."""

    debug_enabled: bool = Field(False, alias="debugEnabled")
    filter_old_messages: bool = Field(True, alias="filterOldMessages")
    messages_enabled: bool = Field(True, alias="messagesEnabled")
    commands_enabled: bool = Field(True, alias="commandsEnabled")
    greetings_enabled: bool = Field(True, alias="greetingsEnabled")
    farewells_enabled: bool = Field(True, alias="farewellsEnabled")
    keyword_parsing_enabled: bool = Field(True, alias="keywordParsingEnabled")
    tts_enabled: bool = Field(False, alias="ttsEnabled")

    cmd_cooldown_ms: int = Field(60000, alias="cmdCooldownMs", ge=0)
    global_cmd_cooldown_ms: int = Field(60000, alias="globalCmdCooldownMs", ge=0)
    heavy_command_threshold: int = Field(3, alias="heavyCommandThreshold", ge=1)
    heavy_command_window: int = Field(60000, alias="heavyCommandWindow", ge=1)
    heavy_command_cooldown: int = Field(30000, alias="heavyCommandCooldown", ge=0)

    command_prefixes: List[str] = Field(["!"], alias="commandPrefixes")
    max_message_length: int = Field(500, alias="maxMessageLength", ge=1)
    fallback_username: str = Field("Unknown User", alias="fallbackUsername")
    ignore_self_messages: bool = Field(False, alias="ignoreSelfMessages")

    graceful_exit: GracefulExitConfig = Field(
        default_factory=GracefulExitConfig, alias="gracefulExit"
    )

    @model_validator(mode="after")
    def check_prefixes(self) -> "GeneralConfig":
        if any(not prefix for prefix in self.command_prefixes):
            raise ValueError("commandPrefixes must not contain empty strings")
        return self


class TimingConfig(ConfigModel):
    """Display timing in milliseconds."""

    fade_duration: int = Field(750, alias="fadeDuration", ge=0)
    notification_clear_delay: int = Field(500, alias="notificationClearDelay", ge=0)
    transition_delay: int = Field(200, alias="transitionDelay", ge=0)
    chat_message_duration: int = Field(4500, alias="chatMessageDuration", ge=0)
    default_notification_duration: int = Field(3000, alias="defaultNotificationDuration", ge=0)
    greeting_duration: int = Field(3000, alias="greetingDuration", ge=0)
    follow_duration: int = Field(3000, alias="followDuration", ge=0)
    gift_duration: int = Field(3000, alias="giftDuration", ge=0)
    member_duration: int = Field(3000, alias="memberDuration", ge=0)
    raid_duration: int = Field(3000, alias="raidDuration", ge=0)


class CooldownsConfig(ConfigModel):
    """Housekeeping for cooldown state."""

    max_entries: int = Field(1000, alias="maxEntries", ge=1)
    cleanup_interval_ms: int = Field(60000, alias="cleanupIntervalMs", ge=1)
    global_cleanup_interval_ms: int = Field(3600000, alias="globalCleanupIntervalMs", ge=1)
    global_max_age_ms: int = Field(300000, alias="globalMaxAgeMs", ge=1)


class SpamConfig(ConfigModel):
    """Low-value donation aggregation."""

    enabled: bool = Field(True, alias="enabled")
    detection_window: int = Field(5000, alias="detectionWindow", ge=1)
    max_individual_notifications: int = Field(2, alias="maxIndividualNotifications", ge=0)
    low_value_threshold: float = Field(10, alias="lowValueThreshold", ge=0)
    cleanup_interval_ms: int = Field(30000, alias="cleanupIntervalMs", ge=1)
    tiktok_enabled: bool = Field(True, alias="tiktokEnabled")
    twitch_enabled: bool = Field(True, alias="twitchEnabled")
    youtube_enabled: bool = Field(False, alias="youtubeEnabled")

    def is_enabled_for(self, platform: str) -> bool:
        if not self.enabled:
            return False
        return bool(getattr(self, f"{platform}_enabled", False))


class DisplayQueueConfig(ConfigModel):
    """Display queue behaviour."""

    auto_process: bool = Field(True, alias="autoProcess")
    chat_optimization: bool = Field(True, alias="chatOptimization")
    max_queue_size: int = Field(100, alias="maxQueueSize", ge=1)
