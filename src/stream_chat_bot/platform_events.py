"""
Event bus topic constants.

Every topic that crosses a component boundary is declared here so that
publishers and subscribers agree on the exact string.
"""

from enum import Enum


class PlatformEvents(str, Enum):
    """
    Topics published on the in-process event bus.

    Members compare equal to their string value, so handlers may subscribe
    with either the enum member or the raw topic string.
    """

    # Platform ingress
    PLATFORM_EVENT = "platform:event"
    CHAT_MESSAGE = "platform:chat-message"
    CHAT_CONNECTED = "platform:chat-connected"
    CHAT_DISCONNECTED = "platform:chat-disconnected"
    FOLLOW = "platform:follow"
    SHARE = "platform:share"
    PAYPIGGY = "platform:paypiggy"
    GIFTPAYPIGGY = "platform:giftpaypiggy"
    GIFT = "platform:gift"
    ENVELOPE = "platform:envelope"
    RAID = "platform:raid"
    REDEMPTION = "platform:redemption"
    FAREWELL = "platform:farewell"
    GREETING = "platform:greeting"
    VIEWER_COUNT = "platform:viewer-count"
    STREAM_STATUS = "platform:stream-status"
    ERROR = "platform:error"

    # Stream detection
    STREAM_DETECTED = "stream:detected"

    # System lifecycle
    SYSTEM_READY = "system:ready"
    SYSTEM_SHUTDOWN = "system:shutdown"
    SERVICE_RESTART_REQUESTED = "service:restart-requested"

    # Effects
    VFX_COMMAND = "vfx:command"
    TTS_SPEECH_REQUESTED = "tts:speech-requested"

    # Configuration
    CONFIG_CHANGED = "config:changed"

    # Goals and display
    GOAL_PROGRESS = "goal:progress"
    DISPLAY_ITEM_RENDERED = "display:item-rendered"

    # Renderer connection
    OBS_CONNECTED = "obs:connected"
    OBS_DISCONNECTED = "obs:disconnected"

    # Command cooldowns
    COOLDOWN_UPDATED = "cooldown:updated"
    COOLDOWN_HEAVY_DETECTED = "cooldown:heavy-detected"
    COOLDOWN_RESET = "cooldown:reset"

    # Bus diagnostics
    HANDLER_ERROR = "event-bus:handler-error"

    def __str__(self) -> str:
        return self.value


# Canonical event type -> ingress topic
EVENT_TYPE_TOPICS = {
    "chat": PlatformEvents.CHAT_MESSAGE,
    "follow": PlatformEvents.FOLLOW,
    "share": PlatformEvents.SHARE,
    "paypiggy": PlatformEvents.PAYPIGGY,
    "giftpaypiggy": PlatformEvents.GIFTPAYPIGGY,
    "gift": PlatformEvents.GIFT,
    "envelope": PlatformEvents.ENVELOPE,
    "raid": PlatformEvents.RAID,
    "redemption": PlatformEvents.REDEMPTION,
    "farewell": PlatformEvents.FAREWELL,
    "greeting": PlatformEvents.GREETING,
}
