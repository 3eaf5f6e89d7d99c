from .events import (
    MONETIZATION_TYPES,
    BaseEvent,
    EventType,
    build_event,
)
from .extractors import (
    Author,
    PlatformExtractor,
    TikTokExtractor,
    TwitchExtractor,
    YouTubeExtractor,
    get_extractor,
    message_text,
    sum_cheermote_bits,
)
from .error_dispatcher import ErrorNotificationDispatcher
from .notification_builder import build_messages, build_notification
from .unified_processor import UnifiedNotificationProcessor, handler_name

__all__ = [
    "MONETIZATION_TYPES",
    "BaseEvent",
    "EventType",
    "build_event",
    "Author",
    "PlatformExtractor",
    "TikTokExtractor",
    "TwitchExtractor",
    "YouTubeExtractor",
    "get_extractor",
    "message_text",
    "sum_cheermote_bits",
    "ErrorNotificationDispatcher",
    "build_messages",
    "build_notification",
    "UnifiedNotificationProcessor",
    "handler_name",
]
