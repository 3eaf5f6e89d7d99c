from .notification_manager import NotificationManager
from .chat_router import ChatNotificationRouter, sanitize_chat_message
from .platform_event_router import PlatformEventRouter
from .self_message import SelfMessageDetectionService
from .vfx_command_service import VfxCommandService
from .tts_service import TtsService, clean_tts_text

__all__ = [
    "NotificationManager",
    "ChatNotificationRouter",
    "sanitize_chat_message",
    "PlatformEventRouter",
    "SelfMessageDetectionService",
    "VfxCommandService",
    "TtsService",
    "clean_tts_text",
]
