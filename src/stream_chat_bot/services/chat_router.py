"""
Chat message routing.

A chat message is checked, sanitised and queued for display; then it is
checked for a farewell or VFX command, and a first message from a user
may also produce a greeting.
"""

import re
from typing import Any, Dict, Optional

from loguru import logger

from ..notifications.notification_builder import build_notification
from ..obs.display_queue import DisplayItem

SKIP_EMPTY = "empty message"
SKIP_DISABLED = "messages disabled"
SKIP_SELF = "own message"
SKIP_OLD = "old message (sent before connection)"
SKIP_EMPTY_AFTER_SANITIZE = "empty after sanitization"

_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_HTML_TAG = re.compile(r"<[^>]+>")
_CONTROL = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_chat_message(message: Any, max_length: int) -> str:
    """Strip markup and control characters, collapse whitespace and truncate."""
    text = message if isinstance(message, str) else ""
    text = _ZERO_WIDTH.sub(" ", text)
    text = _HTML_TAG.sub(" ", text)
    text = _CONTROL.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()
    if len(text) > max_length:
        text = text[:max_length].rstrip()
    return text


class ChatNotificationRouter:
    """
    Args:
        config_service: ConfigService
        display_queue: DisplayQueue for chat items
        notification_manager: Queues greetings, farewells and commands
        platform_lifecycle: Supplies connection times for the stale filter
        user_tracking: First-message detection
        command_parser: CommandParser; commands are ignored when None
        self_message_detector: SelfMessageDetectionService; own messages are kept when None
        echo_chat: Log every routed chat message at info level
    """

    def __init__(
        self,
        config_service,
        display_queue,
        notification_manager,
        platform_lifecycle=None,
        user_tracking=None,
        command_parser=None,
        echo_chat: bool = True,
        self_message_detector=None,
    ):
        if config_service is None:
            raise ValueError("ChatNotificationRouter requires config")
        self.config_service = config_service
        self.display_queue = display_queue
        self.notification_manager = notification_manager
        self.platform_lifecycle = platform_lifecycle
        self.user_tracking = user_tracking
        self.command_parser = command_parser
        self.echo_chat = echo_chat
        self.self_message_detector = self_message_detector

    async def handle_chat_message(self, platform: str, data: Dict[str, Any]) -> Optional[str]:
        """
        Route one canonical chat payload.

        Returns:
            Optional[str]: The skip reason, or None when the message was routed
        """
        data = {**data, "platform": platform}
        username = data.get("username")

        if not isinstance(data.get("message"), str) or not data["message"].strip():
            return self._skip(platform, data, SKIP_EMPTY)
        if not self.is_chat_enabled(platform):
            return self._skip(platform, data, SKIP_DISABLED)
        if self.self_message_detector is not None and self.self_message_detector.should_filter_message(
            platform, data
        ):
            return self._skip(platform, data, SKIP_SELF)
        if self.platform_lifecycle is not None and self.platform_lifecycle.should_skip_for_connection(
            platform, data.get("timestamp")
        ):
            return self._skip(platform, data, SKIP_OLD)

        message = sanitize_chat_message(
            data["message"], self.config_service.general.max_message_length
        )
        if not message:
            return self._skip(platform, data, SKIP_EMPTY_AFTER_SANITIZE)
        data["message"] = message

        if self.echo_chat:
            logger.info(f"[Chat] {platform} {username}: {message}")

        is_first = False
        if self.user_tracking is not None:
            is_first = self.user_tracking.is_first_message(
                data.get("userId"), {"username": username, "platform": platform}
            )
        greet = is_first and self.is_greeting_enabled(platform)

        self.enqueue_chat_message(platform, data)

        parsed = None
        if self.command_parser is not None and self.config_service.general.commands_enabled:
            parsed = self.command_parser.parse(data, is_first)

        if parsed is not None and parsed.type == "farewell":
            await self.notification_manager.handle_notification(
                "farewell", platform, self._identity(data)
            )
        elif parsed is not None and parsed.vfx is not None:
            await self.process_command(platform, data, parsed, greet)
            return None

        if greet:
            await self.queue_greeting(platform, data)
        return None

    def is_chat_enabled(self, platform: str) -> bool:
        platform_config = self.config_service.config.platform(platform)
        if platform_config is not None and platform_config.messages_enabled is not None:
            return platform_config.messages_enabled
        return self.config_service.general.messages_enabled

    def is_greeting_enabled(self, platform: str) -> bool:
        if not self.config_service.general.greetings_enabled:
            return False
        platform_config = self.config_service.config.platform(platform)
        return platform_config is None or platform_config.greetings_enabled

    def enqueue_chat_message(self, platform: str, data: Dict[str, Any]) -> bool:
        chat_data = build_notification(
            {
                "type": "chat",
                "platform": platform,
                "id": data.get("id"),
                "username": data.get("username"),
                "userId": data.get("userId"),
                "message": data["message"],
                "timestamp": data.get("timestamp"),
            }
        )
        return self.display_queue.add_item(DisplayItem(type="chat", platform=platform, data=chat_data))

    async def process_command(self, platform: str, data: Dict[str, Any], parsed, greet: bool) -> bool:
        """
        Gate a VFX command on its cooldowns and queue it.

        Returns:
            bool: True when the command was accepted
        """
        vfx = parsed.vfx
        accepted = self.command_parser.try_execute(data.get("userId"), vfx.command)
        if greet:
            await self.queue_greeting(platform, data)
        if not accepted:
            logger.debug(f"[ChatRouter] {data.get('username')} tried {vfx.command} while on cooldown")
            return False

        command = vfx.command if vfx.command.startswith("!") else f"!{vfx.command}"
        await self.notification_manager.handle_notification(
            "command",
            platform,
            {**self._identity(data), "command": command},
            vfx_config=vfx.to_dict(),
        )
        return True

    async def queue_greeting(self, platform: str, data: Dict[str, Any]):
        return await self.notification_manager.handle_notification(
            "greeting", platform, self._identity(data)
        )

    @staticmethod
    def _identity(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "username": data.get("username"),
            "userId": data.get("userId"),
            "timestamp": data.get("timestamp"),
        }

    @staticmethod
    def _skip(platform: str, data: Dict[str, Any], reason: str) -> str:
        logger.debug(f"[ChatRouter] Skipped {platform} chat from {data.get('username')}: {reason}")
        return reason
