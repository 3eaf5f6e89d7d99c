"""
Notification routing from canonical events to display items.

Applies the per-type enable flags, runs gifts through the donation spam
detector and attaches the VFX configured for the notification type.
"""

from typing import Any, Dict, Optional

from loguru import logger

from ..notifications.notification_builder import build_notification
from ..obs.display_queue import DisplayItem

# Platform config flag for each notification type
PLATFORM_FLAGS = {
    "gift": "gifts_enabled",
    "envelope": "gifts_enabled",
    "follow": "follows_enabled",
    "share": "shares_enabled",
    "paypiggy": "paypiggies_enabled",
    "giftpaypiggy": "paypiggies_enabled",
    "raid": "raids_enabled",
    "redemption": "redemptions_enabled",
    "greeting": "greetings_enabled",
}

# General config flag for each notification type
GENERAL_FLAGS = {
    "greeting": "greetings_enabled",
    "farewell": "farewells_enabled",
    "command": "commands_enabled",
}


class NotificationManager:
    """
    Args:
        config_service: ConfigService
        display_queue: DisplayQueue receiving the items
        spam_detector: DonationSpamDetector, or None to show every gift
        command_parser: CommandParser used to resolve notification VFX
    """

    def __init__(self, config_service, display_queue, spam_detector=None, command_parser=None):
        if display_queue is None:
            raise ValueError("NotificationManager requires a display queue")
        self.config_service = config_service
        self.display_queue = display_queue
        self.spam_detector = spam_detector
        self.command_parser = command_parser

    def is_enabled(self, notification_type: str, platform: str) -> bool:
        general_flag = GENERAL_FLAGS.get(notification_type)
        if general_flag and not getattr(self.config_service.general, general_flag):
            return False
        platform_flag = PLATFORM_FLAGS.get(notification_type)
        platform_config = self.config_service.config.platform(platform)
        if platform_flag and platform_config is not None:
            return bool(getattr(platform_config, platform_flag))
        return True

    async def handle_notification(
        self,
        notification_type: str,
        platform: str,
        data: Dict[str, Any],
        vfx_config: Optional[Dict[str, Any]] = None,
        priority: Optional[int] = None,
    ) -> Optional[DisplayItem]:
        """
        Build a display item for one notification and enqueue it.

        Args:
            notification_type: Canonical type, or "command"
            platform: Source platform
            data: Event payload (camelCase)
            vfx_config: Explicit VFX; defaults to vfx.notificationCommands[type]
            priority: Explicit queue priority; defaults to the type's priority

        Returns:
            The queued item, or None when disabled, suppressed or dropped
        """
        if not self.is_enabled(notification_type, platform):
            logger.debug(f"[NotificationManager] {platform} {notification_type} notifications disabled")
            return None

        data = {**data, "type": notification_type, "platform": platform}

        if notification_type == "gift" and not self._passes_spam_check(platform, data):
            return None

        notification = build_notification(data)
        if vfx_config is None:
            vfx_config = self.resolve_notification_vfx(notification_type)

        item = DisplayItem(
            type=notification_type,
            platform=platform,
            data=notification,
            priority=priority,
            goal_amount=data.get("goalAmount"),
            vfx_config=vfx_config,
        )
        if not self.display_queue.add_item(item):
            return None
        logger.debug(f"[NotificationManager] {notification['logMessage']}")
        return item

    async def handle_aggregated_donation(self, payload: Dict[str, Any]) -> Optional[DisplayItem]:
        """Spam detector callback for a closed aggregation window."""
        return await self.handle_notification("gift", payload["platform"], payload)

    def _passes_spam_check(self, platform: str, data: Dict[str, Any]) -> bool:
        if self.spam_detector is None or data.get("isAggregated") or data.get("isError"):
            return True

        gift_count = int(data.get("giftCount") or 1)
        amount = float(data.get("amount") or 0)
        result = self.spam_detector.handle_donation_spam(
            data.get("userId"),
            data.get("username"),
            amount / gift_count,
            data.get("giftType"),
            gift_count,
            platform,
            currency=data.get("currency") or "coins",
        )
        if not result.should_show:
            logger.debug(
                f"[NotificationManager] Gift from {data.get('username')} held for aggregation ({result.reason})"
            )
        return result.should_show

    def resolve_notification_vfx(self, notification_type: str) -> Optional[Dict[str, Any]]:
        if self.command_parser is None:
            return None
        command_key = self.config_service.config.vfx.notification_commands.get(notification_type)
        if not command_key:
            return None
        vfx = self.command_parser.get_vfx_config_for_command(command_key)
        if vfx is None:
            logger.warning(
                f"[NotificationManager] VFX command '{command_key}' for {notification_type} is not configured"
            )
            return None
        return vfx.to_dict()
