"""
Detects chat messages sent by the streamer's own account.

When general.ignoreSelfMessages (or the platform override) is on, the
chat router drops these before greetings and commands are considered.
"""

from typing import Any, Dict, Iterable, Optional

from loguru import logger


def _same_name(a: Any, b: Any) -> bool:
    return isinstance(a, str) and isinstance(b, str) and bool(b) and a.lower() == b.lower()


def _has_owner_badge(badges: Any) -> bool:
    if not isinstance(badges, (list, tuple)):
        return False
    for badge in badges:
        text = str(badge).lower()
        if "owner" in text or "broadcaster" in text:
            return True
    return False


class SelfMessageDetectionService:
    """
    Args:
        config_service: ConfigService; None disables filtering
    """

    def __init__(self, config_service=None):
        if config_service is None:
            logger.warning("[SelfFilter] Initialized without config, self messages are never filtered")
        self.config_service = config_service

    def is_filtering_enabled(self, platform: str) -> bool:
        """Platform override first, then general.ignoreSelfMessages."""
        if self.config_service is None:
            return False
        platform_config = self.config_service.config.platform(platform)
        if platform_config is not None and platform_config.ignore_self_messages is not None:
            return platform_config.ignore_self_messages
        return self.config_service.general.ignore_self_messages

    def is_self_message(self, platform: str, data: Optional[Dict[str, Any]], platform_config=None) -> bool:
        """
        Args:
            platform: tiktok, twitch or youtube
            data: Chat payload, including any adapter-provided flags
            platform_config: Section to compare against; looked up when None

        Returns:
            bool: True when the message came from the configured account.
            Unknown platforms and malformed payloads return False.
        """
        if not data:
            return False
        if platform_config is None and self.config_service is not None:
            platform_config = self.config_service.config.platform(platform)
        try:
            if platform == "twitch":
                return self._is_twitch_self(data, platform_config)
            if platform == "youtube":
                return self._is_youtube_self(data, platform_config)
            if platform == "tiktok":
                return self._is_tiktok_self(data, platform_config)
        except (AttributeError, TypeError) as e:
            logger.warning(f"[SelfFilter] Error detecting self message for {platform}: {e}")
            return False
        logger.warning(f"[SelfFilter] Unknown platform for self-message detection: {platform}")
        return False

    def should_filter_message(self, platform: str, data: Optional[Dict[str, Any]]) -> bool:
        if not self.is_filtering_enabled(platform):
            return False
        return self.is_self_message(platform, data)

    @staticmethod
    def _configured_names(platform_config, *fields: str) -> Iterable[str]:
        for name in fields:
            value = getattr(platform_config, name, None)
            if value:
                yield value

    def _is_twitch_self(self, data: Dict[str, Any], platform_config) -> bool:
        # IRC-style payloads carry a direct flag
        if data.get("self") is not None:
            return bool(data["self"])
        username = data.get("username")
        return any(
            _same_name(username, name)
            for name in self._configured_names(platform_config, "username", "channel")
        )

    def _is_youtube_self(self, data: Dict[str, Any], platform_config) -> bool:
        username = data.get("username")
        configured = getattr(platform_config, "username", None)
        if username and configured:
            return _same_name(username, configured)
        author = data.get("author") if isinstance(data.get("author"), dict) else {}
        if author.get("isChatOwner") or data.get("isBroadcaster"):
            return True
        return _has_owner_badge(data.get("badges"))

    def _is_tiktok_self(self, data: Dict[str, Any], platform_config) -> bool:
        username = data.get("username")
        configured = getattr(platform_config, "username", None)
        if username and configured:
            return _same_name(username, configured)
        user_id = data.get("userId")
        configured_id = getattr(platform_config, "user_id", None)
        if user_id and configured_id:
            return str(user_id) == str(configured_id)
        return bool(data.get("isBroadcaster"))
