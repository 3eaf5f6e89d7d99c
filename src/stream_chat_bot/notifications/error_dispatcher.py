"""
Error notifications for monetization events with unusable raw items.

When a gift or subscription arrives without the fields needed for a
canonical event, viewers still get a (degraded) notification instead of
silence.
"""

import inspect
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..utils.time_utils import iso_from_ms, now_ms
from .events import build_event
from .extractors import PlatformExtractor

DEFAULT_ERROR_USERNAME = "Unknown User"


class ErrorNotificationDispatcher:
    """
    Builds `isError=True` payloads and hands them to the type handler.

    Args:
        extractor: Platform extractor used to salvage author, id and timestamp
        fallback_username: Shown when no author name can be recovered
        clock: Millisecond clock used when the raw item has no timestamp
    """

    def __init__(
        self,
        extractor: PlatformExtractor,
        fallback_username: str = DEFAULT_ERROR_USERNAME,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.extractor = extractor
        self.fallback_username = fallback_username
        self._clock = clock or now_ms

    def build_error_notification(
        self,
        raw: Dict[str, Any],
        event_type: str,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        raw = raw if isinstance(raw, dict) else {}
        author = self.extractor.extract_author(raw)
        username = author.name.strip() if author and author.name else ""

        payload: Dict[str, Any] = {
            "platform": self.extractor.platform,
            "type": event_type,
            "isError": True,
            "username": username or self.fallback_username,
            "timestamp": self.extractor.extract_timestamp(raw) or iso_from_ms(self._clock()),
        }
        if author and author.id:
            payload["userId"] = author.id
        event_id = self.extractor.extract_id(raw)
        if event_id:
            payload["id"] = event_id
        payload.update(overrides or {})
        return build_event(payload).to_payload()

    async def dispatch_error_notification(
        self,
        raw: Dict[str, Any],
        event_type: str,
        handler: Optional[Callable[[Dict[str, Any]], Any]],
        handler_name: str,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Returns:
            bool: True when a handler received the error notification
        """
        notification = self.build_error_notification(raw, event_type, overrides)
        if handler is None:
            logger.warning(
                f"[ErrorDispatcher] Handler {handler_name} not available for {event_type} notification"
            )
            return False

        result = handler(notification)
        if inspect.isawaitable(result):
            await result
        logger.debug(f"[ErrorDispatcher] Dispatched {event_type} error notification")
        return True
