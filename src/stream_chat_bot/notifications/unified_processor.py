"""
Unified notification processor.

Every platform adapter sends raw items through process_notification();
the processor extracts author/message/timestamp with the platform's
extractor, applies suppression rules and produces one canonical event.
"""

import inspect
from typing import Any, Callable, Dict, Optional, Union

from loguru import logger
from pydantic import ValidationError

from ..platform_events import EVENT_TYPE_TOPICS, PlatformEvents
from .error_dispatcher import ErrorNotificationDispatcher
from .events import MONETIZATION_TYPES, BaseEvent, EventType, build_event
from .extractors import PlatformExtractor, get_extractor, sum_cheermote_bits

Handler = Callable[[Dict[str, Any]], Any]


def handler_name(event_type: EventType) -> str:
    """Adapter-facing handler name, e.g. "onGiftpaypiggy"."""
    return f"on{event_type.value[:1].upper()}{event_type.value[1:]}"


def fill_cheer_bits(data: Dict[str, Any]) -> None:
    """
    Take a cheer's amount from its cheermotes when the adapter sent none.

    Only applies to bits gifts (currency or giftType "bits") without a
    positive amount; the gift count defaults to 1.
    """
    if data.get("amount"):
        return
    markers = (str(data.get("currency") or "").lower(), str(data.get("giftType") or "").lower())
    if "bits" not in markers:
        return
    bits = sum_cheermote_bits(data.get("message"))
    if bits <= 0:
        return
    data["amount"] = bits
    data["currency"] = "bits"
    data["giftType"] = data.get("giftType") or "bits"
    data["giftCount"] = data.get("giftCount") or 1


class UnifiedNotificationProcessor:
    """
    Shared raw-item to canonical-event pipeline.

    Args:
        platform: "tiktok", "twitch" or "youtube"
        event_bus: Bus that receives the canonical event on its type topic
        handlers: Per-type handlers keyed by EventType (or its string value)
        extractor: Platform extractor; chosen from the platform when None
        error_dispatcher: Receives monetization items with missing fields
    """

    def __init__(
        self,
        platform: str,
        event_bus=None,
        handlers: Optional[Dict[Union[EventType, str], Handler]] = None,
        extractor: Optional[PlatformExtractor] = None,
        error_dispatcher: Optional[ErrorNotificationDispatcher] = None,
    ):
        self.platform = platform
        self.event_bus = event_bus
        self.extractor = extractor or get_extractor(platform)
        self.error_dispatcher = error_dispatcher
        self.handlers: Dict[EventType, Handler] = {}
        for key, handler in (handlers or {}).items():
            self.set_handler(key, handler)

    def set_handler(self, event_type: Union[EventType, str], handler: Handler) -> None:
        self.handlers[EventType(event_type)] = handler

    async def process_notification(
        self,
        raw: Dict[str, Any],
        event_type: Union[EventType, str],
        event_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[BaseEvent]:
        """
        Normalise one raw item.

        Args:
            raw: Adapter-specific raw item
            event_type: Canonical type of the item
            event_data: Type-specific fields already parsed by the adapter

        Returns:
            The canonical event, or None when suppressed or invalid
        """
        try:
            kind = EventType(event_type)
        except ValueError:
            logger.warning(f"[{self.platform}] Unknown notification type: {event_type}")
            return None

        try:
            return await self._process(raw if isinstance(raw, dict) else {}, kind, event_data or {})
        except Exception as e:
            logger.error(f"[{self.platform}] Error processing {kind.value} notification: {e}")
            if self.event_bus is not None:
                self.event_bus.emit(
                    PlatformEvents.ERROR,
                    {
                        "source": "notification-processor",
                        "platform": self.platform,
                        "message": f"Error processing {kind.value} notification",
                        "error": e,
                    },
                )
            return None

    async def _process(
        self, raw: Dict[str, Any], kind: EventType, event_data: Dict[str, Any]
    ) -> Optional[BaseEvent]:
        author = self.extractor.extract_author(raw)
        if self.extractor.is_suppressed(author):
            logger.debug(f"[{self.platform}] Suppressed {kind.value} notification for anonymous/junk user")
            return None

        handler = self.handlers.get(kind)

        if author is None:
            return await self._reject(raw, kind, handler, "missing author")
        if not author.id:
            return await self._reject(raw, kind, handler, "missing userId")

        timestamp = self.extractor.extract_timestamp(raw)
        if not timestamp:
            return await self._reject(raw, kind, handler, "missing timestamp")

        data: Dict[str, Any] = {
            "platform": self.platform,
            "type": kind.value,
            "username": author.name.strip(),
            "userId": author.id,
            "message": self.extractor.extract_message(raw),
            "timestamp": timestamp,
        }
        event_id = self.extractor.extract_id(raw)
        if event_id:
            data["id"] = event_id
        data.update(event_data)
        if kind is EventType.GIFT:
            fill_cheer_bits(data)

        try:
            event = build_event(data)
        except ValidationError as e:
            first = e.errors()[0]
            reason = first.get("msg", "invalid fields")
            return await self._reject(raw, kind, handler, reason)

        payload = event.to_payload()
        if self.event_bus is not None:
            self.event_bus.emit(EVENT_TYPE_TOPICS[kind.value], payload)
        if handler is not None:
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

        logger.debug(f"[{self.platform}] {kind.value} notification processed")
        return event

    async def _reject(
        self, raw: Dict[str, Any], kind: EventType, handler: Optional[Handler], reason: str
    ) -> None:
        logger.warning(f"[{self.platform}] Suppressed {kind.value} notification: {reason}")
        if kind.value in MONETIZATION_TYPES and self.error_dispatcher is not None:
            await self.error_dispatcher.dispatch_error_notification(
                raw, kind.value, handler, handler_name(kind)
            )
        return None
