"""
Routes `platform:event` envelopes to the chat router or notification manager.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from ..notifications.events import EventType
from ..platform_events import PlatformEvents

# Legacy paid-event names; adapters must send paypiggy instead
PAID_ALIAS_TYPES = frozenset(
    [
        "subscription",
        "resubscription",
        "membership",
        "member",
        "subscribe",
        "superfan",
        "supporter",
        "paid_supporter",
    ]
)

# Envelope types that carry status only
STATUS_TYPES = frozenset(["viewer-count", "stream-status"])


class PlatformEventRouter:
    """
    Subscribes to `platform:event` and dispatches by event type.

    Args:
        event_bus: EventBus
        chat_router: ChatNotificationRouter
        notification_manager: NotificationManager
    """

    def __init__(self, event_bus, chat_router, notification_manager):
        if event_bus is None or chat_router is None or notification_manager is None:
            raise ValueError("PlatformEventRouter requires event_bus, chat_router and notification_manager")
        self.event_bus = event_bus
        self.chat_router = chat_router
        self.notification_manager = notification_manager
        self._subscription = None

        self._routes: Dict[EventType, Callable[[str, Dict[str, Any]], Awaitable[Any]]] = {
            EventType.CHAT: self.chat_router.handle_chat_message,
        }
        for event_type in EventType:
            if event_type is not EventType.CHAT:
                self._routes[event_type] = self._notification_route(event_type)

    def _notification_route(self, event_type: EventType):
        async def route(platform: str, data: Dict[str, Any]):
            return await self.notification_manager.handle_notification(
                event_type.value, platform, self.sanitize_notification_payload(data)
            )

        return route

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.event_bus.subscribe(
                PlatformEvents.PLATFORM_EVENT, self._on_platform_event
            )

    async def _on_platform_event(self, event: Optional[Dict[str, Any]]) -> None:
        try:
            await self.route_event(event)
        except Exception as e:
            event_type = event.get("type") if isinstance(event, dict) else None
            logger.error(f"[PlatformEventRouter] Error routing {event_type or 'unknown'} event: {e}")
            self.event_bus.emit(
                PlatformEvents.ERROR,
                {"source": "platform-event-router", "message": str(e), "error": e, "type": event_type},
            )

    async def route_event(self, event: Dict[str, Any]) -> Any:
        """
        Dispatch one envelope.

        Raises:
            ValueError: Malformed envelope or unsupported event type
        """
        if not isinstance(event, dict):
            raise ValueError("PlatformEventRouter requires an event object")
        platform = event.get("platform")
        event_type = event.get("type")
        data = event.get("data")
        if not platform or not event_type or not isinstance(data, dict):
            raise ValueError("PlatformEventRouter requires platform, type and data")

        if event_type in PAID_ALIAS_TYPES:
            raise ValueError(f"Unsupported paid alias event type: {event_type}")

        if event_type in STATUS_TYPES:
            topic = PlatformEvents.VIEWER_COUNT if event_type == "viewer-count" else PlatformEvents.STREAM_STATUS
            self.event_bus.emit(topic, {"platform": platform, **data})
            return None

        try:
            kind = EventType(event_type)
        except ValueError:
            raise ValueError(f"Unsupported platform event type: {event_type}") from None
        return await self._routes[kind](platform, data)

    @staticmethod
    def sanitize_notification_payload(data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Trim the username and check identity fields.

        Raises:
            ValueError: Missing username or userId on a non-error payload
        """
        sanitized = {k: v for k, v in data.items() if k not in ("user", "displayName")}
        username = sanitized.get("username")
        if isinstance(username, str):
            sanitized["username"] = username.strip()
        if sanitized.get("isError"):
            return sanitized
        if not sanitized.get("username"):
            raise ValueError("Notification payload requires username")
        if not sanitized.get("userId"):
            raise ValueError("Notification payload requires userId")
        return sanitized

    def dispose(self) -> None:
        if self._subscription is not None:
            self.event_bus.unsubscribe(self._subscription)
        self._subscription = None
