"""
Platform lifecycle: adapter start-up, connection times and stale-history filtering.

Adapters deliver raw items to a per-platform UnifiedNotificationProcessor.
The processor's default handlers wrap each canonical event into a
`platform:event` envelope, which is the only thing the routers consume.
"""

from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from loguru import logger

from .notifications import (
    ErrorNotificationDispatcher,
    EventType,
    UnifiedNotificationProcessor,
    get_extractor,
)
from .platform_events import PlatformEvents
from .platforms import PlatformAdapter, PlatformContext
from .utils.time_utils import iso_from_ms, now_ms, to_epoch_ms

# Envelopes of these types are dropped when the payload has no timestamp
TIMESTAMPED_TYPES = frozenset(
    [event_type.value for event_type in EventType] + ["viewer-count", "stream-status"]
)

MAX_RECENT_ERRORS = 10

AdapterFactory = Callable[[Any], PlatformAdapter]


class PlatformLifecycleService:
    """
    Owns platform adapters and their connection bookkeeping.

    Args:
        config_service: ConfigService
        event_bus: Bus for platform:event envelopes and connection topics
        clock: Millisecond clock
    """

    def __init__(self, config_service, event_bus=None, clock: Optional[Callable[[], int]] = None):
        self.config_service = config_service
        self.event_bus = event_bus
        self._clock = clock or now_ms

        self.platforms: Dict[str, PlatformAdapter] = {}
        self.processors: Dict[str, UnifiedNotificationProcessor] = {}
        self.platform_connection_times: Dict[str, int] = {}
        self.platform_health: Dict[str, Dict[str, Any]] = {}
        self.platform_errors: Deque[Dict[str, Any]] = deque(maxlen=MAX_RECENT_ERRORS)
        self.known_stream_ids: Dict[str, Set[str]] = {}

        self._subscription = None
        if event_bus is not None:
            self._subscription = event_bus.subscribe(
                PlatformEvents.STREAM_DETECTED, self.handle_stream_detected
            )

    # ------------------------------------------------------------------
    # Connection times
    # ------------------------------------------------------------------

    def record_platform_connection(self, platform: str) -> int:
        """Remember when a platform (re)connected; older chat is stale from now on."""
        connected_at = self._clock()
        self.platform_connection_times[platform] = connected_at
        logger.debug(f"[PlatformLifecycle] {platform} connection time recorded: {connected_at}")
        self._emit(
            PlatformEvents.CHAT_CONNECTED,
            {"platform": platform, "connectionTime": connected_at, "timestamp": iso_from_ms(connected_at)},
        )
        return connected_at

    def record_platform_disconnection(self, platform: str, reason: str = "") -> None:
        logger.warning(f"[PlatformLifecycle] {platform} disconnected: {reason or 'unknown reason'}")
        self._emit(
            PlatformEvents.CHAT_DISCONNECTED,
            {"platform": platform, "reason": reason, "timestamp": iso_from_ms(self._clock())},
        )

    def get_platform_connection_time(self, platform: str) -> Optional[int]:
        return self.platform_connection_times.get(platform)

    def should_skip_for_connection(self, platform: str, timestamp: Any) -> bool:
        """
        True when a message was sent before the platform connected.

        Unknown connection times and unparseable timestamps never skip.
        """
        if not self.config_service.general.filter_old_messages:
            return False
        connection_time = self.get_platform_connection_time(platform)
        if not connection_time:
            return False
        message_time = to_epoch_ms(timestamp)
        if message_time is None:
            return False
        return message_time < connection_time

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def create_default_event_handlers(self, platform: str) -> Dict[EventType, Callable]:
        """One handler per canonical type, each emitting a platform:event envelope."""

        def make_handler(event_type: str):
            return lambda data: self.emit_platform_event(platform, event_type, data)

        return {event_type: make_handler(event_type.value) for event_type in EventType}

    def emit_platform_event(self, platform: str, event_type: str, data: Any) -> bool:
        """
        Wrap a payload into `{platform, type, data}` and emit it.

        Returns:
            bool: False when the payload was dropped
        """
        if self.event_bus is None:
            logger.debug(f"[PlatformLifecycle] No event bus for platform event {event_type}")
            return False

        sanitized = self._sanitize_platform_event_data(platform, event_type, data)
        if event_type in TIMESTAMPED_TYPES:
            if not isinstance(sanitized, dict) or not sanitized.get("timestamp"):
                logger.warning(f"[PlatformLifecycle] {platform} {event_type} event missing timestamp, dropped")
                return False

        self.event_bus.emit(
            PlatformEvents.PLATFORM_EVENT,
            {"platform": platform, "type": event_type, "data": sanitized},
        )
        return True

    @staticmethod
    def _sanitize_platform_event_data(platform: str, event_type: str, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        sanitized = {k: v for k, v in data.items() if k not in ("type", "platform")}
        if data.get("type") and data["type"] != event_type:
            sanitized["sourceType"] = data["type"]
        if data.get("platform") and data["platform"] != platform:
            sanitized["sourcePlatform"] = data["platform"]
        return sanitized

    def create_processor(self, platform: str) -> UnifiedNotificationProcessor:
        extractor = get_extractor(platform)
        dispatcher = ErrorNotificationDispatcher(
            extractor,
            fallback_username=self.config_service.general.fallback_username,
            clock=self._clock,
        )
        processor = UnifiedNotificationProcessor(
            platform,
            event_bus=self.event_bus,
            handlers=self.create_default_event_handlers(platform),
            extractor=extractor,
            error_dispatcher=dispatcher,
        )
        self.processors[platform] = processor
        return processor

    # ------------------------------------------------------------------
    # Adapters
    # ------------------------------------------------------------------

    async def initialize_all_platforms(
        self, adapter_factories: Dict[str, AdapterFactory]
    ) -> Dict[str, PlatformAdapter]:
        """
        Create and initialize every enabled platform adapter.

        A failing platform is recorded and skipped; the others still start.

        Args:
            adapter_factories: platform name -> callable(platform_config) returning an adapter

        Returns:
            Dict[str, PlatformAdapter]: Adapters that were created
        """
        logger.info("[PlatformLifecycle] Initializing platform connections...")

        for platform, factory in adapter_factories.items():
            self._ensure_health_entry(platform)
            platform_config = self.config_service.config.platform(platform)

            if platform_config is None or not platform_config.enabled:
                logger.debug(f"[PlatformLifecycle] Skipping {platform} (disabled or not configured)")
                self._update_health(platform, state="disabled")
                continue

            self._update_health(platform, state="initializing")

            if platform == "youtube" and not platform_config.username:
                self._mark_failure(platform, "Missing username")
                logger.error("[PlatformLifecycle] YouTube is enabled but no username is configured")
                continue

            try:
                adapter = factory(platform_config)
                self.platforms[platform] = adapter
                context = PlatformContext(
                    platform=platform,
                    processor=self.create_processor(platform),
                    on_connected=lambda p=platform: self._mark_ready(p),
                    on_disconnected=lambda reason, p=platform: self.record_platform_disconnection(p, reason),
                    on_stream_detected=lambda ids, p=platform: self._emit(
                        PlatformEvents.STREAM_DETECTED, {"platform": p, "streamIds": list(ids)}
                    ),
                )
                adapter.context = context
                logger.info(f"[PlatformLifecycle] Initializing platform {platform}...")
                connected = await adapter.initialize(context)
            except Exception as e:
                logger.error(f"[PlatformLifecycle] Failed to initialize platform {platform}: {e}")
                self._mark_failure(platform, str(e))
                self._emit(
                    PlatformEvents.ERROR,
                    {"source": "platform-lifecycle", "platform": platform, "message": str(e), "error": e},
                )
                continue

            if connected:
                # The adapter may already have reported the connection itself
                if self.platform_health[platform]["state"] != "ready":
                    self._mark_ready(platform)
                logger.info(f"[PlatformLifecycle] Platform {platform} initialized")
            else:
                self._mark_failure(platform, "Adapter did not connect")

        return dict(self.platforms)

    async def handle_stream_detected(self, payload: Optional[Dict[str, Any]]) -> bool:
        """
        Re-attach the video platform adapter when new stream ids appear.

        Returns:
            bool: True when the adapter was re-initialized
        """
        payload = payload or {}
        platform = payload.get("platform")
        stream_ids = [str(i) for i in payload.get("streamIds") or [] if i]
        if platform != "youtube" or not stream_ids:
            return False

        known = self.known_stream_ids.setdefault(platform, set())
        new_ids = [i for i in stream_ids if i not in known]
        if not new_ids:
            return False

        adapter = self.platforms.get(platform)
        if adapter is None:
            logger.debug(f"[PlatformLifecycle] Stream detected for {platform} but no adapter is running")
            return False

        logger.info(f"[PlatformLifecycle] New {platform} streams detected: {', '.join(new_ids)}")
        try:
            reinitialized = await adapter.reinitialize(stream_ids)
        except Exception as e:
            logger.error(f"[PlatformLifecycle] Failed to re-initialize {platform}: {e}")
            self._mark_failure(platform, str(e))
            return False
        if reinitialized:
            # only a successful attach marks the ids as known
            known.update(new_ids)
            self.record_platform_connection(platform)
        return bool(reinitialized)

    async def disconnect_all(self) -> None:
        logger.info("[PlatformLifecycle] Cleaning up all platforms...")
        for platform in list(self.platforms):
            adapter = self.platforms.pop(platform)
            try:
                await adapter.cleanup()
                logger.info(f"[PlatformLifecycle] Cleaned up {platform}")
            except Exception as e:
                logger.error(f"[PlatformLifecycle] Error disconnecting from {platform}: {e}")
            self.platform_connection_times.pop(platform, None)

    def get_platforms(self) -> Dict[str, PlatformAdapter]:
        return dict(self.platforms)

    def get_status(self) -> Dict[str, Any]:
        def names(state: str) -> List[str]:
            return [p for p, h in self.platform_health.items() if h["state"] == state]

        return {
            "timestamp": iso_from_ms(self._clock()),
            "initialized_platforms": names("ready"),
            "initializing_platforms": names("initializing"),
            "failed_platforms": [
                {
                    "name": p,
                    "last_error": self.platform_health[p]["last_error"],
                    "failures": self.platform_health[p]["failures"],
                }
                for p in names("failed")
            ],
            "disabled_platforms": names("disabled"),
            "platform_health": {p: dict(h) for p, h in self.platform_health.items()},
            "connection_times": dict(self.platform_connection_times),
            "recent_errors": list(self.platform_errors),
        }

    def dispose(self) -> None:
        if self.event_bus is not None and self._subscription is not None:
            self.event_bus.unsubscribe(self._subscription)
        self._subscription = None

    # ------------------------------------------------------------------
    # Health records
    # ------------------------------------------------------------------

    def _ensure_health_entry(self, platform: str) -> Dict[str, Any]:
        return self.platform_health.setdefault(
            platform,
            {
                "state": "unknown",
                "attempts": 0,
                "failures": 0,
                "last_updated": None,
                "last_error": None,
                "last_connection": None,
            },
        )

    def _update_health(self, platform: str, **changes: Any) -> Dict[str, Any]:
        entry = self._ensure_health_entry(platform)
        state = changes.get("state")
        if state == "initializing":
            entry["attempts"] += 1
        elif state == "failed":
            entry["failures"] += 1
        entry.update(changes)
        entry["last_updated"] = iso_from_ms(self._clock())
        return entry

    def _mark_ready(self, platform: str) -> None:
        connected_at = self.record_platform_connection(platform)
        self._update_health(
            platform, state="ready", last_error=None, last_connection=iso_from_ms(connected_at)
        )

    def _mark_failure(self, platform: str, message: str) -> None:
        self.platform_errors.append(
            {"platform": platform, "message": message, "timestamp": iso_from_ms(self._clock())}
        )
        self._update_health(platform, state="failed", last_error=message)

    def _emit(self, topic, payload: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(topic, payload)
