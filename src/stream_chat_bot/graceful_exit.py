"""
Graceful exit after a fixed number of rendered chat messages.

The count advances on `display:item-rendered` for chat items, so a message
only counts once viewers have actually seen it. Reaching the target emits
`system:shutdown` with reason "graceful-exit"; the App Runtime owns the
shutdown itself.
"""

from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .platform_events import PlatformEvents
from .utils.time_utils import iso_from_ms, now_ms

GRACEFUL_EXIT_REASON = "graceful-exit"


class GracefulExitService:
    """
    Args:
        target_message_count: Messages to render before exiting; None disables the service
        event_bus: Bus to listen on and to emit system:shutdown on
        near_completion_threshold: Fraction at which get_stats() reports nearing completion
        platforms_provider: Returns the running platform names for the exit summary
        clock: Millisecond clock
    """

    def __init__(
        self,
        target_message_count: Optional[int],
        event_bus=None,
        near_completion_threshold: float = 0.9,
        platforms_provider: Optional[Callable[[], List[str]]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.target_message_count = target_message_count
        self.event_bus = event_bus
        self.near_completion_threshold = near_completion_threshold
        self._platforms_provider = platforms_provider
        self._clock = clock or now_ms

        self.processed_message_count = 0
        self.is_shutting_down = False
        self.start_time = self._clock()
        self.last_message_time: Optional[int] = None

        self._subscription = None
        if self.is_enabled():
            logger.debug(f"[GracefulExit] Initialized with target: {target_message_count} messages")
            if event_bus is not None:
                self._subscription = event_bus.subscribe(
                    PlatformEvents.DISPLAY_ITEM_RENDERED, self._on_item_rendered
                )

    def is_enabled(self) -> bool:
        return self.target_message_count is not None and self.target_message_count > 0

    def _on_item_rendered(self, payload: Optional[Dict[str, Any]]) -> None:
        if not payload or payload.get("type") != "chat":
            return
        if self.increment_message_count():
            self.trigger_exit()

    def increment_message_count(self) -> bool:
        """
        Count one rendered chat message.

        Returns:
            bool: True when the target has been reached
        """
        if not self.is_enabled() or self.is_shutting_down:
            return False

        self.processed_message_count += 1
        self.last_message_time = self._clock()
        logger.debug(
            f"[GracefulExit] Processed message {self.processed_message_count}/{self.target_message_count}"
        )
        return self.processed_message_count >= self.target_message_count

    def trigger_exit(self) -> bool:
        """
        Announce the exit once.

        Returns:
            bool: False when an exit was already triggered
        """
        if self.is_shutting_down:
            logger.warning("[GracefulExit] Shutdown already in progress")
            return False
        self.is_shutting_down = True

        summary = self._build_exit_summary()
        logger.info(
            f"[GracefulExit] Graceful exit after processing {self.processed_message_count} messages "
            f"(target: {self.target_message_count})"
        )
        logger.info(f"[GracefulExit] Platforms: {', '.join(summary['platforms']) or 'none'}")

        if self.event_bus is not None:
            self.event_bus.emit(
                PlatformEvents.SYSTEM_SHUTDOWN, {"reason": GRACEFUL_EXIT_REASON, "summary": summary}
            )
        return True

    def get_stats(self) -> Dict[str, Any]:
        enabled = self.is_enabled()
        percentage = (
            round(self.processed_message_count / self.target_message_count * 100) if enabled else 0
        )
        return {
            "enabled": enabled,
            "processed": self.processed_message_count,
            "target": self.target_message_count,
            "remaining": self.target_message_count - self.processed_message_count if enabled else 0,
            "percentage": percentage,
            "is_nearing_completion": enabled and percentage >= self.near_completion_threshold * 100,
            "start_time": self.start_time,
            "last_message_time": self.last_message_time,
        }

    def stop(self) -> None:
        logger.debug("[GracefulExit] Stopping service")
        self.is_shutting_down = True
        if self.event_bus is not None and self._subscription is not None:
            self.event_bus.unsubscribe(self._subscription)
        self._subscription = None

    def _build_exit_summary(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "processed_messages": self.processed_message_count,
            "target_messages": self.target_message_count,
            "exit_reason": "Message count target reached",
            "timestamp": iso_from_ms(now),
            "platforms": list(self._platforms_provider()) if self._platforms_provider else [],
            "uptime_ms": now - self.start_time,
        }
