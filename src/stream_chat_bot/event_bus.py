"""
In-process event bus.

Single-threaded publish/subscribe with stable subscription order. A
handler that raises is logged and skipped; the remaining handlers still
run and never see the failure.
"""

import asyncio
import inspect
import itertools
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from .platform_events import PlatformEvents

Topic = Union[str, Enum]
Handler = Callable[[Any], Any]

DEFAULT_MAX_LISTENERS = 100


def _topic_key(topic: Topic) -> str:
    # str-Enum members hash by name, so always key by the raw value
    if isinstance(topic, Enum):
        return str(topic.value)
    return str(topic)


async def _await(awaitable):
    return await awaitable


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""

    id: int
    topic: str
    handler: Handler = field(compare=False)
    once: bool = field(default=False, compare=False)


@dataclass
class TopicStats:
    """Per-topic emission counters."""

    emitted: int = 0
    handler_errors: int = 0
    last_emitted_at: Optional[float] = None


class EventBus:
    """
    Cooperative pub/sub hub shared by every service.

    Handlers may be plain callables or coroutine functions. Coroutine
    results are scheduled on the running loop and their failures are
    logged the same way synchronous failures are.
    """

    def __init__(self, max_listeners: int = DEFAULT_MAX_LISTENERS, debug: bool = False):
        self.max_listeners = max_listeners
        self.debug = debug
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._ids = itertools.count(1)
        self._stats: Dict[str, TopicStats] = {}
        self._pending: set = set()

    def subscribe(self, topic: Topic, handler: Handler) -> Subscription:
        """
        Register a handler for a topic.

        Args:
            topic: Topic name or PlatformEvents member
            handler: Callable receiving the emitted payload

        Returns:
            Subscription: Token for unsubscribe()
        """
        return self._add(topic, handler, once=False)

    def once(self, topic: Topic, handler: Handler) -> Subscription:
        """Register a handler that is removed after its first call."""
        return self._add(topic, handler, once=True)

    def _add(self, topic: Topic, handler: Handler, once: bool) -> Subscription:
        if not callable(handler):
            raise TypeError("Event handler must be callable")

        key = _topic_key(topic)
        subscription = Subscription(next(self._ids), key, handler, once)
        handlers = self._subscriptions.setdefault(key, [])
        handlers.append(subscription)

        if len(handlers) > self.max_listeners:
            logger.warning(
                f"[EventBus] Topic '{key}' has {len(handlers)} listeners "
                f"(max {self.max_listeners}); possible subscription leak"
            )
        return subscription

    def unsubscribe(self, subscription: Optional[Subscription]) -> bool:
        """
        Remove a subscription.

        Returns:
            bool: True if the subscription was registered
        """
        if subscription is None:
            return False
        handlers = self._subscriptions.get(subscription.topic)
        if not handlers:
            return False
        for index, existing in enumerate(handlers):
            if existing.id == subscription.id:
                del handlers[index]
                if not handlers:
                    del self._subscriptions[subscription.topic]
                return True
        return False

    def emit(
        self,
        topic: Topic,
        payload: Any = None,
        correlation_id: Optional[str] = None,
        correlate: bool = False,
    ) -> int:
        """
        Deliver a payload to every handler of a topic, in subscription order.

        Args:
            topic: Topic name or PlatformEvents member
            payload: Value passed to each handler
            correlation_id: Explicit correlation id added to dict payloads
            correlate: Generate a correlation id when none is given

        Returns:
            int: Number of handlers invoked
        """
        key = _topic_key(topic)
        if correlate and correlation_id is None:
            correlation_id = uuid.uuid4().hex
        if correlation_id is not None and isinstance(payload, dict):
            payload = {**payload, "correlation_id": correlation_id}

        stats = self._stats.setdefault(key, TopicStats())
        stats.emitted += 1
        stats.last_emitted_at = time.time()

        # Snapshot so handlers may (un)subscribe during fan-out
        handlers = list(self._subscriptions.get(key, ()))
        if self.debug:
            logger.debug(f"[EventBus] emit '{key}' to {len(handlers)} handler(s)")

        for subscription in handlers:
            if subscription.once:
                self.unsubscribe(subscription)
            try:
                result = subscription.handler(payload)
                if inspect.isawaitable(result):
                    self._schedule(key, result)
            except Exception as e:
                self._handle_handler_error(key, e)
        return len(handlers)

    def _schedule(self, key: str, awaitable) -> None:
        try:
            task = asyncio.get_running_loop().create_task(_await(awaitable))
        except RuntimeError:
            # No running loop: nothing can drive the coroutine
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(f"[EventBus] Async handler for '{key}' dropped: no running event loop")
            return

        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                self._handle_handler_error(key, error)

        task.add_done_callback(_done)

    def _handle_handler_error(self, key: str, error: BaseException) -> None:
        self._stats.setdefault(key, TopicStats()).handler_errors += 1
        logger.error(f"[EventBus] Handler for '{key}' failed: {error}")
        if key != PlatformEvents.HANDLER_ERROR.value:
            self.emit(
                PlatformEvents.HANDLER_ERROR,
                {"topic": key, "error": error, "message": str(error)},
            )

    async def drain(self) -> None:
        """Wait for every scheduled coroutine handler to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def listener_count(self, topic: Topic) -> int:
        return len(self._subscriptions.get(_topic_key(topic), ()))

    def get_event_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            topic: {
                "emitted": stats.emitted,
                "handler_errors": stats.handler_errors,
                "listeners": self.listener_count(topic),
            }
            for topic, stats in self._stats.items()
        }

    def reset(self) -> None:
        """Drop every subscription and counter."""
        self._subscriptions.clear()
        self._stats.clear()
        logger.debug("[EventBus] Reset all subscriptions")
