"""
Low-value donation spam detection and aggregation.

Gifts are tracked per user inside a window of `spam.detectionWindow` ms
that opens with the user's first gift. While the window holds at most
`maxIndividualNotifications` entries and every entry is worth at least
`lowValueThreshold` per unit, gifts are shown individually. Anything else
is suppressed and replaced by one aggregated gift when the window closes.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from ..utils.time_utils import iso_from_ms, now_ms

# Stale windows are dropped after this many detection windows
STALE_WINDOW_FACTOR = 2


@dataclass
class DonationEntry:
    coin_value: float
    gift_type: str
    gift_count: int
    currency: str
    timestamp_ms: int
    suppressed: bool = False

    @property
    def total(self) -> float:
        return self.coin_value * self.gift_count


@dataclass
class DonationWindow:
    user_id: str
    username: str
    platform: str
    window_start_ms: int
    notifications: List[DonationEntry] = field(default_factory=list)
    timer: Optional[asyncio.TimerHandle] = None

    @property
    def total_coins(self) -> float:
        return sum(entry.total for entry in self.notifications)

    @property
    def total_gifts(self) -> int:
        return sum(entry.gift_count for entry in self.notifications)

    @property
    def gift_types(self) -> List[str]:
        # Unique, in arrival order
        return list(dict.fromkeys(entry.gift_type for entry in self.notifications))

    @property
    def is_aggregating(self) -> bool:
        return any(entry.suppressed for entry in self.notifications)


@dataclass
class SpamCheckResult:
    should_show: bool
    reason: str = ""


def _format_amount(value: float) -> str:
    return f"{int(value):,}" if float(value).is_integer() else f"{value:,.2f}"


class DonationSpamDetector:
    """
    Per-user donation windows.

    Args:
        spam_config: SpamConfig section (enabled, detection_window, ...)
        on_aggregated_donation: Called with the aggregated gift payload when a
            window that suppressed gifts closes
        clock: Millisecond clock
        sleep: Coroutine used by the periodic cleanup loop (seconds)
        auto_flush: Close windows with loop timers; when False the owner calls
            flush_expired_windows()
    """

    def __init__(
        self,
        spam_config,
        on_aggregated_donation: Optional[Callable[[Dict[str, Any]], Any]] = None,
        clock: Optional[Callable[[], int]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        auto_flush: bool = True,
    ):
        if spam_config is None:
            raise ValueError("DonationSpamDetector requires spam configuration")
        self.config = spam_config
        self.on_aggregated_donation = on_aggregated_donation
        self._clock = clock or now_ms
        self._sleep = sleep
        self.auto_flush = auto_flush

        self.windows: Dict[str, DonationWindow] = {}
        self.aggregated_count = 0
        self.suppressed_count = 0
        self._cleanup_task: Optional[asyncio.Task] = None

        logger.info(
            f"[SpamDetector] Initialized (enabled={self.config.enabled}, "
            f"window={self.config.detection_window}ms, "
            f"max={self.config.max_individual_notifications}, "
            f"threshold={self.config.low_value_threshold})"
        )

    def update_config(self, spam_config) -> None:
        self.config = spam_config

    def handle_donation_spam(
        self,
        user_id: str,
        username: str,
        coin_value: float,
        gift_type: str,
        gift_count: int,
        platform: str,
        currency: str = "coins",
    ) -> SpamCheckResult:
        """
        Track one gift and decide whether it is shown on its own.

        Args:
            user_id: Platform user id (window key)
            username: Display name used in the aggregated message
            coin_value: Value of a single unit (amount / giftCount)
            gift_type: Gift name, e.g. "Rose"
            gift_count: Number of units in this gift
            platform: Source platform
            currency: Currency of the gift amount

        Returns:
            SpamCheckResult: should_show=False when the gift was folded into
            the user's pending aggregate
        """
        if not self.config.is_enabled_for(platform):
            return SpamCheckResult(True, "spam detection disabled")
        if not user_id:
            return SpamCheckResult(True, "no user id")

        now = self._clock()
        window = self.windows.get(user_id)
        if window is not None and now - window.window_start_ms >= self.config.detection_window:
            self._close_window(user_id)
            window = None

        if window is None:
            window = DonationWindow(
                user_id=user_id,
                username=username,
                platform=platform,
                window_start_ms=now,
            )
            self.windows[user_id] = window
            self._schedule_close(window)
            logger.debug(f"[SpamDetector] Opened donation window for {username} ({platform})")

        window.username = username or window.username
        entry = DonationEntry(
            coin_value=float(coin_value or 0),
            gift_type=gift_type,
            gift_count=int(gift_count or 0),
            currency=currency,
            timestamp_ms=now,
        )
        window.notifications.append(entry)

        count = len(window.notifications)
        all_valuable = all(
            e.coin_value >= self.config.low_value_threshold for e in window.notifications
        )
        if count <= self.config.max_individual_notifications and all_valuable:
            logger.debug(
                f"[SpamDetector] {platform} - {username}: individual notification "
                f"{count}/{self.config.max_individual_notifications}"
            )
            return SpamCheckResult(True)

        entry.suppressed = True
        self.suppressed_count += 1
        logger.info(
            f"[SpamDetector] {platform} - {username}: suppressing {gift_type} x{gift_count} (aggregating)"
        )
        return SpamCheckResult(False, "aggregated")

    def _schedule_close(self, window: DonationWindow) -> None:
        if not self.auto_flush:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        window.timer = loop.call_later(
            self.config.detection_window / 1000, self._close_window, window.user_id
        )

    def flush_expired_windows(self) -> int:
        """
        Close every window whose detection period has elapsed.

        Returns:
            int: Number of aggregated gifts emitted
        """
        now = self._clock()
        expired = [
            user_id for user_id, window in self.windows.items()
            if now - window.window_start_ms >= self.config.detection_window
        ]
        emitted = 0
        for user_id in expired:
            if self._close_window(user_id) is not None:
                emitted += 1
        return emitted

    def _close_window(self, user_id: str) -> Optional[Dict[str, Any]]:
        window = self.windows.pop(user_id, None)
        if window is None:
            return None
        if window.timer is not None:
            window.timer.cancel()
            window.timer = None
        if not window.is_aggregating:
            return None

        aggregated = self.build_aggregated_donation(window)
        self.aggregated_count += 1
        logger.info(f"[SpamDetector] {window.platform} - {aggregated['message']}")
        if self.on_aggregated_donation is not None:
            try:
                result = self.on_aggregated_donation(aggregated)
                if asyncio.iscoroutine(result):
                    asyncio.get_running_loop().create_task(result)
            except Exception as e:
                logger.error(f"[SpamDetector] Error delivering aggregated donation for {user_id}: {e}")
        return aggregated

    def build_aggregated_donation(self, window: DonationWindow) -> Dict[str, Any]:
        """Synthetic gift payload standing in for the window's gifts."""
        total_gifts = window.total_gifts
        total_coins = window.total_coins
        gift_types = window.gift_types
        noun = "gift" if total_gifts == 1 else "gifts"
        message = (
            f"{window.username} sent {total_gifts} {noun} worth "
            f"{_format_amount(total_coins)} coins ({', '.join(gift_types)})"
        )
        return {
            "platform": window.platform,
            "type": "gift",
            "id": f"aggregated-{window.user_id}-{window.window_start_ms}",
            "userId": window.user_id,
            "username": window.username,
            "giftType": f"Multiple Gifts ({', '.join(gift_types)})",
            "giftCount": total_gifts,
            "amount": total_coins,
            "currency": window.notifications[0].currency,
            "isAggregated": True,
            "giftTypes": gift_types,
            "message": message,
            "timestamp": iso_from_ms(self._clock()),
            # Gifts shown individually already counted toward the goal
            "goalAmount": sum(e.total for e in window.notifications if e.suppressed),
        }

    def cleanup(self, force: bool = False) -> int:
        """
        Drop windows older than twice the detection window.

        Pending aggregates are emitted before their window is dropped.

        Returns:
            int: Number of removed windows
        """
        now = self._clock()
        max_age = 0 if force else self.config.detection_window * STALE_WINDOW_FACTOR
        stale = [
            user_id for user_id, window in self.windows.items()
            if now - window.window_start_ms >= max_age
        ]
        for user_id in stale:
            self._close_window(user_id)
        if stale:
            logger.debug(
                f"[SpamDetector] Cleanup removed {len(stale)} windows, {len(self.windows)} remaining"
            )
        return len(stale)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "trackedUsers": len(self.windows),
            "totalNotifications": sum(len(w.notifications) for w in self.windows.values()),
            "aggregatingUsers": sum(1 for w in self.windows.values() if w.is_aggregating),
            "suppressed": self.suppressed_count,
            "aggregated": self.aggregated_count,
            "enabled": self.config.enabled,
            "threshold": self.config.low_value_threshold,
        }

    def start(self) -> None:
        """Start the periodic stale-window cleanup."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await self._sleep(self.config.cleanup_interval_ms / 1000)
                self.cleanup()
            except asyncio.CancelledError:
                break

    def destroy(self) -> None:
        """Cancel timers and forget all windows without emitting."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            self._cleanup_task.cancel()
        self._cleanup_task = None
        for window in self.windows.values():
            if window.timer is not None:
                window.timer.cancel()
        self.windows.clear()
        logger.debug("[SpamDetector] Destroyed")
