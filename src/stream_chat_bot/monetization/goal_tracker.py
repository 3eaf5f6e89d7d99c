"""
Per-platform donation goals.

Amounts are in the platform's goal currency (TikTok coins, Twitch bits,
YouTube dollars). A donation is counted at most once per event id.
"""

from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from loguru import logger

from ..platform_events import PlatformEvents

PLATFORMS = ("tiktok", "youtube", "twitch")

# Remembered event ids per tracker
MAX_PROCESSED_IDS = 5000


@dataclass
class GoalState:
    current: float
    target: float
    currency: str


@dataclass
class GoalUpdate:
    """Result of a goal operation."""

    success: bool
    platform: str = ""
    error: Optional[str] = None
    previous: float = 0
    new_total: float = 0
    target: float = 0
    currency: str = ""
    formatted: str = ""
    percentage: float = 0
    goal_completed: bool = False
    paypiggy_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _whole(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


class GoalTracker:
    """
    Running totals toward the configured goal targets.

    Args:
        goals_config: GoalsConfig section
        event_bus: Receives goal:progress after every change
    """

    def __init__(self, goals_config, event_bus=None):
        if goals_config is None:
            raise ValueError("GoalTracker requires goals configuration")
        self.config = goals_config
        self.event_bus = event_bus
        self.goal_state: Dict[str, GoalState] = {}
        self._processed_ids: "OrderedDict[str, None]" = OrderedDict()
        self.reset_goal()

    def update_config(self, goals_config) -> None:
        """Apply new targets and currencies, keeping current totals."""
        self.config = goals_config
        for platform in PLATFORMS:
            platform_config = goals_config.for_platform(platform)
            state = self.goal_state[platform]
            state.target = platform_config.target_amount
            state.currency = platform_config.currency

    def reset_goal(self, platform: Optional[str] = None) -> None:
        """Reset one platform's total (or all of them) to zero."""
        platforms = PLATFORMS if platform is None else (platform.lower(),)
        for key in platforms:
            platform_config = self.config.for_platform(key)
            if platform_config is None:
                continue
            self.goal_state[key] = GoalState(
                current=0,
                target=platform_config.target_amount,
                currency=platform_config.currency,
            )
            logger.debug(f"[GoalTracker] {key} goal reset")
        if platform is None:
            self._processed_ids.clear()

    def is_enabled(self, platform: str) -> bool:
        platform_config = self.config.for_platform(platform)
        return bool(self.config.enabled and platform_config and platform_config.enabled)

    def process_donation_goal(
        self, platform: str, amount: Any, event_id: Optional[str] = None
    ) -> GoalUpdate:
        """
        Add a donation to the platform's goal.

        Args:
            platform: "tiktok", "youtube" or "twitch"
            amount: Total donation value in goal currency units
            event_id: Source event id; a repeated id is ignored

        Returns:
            GoalUpdate: success=False when disabled, duplicate, zero or invalid
        """
        key = platform.lower() if isinstance(platform, str) else ""
        if key not in PLATFORMS:
            return GoalUpdate(False, error=f"Invalid platform: {platform}. Supported platforms: tiktok, youtube, twitch")
        if not self.is_enabled(key):
            logger.debug(f"[GoalTracker] {key} goal disabled, skipping donation")
            return GoalUpdate(False, key, error=f"{key} goal tracking is disabled")

        try:
            value = float(amount)
        except (TypeError, ValueError):
            return GoalUpdate(False, key, error=f"Donation amount must be a number, received: {amount}")
        if value == 0:
            return GoalUpdate(False, key, error="Zero donation amount")
        if value < 0 or value != value:
            return GoalUpdate(False, key, error=f"Donation amount must be positive, received: {amount}")

        if event_id:
            if event_id in self._processed_ids:
                logger.debug(f"[GoalTracker] Event {event_id} already counted for {key}")
                return GoalUpdate(False, key, error="Duplicate event")
            self._processed_ids[event_id] = None
            while len(self._processed_ids) > MAX_PROCESSED_IDS:
                self._processed_ids.popitem(last=False)

        return self._add(key, value)

    def add_paypiggy_to_goal(self, platform: str, event_id: Optional[str] = None) -> GoalUpdate:
        """Count a subscription or membership at its configured equivalent value."""
        platform_config = self.config.for_platform(platform.lower() if isinstance(platform, str) else "")
        if platform_config is None:
            return GoalUpdate(False, error=f"Invalid platform: {platform}. Supported platforms: tiktok, youtube, twitch")
        result = self.process_donation_goal(platform, platform_config.paypiggy_equivalent, event_id)
        if result.success:
            result.paypiggy_value = platform_config.paypiggy_equivalent
        return result

    def _add(self, platform: str, amount: float) -> GoalUpdate:
        state = self.goal_state[platform]
        previous = state.current
        state.current = previous + amount
        if state.currency == "dollars":
            state.current = round(state.current, 2)

        result = GoalUpdate(
            success=True,
            platform=platform,
            previous=previous,
            new_total=state.current,
            target=state.target,
            currency=state.currency,
            formatted=self.format_goal_display(platform),
            percentage=self._percentage(state),
            goal_completed=state.current >= state.target,
        )
        logger.debug(
            f"[GoalTracker] {platform} goal updated: {previous} -> {state.current} {state.currency}"
        )
        if self.event_bus is not None:
            self.event_bus.emit(
                PlatformEvents.GOAL_PROGRESS,
                {
                    "platform": platform,
                    "current": state.current,
                    "target": state.target,
                    "currency": state.currency,
                    "formatted": result.formatted,
                    "percentage": result.percentage,
                    "goalCompleted": result.goal_completed,
                },
            )
        return result

    @staticmethod
    def _percentage(state: GoalState) -> float:
        if state.target <= 0:
            return 0
        return round(state.current / state.target * 100, 1)

    def format_goal_display(
        self,
        platform: str,
        current: Optional[float] = None,
        target: Optional[float] = None,
    ) -> str:
        """
        "1,250/5,000 coins", "$3.50/$10.00 USD" or "150/1,000 bits".
        """
        key = platform.lower()
        state = self.goal_state.get(key)
        if state is None and (current is None or target is None):
            return "0/0 unknown"
        current = state.current if current is None else current
        target = state.target if target is None else target
        currency = state.currency if state else "unknown"

        if key == "youtube":
            return f"${current:,.2f}/${target:,.2f} USD"
        return f"{_whole(current)}/{_whole(target)} {currency}"

    def get_goal_state(self, platform: str) -> Optional[Dict[str, Any]]:
        state = self.goal_state.get(platform.lower())
        if state is None:
            return None
        return {
            "current": state.current,
            "target": state.target,
            "currency": state.currency,
            "formatted": self.format_goal_display(platform),
            "percentage": self._percentage(state),
            "goalCompleted": state.current >= state.target,
        }

    def get_all_goal_states(self) -> Dict[str, Optional[Dict[str, Any]]]:
        return {platform: self.get_goal_state(platform) for platform in PLATFORMS}
