"""Goal totals mirrored into OBS text sources."""

from typing import Any, Optional

from loguru import logger

from ..exceptions import RendererError
from ..monetization.goal_tracker import PLATFORMS, GoalTracker, GoalUpdate


class GoalDisplay:
    """
    Updates the goal tracker and refreshes `goals.<platform>.source`.

    A renderer failure never undoes a goal update; the text catches up on
    the next change or on refresh_all().
    """

    def __init__(self, goal_tracker: GoalTracker, sources, goals_config=None):
        self.goal_tracker = goal_tracker
        self.sources = sources
        self.config = goals_config or goal_tracker.config

    def update_config(self, goals_config) -> None:
        self.config = goals_config
        self.goal_tracker.update_config(goals_config)

    async def process_donation_goal(
        self, platform: str, amount: Any, event_id: Optional[str] = None
    ) -> GoalUpdate:
        result = self.goal_tracker.process_donation_goal(platform, amount, event_id)
        if result.success:
            await self.update_goal_display(result.platform, result.formatted)
        return result

    async def process_paypiggy_goal(self, platform: str, event_id: Optional[str] = None) -> GoalUpdate:
        result = self.goal_tracker.add_paypiggy_to_goal(platform, event_id)
        if result.success:
            await self.update_goal_display(result.platform, result.formatted)
        return result

    async def update_goal_display(self, platform: str, formatted: Optional[str] = None) -> bool:
        if not self.goal_tracker.is_enabled(platform):
            return False
        source = self.config.for_platform(platform).source
        if not source:
            logger.warning(f"[GoalDisplay] No goal source configured for {platform}")
            return False
        text = formatted or self.goal_tracker.format_goal_display(platform)
        try:
            return await self.sources.update_text_source(source, text)
        except RendererError as e:
            logger.warning(f"[GoalDisplay] {platform} goal state updated but display failed: {e}")
            return False

    async def refresh_all(self) -> None:
        """Push every enabled platform's current total (e.g. after OBS connects)."""
        if not self.config.enabled:
            return
        for platform in PLATFORMS:
            await self.update_goal_display(platform)
