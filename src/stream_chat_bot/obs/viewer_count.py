"""Pushes live viewer counts into per-platform OBS text sources."""

import math
from typing import Any, Dict, List, Optional

from loguru import logger

from ..config_manager.obs import PLATFORMS
from ..exceptions import RendererError
from ..platform_events import PlatformEvents


def _compact(value: float, suffix: str) -> str:
    if value >= 10:
        return f"{int(value + 0.5)}{suffix}"
    return f"{value:.1f}".replace(".0", "", 1) + suffix


def format_viewer_count(count: Any) -> str:
    """
    Compact viewer count: 999, 1.2K, 15K, 3M, 1.5B.

    Args:
        count: Viewer count; None, NaN and non-numbers give "0"

    Returns:
        str: Display text for the viewer count source
    """
    if count is None or isinstance(count, bool):
        return "0"
    try:
        number = float(count)
    except (TypeError, ValueError):
        return "0"
    if math.isnan(number) or math.isinf(number):
        return "0"
    whole = max(0, math.floor(number))

    if whole >= 1_000_000_000:
        return _compact(whole / 1_000_000_000, "B")
    if whole >= 1_000_000:
        return _compact(whole / 1_000_000, "M")
    if whole >= 1000:
        return _compact(whole / 1000, "K")
    return str(whole)


class ViewerCountObserver:
    """
    Listens for viewer-count and stream-status events and updates OBS.

    Counts are only shown while the stream is live; a stream going
    offline resets its source to 0. Every platform's source is reset
    to 0 when the renderer connects.

    Args:
        event_bus: EventBus
        renderer: RendererClient
        sources: ObsSources
        config_service: ConfigService
    """

    def __init__(self, event_bus, renderer, sources, config_service):
        if event_bus is None or config_service is None:
            raise ValueError("ViewerCountObserver requires event_bus and config")
        self.event_bus = event_bus
        self.renderer = renderer
        self.sources = sources
        self.config_service = config_service
        self._subscriptions: List[Any] = []

    def start(self) -> None:
        if self._subscriptions:
            return
        self._subscriptions = [
            self.event_bus.subscribe(PlatformEvents.VIEWER_COUNT, self.on_viewer_count_update),
            self.event_bus.subscribe(PlatformEvents.STREAM_STATUS, self.on_stream_status_change),
            self.event_bus.subscribe(PlatformEvents.OBS_CONNECTED, self.on_renderer_connected),
        ]

    def source_for(self, platform: str) -> Optional[str]:
        """Viewer count text source of a platform, or None when disabled."""
        platform_config = self.config_service.config.platform(platform)
        if platform_config is None or not platform_config.viewer_count_enabled:
            return None
        return platform_config.viewer_count_source or f"{platform} viewer count"

    async def on_viewer_count_update(self, update: Optional[Dict[str, Any]]) -> None:
        update = update or {}
        platform = update.get("platform")
        # Adapters that do not report stream status are treated as live
        if not update.get("isStreamLive", True):
            logger.debug(f"[ViewerCount] Skipping OBS update for {platform} (stream offline)")
            return
        await self.update_obs_count(platform, update.get("count"))

    async def on_stream_status_change(self, status: Optional[Dict[str, Any]]) -> None:
        status = status or {}
        platform = status.get("platform")
        is_live = bool(status.get("isLive"))
        if status.get("wasLive") and not is_live:
            logger.info(f"[ViewerCount] Stream went offline for {platform}, resetting viewer count to 0")
            await self.update_obs_count(platform, 0)
        logger.info(f"[ViewerCount] {platform} stream is {'LIVE' if is_live else 'OFFLINE'}")

    async def on_renderer_connected(self, payload: Optional[Dict[str, Any]] = None) -> None:
        await self.initialize_counts()

    async def initialize_counts(self) -> None:
        for platform in PLATFORMS:
            if self.config_service.config.platform(platform).enabled:
                await self.update_obs_count(platform, 0)
        logger.debug("[ViewerCount] Viewer counts initialized to 0")

    async def update_obs_count(self, platform: Any, count: Any) -> bool:
        """
        Write one platform's count to its text source.

        Returns:
            bool: True when the source was updated
        """
        if not isinstance(platform, str) or not platform.strip():
            logger.warning("[ViewerCount] Invalid parameters for OBS update: platform name must be a non-empty string")
            return False
        if (
            not isinstance(count, (int, float))
            or isinstance(count, bool)
            or count != count
            or count < 0
        ):
            logger.warning("[ViewerCount] Invalid parameters for OBS update: count must be a non-negative number")
            return False
        if not self.renderer.is_connected():
            logger.debug("[ViewerCount] OBS not connected, skipping viewer count update")
            return False

        platform = platform.lower()
        source = self.source_for(platform)
        if source is None:
            logger.debug(f"[ViewerCount] Viewer count not enabled for {platform}")
            return False

        try:
            await self.sources.update_text_source(source, format_viewer_count(count))
        except RendererError as e:
            if "not found" in str(e).lower():
                logger.debug(f"[ViewerCount] OBS source '{source}' not found for {platform}")
            else:
                logger.warning(f"[ViewerCount] Failed to update OBS source '{source}': {e}")
            return False
        return True

    def dispose(self) -> None:
        for subscription in self._subscriptions:
            self.event_bus.unsubscribe(subscription)
        self._subscriptions = []
