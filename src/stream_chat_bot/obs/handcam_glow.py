"""
Handcam glow effect.

A gift on screen pulses the glow filter on the handcam source:
ramp up to maxSize, hold, ramp back down to 0. The animation runs as a
background task; a new gift restarts it from zero.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from ..exceptions import RendererError


def ease_in_cubic(t: float) -> float:
    return t * t * t


def ease_out_cubic(t: float) -> float:
    return 1 - (1 - t) ** 3


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def ramp_up_sizes(config) -> List[int]:
    """Glow sizes for steps 0..totalSteps, from 0 to maxSize."""
    sizes = []
    for step in range(config.total_steps + 1):
        progress = step / config.total_steps
        eased = ease_in_cubic(progress) if config.easing_enabled else progress
        sizes.append(_round_half_up(eased * config.max_size))
    return sizes


def ramp_down_sizes(config) -> List[int]:
    """Glow sizes for steps 0..totalSteps, from maxSize to 0."""
    sizes = []
    for step in range(config.total_steps + 1):
        progress = step / config.total_steps
        eased = ease_out_cubic(progress) if config.easing_enabled else progress
        sizes.append(_round_half_up((1 - eased) * config.max_size))
    return sizes


class HandcamGlow:
    """
    Drives the handcam glow filter through ObsSources.

    Args:
        renderer: RendererClient (ensure_connected / is_connected)
        sources: ObsSources for the filter requests
        config_service: ConfigService; reads the `handcam` section on every use
        sleep: Coroutine used between animation steps (seconds)
    """

    def __init__(
        self,
        renderer,
        sources,
        config_service,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.renderer = renderer
        self.sources = sources
        self.config_service = config_service
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def config(self):
        return self.config_service.config.handcam

    def is_enabled(self) -> bool:
        return bool(self.config.glow_enabled)

    def trigger(self) -> bool:
        """
        Start the glow animation without waiting for it.

        Returns:
            bool: False when the effect is disabled or no event loop is running
        """
        if not self.is_enabled():
            logger.debug("[Handcam] Glow trigger ignored - disabled in config")
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[Handcam] No running event loop, glow skipped")
            return False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("[Handcam] Restarting glow animation")
        self._task = loop.create_task(self.activate())
        return True

    async def activate(self) -> bool:
        """
        Run one full glow animation.

        On a renderer error the glow is reset to 0 and False is returned.
        """
        config = self.config
        try:
            await self.renderer.ensure_connected()
            base_settings = await self._base_settings()
            logger.debug(
                f"[Handcam] Starting glow animation: 0->{config.max_size}->0 over "
                f"{config.ramp_up_duration + config.hold_duration + config.ramp_down_duration}s"
            )
            await self.set_glow_size(base_settings, 0)
            await self._run_phase(base_settings, ramp_up_sizes(config), config.ramp_up_duration)
            await self._sleep(config.hold_duration)
            await self._run_phase(base_settings, ramp_down_sizes(config), config.ramp_down_duration)
            logger.debug("[Handcam] Glow animation completed")
            return True
        except RendererError as e:
            logger.warning(f"[Handcam] Error in glow animation: {e}")
            await self.reset()
            return False

    async def _run_phase(self, base_settings: Dict[str, Any], sizes: List[int], duration_s: float) -> None:
        step_delay = duration_s / max(len(sizes) - 1, 1)
        for index, size in enumerate(sizes):
            await self.set_glow_size(base_settings, size)
            if index < len(sizes) - 1:
                await self._sleep(step_delay)

    async def _base_settings(self) -> Dict[str, Any]:
        settings = await self.sources.get_source_filter_settings(
            self.config.source_name, self.config.glow_filter_name
        )
        return dict(settings or {})

    async def set_glow_size(self, base_settings: Dict[str, Any], size: int) -> bool:
        # Glow filter plugins differ in the key they read
        return await self.sources.set_source_filter_settings(
            self.config.source_name,
            self.config.glow_filter_name,
            {**base_settings, "Size": size, "glow_size": size},
        )

    async def reset(self) -> None:
        """Put the glow back to 0; failures are logged only."""
        try:
            await self.set_glow_size(await self._base_settings(), 0)
            logger.debug("[Handcam] Reset glow properties after error")
        except RendererError as e:
            logger.debug(f"[Handcam] Failed to reset glow properties: {e}")

    async def initialize(self) -> bool:
        """
        Enable the glow filter and set its size to 0 (called when the renderer connects).

        Returns:
            bool: False when disabled or when the renderer rejected a request
        """
        if not self.is_enabled():
            logger.debug("[Handcam] Glow initialization skipped - disabled in config")
            return False
        config = self.config
        try:
            await self.sources.set_source_filter_enabled(
                config.source_name, config.glow_filter_name, True
            )
            await self.set_glow_size(await self._base_settings(), 0)
        except RendererError as e:
            logger.debug(f"[Handcam] Error initializing glow filter: {e}")
            return False
        logger.debug("[Handcam] Glow filter initialized to 0")
        return True

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
