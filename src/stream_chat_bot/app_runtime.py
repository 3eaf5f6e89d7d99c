"""
App Runtime - 모든 서비스를 정해진 순서로 조립하고 종료까지 관리합니다.

Construction order:
    EventBus -> ConfigService -> RendererClient (+ handcam glow, viewer counts)
    -> PlatformLifecycleService
    -> DisplayQueue -> notification / goal / spam services -> platform adapters

Shutdown order:
    system:shutdown -> subscriptions disposed -> queue stopped (pending
    clear flushed) -> renderer disconnected -> adapters cleaned up.
    A safety timer forces exit if the sequence hangs.
"""

import asyncio
import os
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from .auth import TokenStore, TokenValidator, TwitchAuthManager
from .commands import CommandCooldownService, CommandParser, GlobalCommandCooldownManager
from .config_manager import Config, ConfigService
from .event_bus import EventBus
from .exceptions import AuthenticationError
from .graceful_exit import GracefulExitService
from .monetization import DonationSpamDetector, GoalTracker
from .obs import (
    DisplayQueue,
    GoalDisplay,
    HandcamGlow,
    ObsEffects,
    ObsSources,
    RendererClient,
    ViewerCountObserver,
)
from .platform_events import PlatformEvents
from .platform_lifecycle import PlatformLifecycleService
from .services import (
    ChatNotificationRouter,
    NotificationManager,
    PlatformEventRouter,
    SelfMessageDetectionService,
    TtsService,
    VfxCommandService,
)
from .user_tracking import UserTrackingService
from .utils.time_utils import now_ms

FORCE_EXIT_TIMEOUT_MS = 2000
MAINTENANCE_INTERVAL_MS = 60 * 60 * 1000


def _default_force_exit(code: int) -> None:
    os._exit(code)


class AppRuntime:
    """
    Owns every service for one bot process.

    Args:
        config: Validated root config
        adapter_factories: platform name -> callable(platform_config) returning a PlatformAdapter
        chat_target: Rendered chat messages before a graceful exit (CLI --chat N);
            overrides general.gracefulExit when set
        echo_chat: Log routed chat messages (disabled by --no-msg)
        renderer_client_factory: Passed to RendererClient; defaults to obsws-python
        oauth_flow: Interactive Twitch authorization coroutine for TokenValidator
        speaker: Speech engine coroutine for TtsService
        clock: Millisecond clock shared by time-dependent services
        sleep: Coroutine used for every delay (seconds)
        force_exit: Called with an exit code when shutdown overruns its timer
    """

    def __init__(
        self,
        config: Config,
        adapter_factories: Optional[Dict[str, Callable[[Any], Any]]] = None,
        chat_target: Optional[int] = None,
        echo_chat: bool = True,
        renderer_client_factory: Optional[Callable[..., Any]] = None,
        oauth_flow: Optional[Callable[..., Awaitable[Optional[Dict[str, Any]]]]] = None,
        speaker: Optional[Callable[[str], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], int]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        force_exit: Callable[[int], None] = _default_force_exit,
    ):
        self.adapter_factories = dict(adapter_factories or {})
        self._clock = clock or now_ms
        self._sleep = sleep
        self._force_exit = force_exit
        self._oauth_flow = oauth_flow

        self.is_shutting_down = False
        self.shutdown_reason: Optional[str] = None
        self._shutdown_done = asyncio.Event()
        self._shutdown_task: Optional[asyncio.Task] = None
        self._maintenance_task: Optional[asyncio.Task] = None
        self._subscriptions: List[Any] = []

        # 1. Event bus and configuration
        self.event_bus = EventBus(debug=config.general.debug_enabled)
        self.config_service = ConfigService(config, self.event_bus)

        # 2. Renderer
        self.renderer = RendererClient(
            config.obs, self.event_bus, client_factory=renderer_client_factory, sleep=sleep
        )
        self.sources = ObsSources(self.renderer)
        self.effects = ObsEffects(self.renderer)
        self.handcam_glow = HandcamGlow(self.renderer, self.sources, self.config_service, sleep=sleep)
        self.viewer_count_observer = ViewerCountObserver(
            self.event_bus, self.renderer, self.sources, self.config_service
        )

        # 3. Platform lifecycle
        self.platform_lifecycle = PlatformLifecycleService(
            self.config_service, self.event_bus, clock=self._clock
        )

        # 4. Goals and display queue
        self.goal_tracker = GoalTracker(config.goals, self.event_bus)
        self.goal_display = GoalDisplay(self.goal_tracker, self.sources)
        self.display_queue = DisplayQueue(
            self.renderer,
            self.sources,
            self.config_service,
            event_bus=self.event_bus,
            goal_display=self.goal_display,
            handcam_glow=self.handcam_glow,
            clock=self._clock,
            sleep=sleep,
        )

        # 5. Commands, spam detection and notifications
        self.cooldown_service = CommandCooldownService(
            self.config_service, self.event_bus, clock=self._clock, sleep=sleep
        )
        self.global_cooldown = GlobalCommandCooldownManager(clock=self._clock)
        self.command_parser = CommandParser(config, self.cooldown_service, self.global_cooldown)

        self.notification_manager = NotificationManager(
            self.config_service, self.display_queue, command_parser=self.command_parser
        )
        self.spam_detector = DonationSpamDetector(
            config.spam,
            on_aggregated_donation=self.notification_manager.handle_aggregated_donation,
            clock=self._clock,
            sleep=sleep,
        )
        self.notification_manager.spam_detector = self.spam_detector

        self.user_tracking = UserTrackingService()
        self.self_message_detector = SelfMessageDetectionService(self.config_service)
        self.chat_router = ChatNotificationRouter(
            self.config_service,
            self.display_queue,
            self.notification_manager,
            platform_lifecycle=self.platform_lifecycle,
            user_tracking=self.user_tracking,
            command_parser=self.command_parser,
            echo_chat=echo_chat,
            self_message_detector=self.self_message_detector,
        )
        self.event_router = PlatformEventRouter(
            self.event_bus, self.chat_router, self.notification_manager
        )
        self.vfx_service = VfxCommandService(self.event_bus, self.effects, self.command_parser)
        self.tts_service = TtsService(
            self.config_service, self.event_bus, self.sources, speaker=speaker, sleep=sleep
        )

        graceful = config.general.graceful_exit
        target = chat_target
        if target is None and graceful.enabled:
            target = graceful.target_message_count
        self.graceful_exit = GracefulExitService(
            target,
            self.event_bus,
            near_completion_threshold=graceful.near_completion_threshold,
            platforms_provider=lambda: list(self.platform_lifecycle.get_platforms()),
            clock=self._clock,
        )

        # 6. Twitch authentication (only when the platform is enabled)
        self.auth_manager: Optional[TwitchAuthManager] = None
        self.token_validator: Optional[TokenValidator] = None
        if config.twitch.enabled:
            token_store = TokenStore(config.twitch.token_store_path)
            self.auth_manager = TwitchAuthManager(config.twitch, token_store=token_store)
            self.token_validator = TokenValidator(token_store=token_store, oauth_flow=oauth_flow)

        logger.debug("[AppRuntime] Services constructed")

    @property
    def config(self) -> Config:
        return self.config_service.config

    def get_services(self) -> Dict[str, Any]:
        return {
            "eventBus": self.event_bus,
            "configService": self.config_service,
            "renderer": self.renderer,
            "platformLifecycle": self.platform_lifecycle,
            "displayQueue": self.display_queue,
            "handcamGlow": self.handcam_glow,
            "viewerCountObserver": self.viewer_count_observer,
            "goalTracker": self.goal_tracker,
            "spamDetector": self.spam_detector,
            "commandParser": self.command_parser,
            "notificationManager": self.notification_manager,
            "chatRouter": self.chat_router,
            "eventRouter": self.event_router,
            "vfxService": self.vfx_service,
            "ttsService": self.tts_service,
            "gracefulExit": self.graceful_exit,
            "userTracking": self.user_tracking,
            "authManager": self.auth_manager,
        }

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Connect the renderer, authenticate, start services and platforms.

        Renderer and platform failures are logged and retried; they never
        abort startup.
        """
        logger.info("[AppRuntime] Starting stream chat bot...")

        self._subscriptions.append(
            self.event_bus.subscribe(PlatformEvents.SYSTEM_SHUTDOWN, self._on_shutdown_requested)
        )
        self._subscriptions.append(
            self.event_bus.subscribe(PlatformEvents.OBS_CONNECTED, self._on_renderer_connected)
        )
        self._subscriptions.append(
            self.event_bus.subscribe(PlatformEvents.ERROR, self._on_error)
        )

        self.event_router.start()
        self.viewer_count_observer.start()
        self.vfx_service.start()
        self.tts_service.start()
        self.cooldown_service.start()
        self.spam_detector.start()

        await self.renderer.connect()
        await self._authenticate()

        await self.platform_lifecycle.initialize_all_platforms(self.adapter_factories)
        self.display_queue.start()

        if not self.graceful_exit.is_enabled():
            logger.debug("[AppRuntime] Graceful exit disabled, running maintenance interval")
        self._maintenance_task = asyncio.create_task(self._maintenance_loop())

        self.event_bus.emit(
            PlatformEvents.SYSTEM_READY,
            {"services": self.get_services(), "platforms": list(self.platform_lifecycle.get_platforms())},
        )
        logger.success("[AppRuntime] Stream chat bot ready")

    async def _authenticate(self) -> bool:
        """
        Validate Twitch tokens, run the interactive flow if needed, then
        initialize the auth manager. Failure leaves Twitch unauthenticated
        while the rest of the bot keeps running.
        """
        if self.auth_manager is None or self.token_validator is None:
            return True

        summary = await self.token_validator.validate_all_tokens(self.config)
        authenticated = await self.token_validator.handle_authentication_flow(summary, self.config)
        twitch = summary.platforms.get("twitch")
        if twitch is not None and twitch.config is not None:
            self.auth_manager.update_config(twitch.config)

        if not authenticated:
            logger.warning("[AppRuntime] Twitch authentication failed, continuing without it")
            return False

        try:
            await self.auth_manager.initialize()
        except AuthenticationError as e:
            logger.error(f"[AppRuntime] Twitch auth manager failed to initialize: {e}")
            return False
        return True

    async def _maintenance_loop(self) -> None:
        cooldowns = self.config.cooldowns
        interval_ms = min(MAINTENANCE_INTERVAL_MS, cooldowns.global_cleanup_interval_ms)
        while True:
            try:
                await self._sleep(interval_ms / 1000)
                removed = self.command_parser.clear_expired_global_cooldowns(
                    cooldowns.global_max_age_ms
                )
                if removed:
                    logger.debug(f"[AppRuntime] Cleared {removed} expired global cooldowns")
            except asyncio.CancelledError:
                break

    async def _on_renderer_connected(self, payload: Optional[Dict[str, Any]]) -> None:
        # group item ids do not survive an OBS restart
        self.sources.clear_cache()
        await self.goal_display.refresh_all()
        await self.handcam_glow.initialize()

    def _on_error(self, payload: Optional[Dict[str, Any]]) -> None:
        payload = payload or {}
        logger.debug(
            f"[AppRuntime] Error reported by {payload.get('source', 'unknown')}: "
            f"{payload.get('message')}"
        )

    def _on_shutdown_requested(self, payload: Optional[Dict[str, Any]]) -> None:
        if self.is_shutting_down:
            return
        reason = (payload or {}).get("reason", "requested")
        self._shutdown_task = asyncio.create_task(self.shutdown(reason, emit=False))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self, reason: str = "requested", emit: bool = True) -> None:
        """
        Stop everything in reverse construction order.

        Args:
            reason: Recorded and sent with system:shutdown
            emit: Emit system:shutdown (False when reacting to one)
        """
        if self.is_shutting_down:
            await self._shutdown_done.wait()
            return
        self.is_shutting_down = True
        self.shutdown_reason = reason
        logger.info(f"[AppRuntime] Shutting down ({reason})...")

        force_timer = asyncio.create_task(self._force_exit_after(FORCE_EXIT_TIMEOUT_MS))

        if emit:
            self.event_bus.emit(PlatformEvents.SYSTEM_SHUTDOWN, {"reason": reason})

        try:
            for subscription in self._subscriptions:
                self.event_bus.unsubscribe(subscription)
            self._subscriptions.clear()

            if self._maintenance_task is not None and not self._maintenance_task.done():
                self._maintenance_task.cancel()
            self._maintenance_task = None

            self.event_router.dispose()
            self.viewer_count_observer.dispose()
            self.vfx_service.dispose()
            self.tts_service.dispose()
            self.graceful_exit.stop()
            self.cooldown_service.dispose()
            self.spam_detector.destroy()
            self.platform_lifecycle.dispose()

            await self.display_queue.stop()
            await self.handcam_glow.stop()
            await self.renderer.disconnect()
            await self.platform_lifecycle.disconnect_all()
        except Exception as e:
            logger.error(f"[AppRuntime] Error during shutdown: {e}")
        finally:
            force_timer.cancel()
            self._shutdown_done.set()

        logger.info("[AppRuntime] Shutdown complete")

    async def _force_exit_after(self, timeout_ms: int) -> None:
        try:
            await asyncio.sleep(timeout_ms / 1000)
        except asyncio.CancelledError:
            return
        logger.warning(f"[AppRuntime] Shutdown took longer than {timeout_ms}ms, forcing exit")
        self._force_exit(1)

    async def wait_until_shutdown(self) -> None:
        await self._shutdown_done.wait()

    def get_platforms(self) -> Dict[str, Any]:
        return self.platform_lifecycle.get_platforms()
