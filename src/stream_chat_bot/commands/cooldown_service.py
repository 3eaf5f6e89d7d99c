"""
Per-user command cooldowns with heavy-usage detection.

A user is blocked when their last accepted command is younger than the
regular cooldown, or when they hit the heavy-command budget inside the
rolling window. Reaching the budget on an accepted command also starts a
heavy penalty of heavyCommandCooldown ms.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from ..platform_events import PlatformEvents
from ..utils.time_utils import iso_from_ms, now_ms

RELOAD_SECTIONS = (None, "general", "cooldowns")


@dataclass
class UserCooldownState:
    last_command_ms: Optional[int] = None
    last_heavy_command_ms: Optional[int] = None
    heavy_until_ms: int = 0
    # Accepted invocations inside the heavy window, oldest first
    timestamps: List[int] = field(default_factory=list)

    @property
    def recent_heavy_count(self) -> int:
        return len(self.timestamps)

    @property
    def window_start_ms(self) -> Optional[int]:
        return self.timestamps[0] if self.timestamps else None


@dataclass
class CooldownSettings:
    cooldown_ms: int
    heavy_threshold: int
    heavy_window_ms: int
    heavy_cooldown_ms: int
    max_entries: int
    cleanup_interval_ms: int


class CommandCooldownService:
    """
    Owns per-user cooldown state.

    Args:
        config_service: ConfigService providing `general` and `cooldowns`
        event_bus: Optional bus for cooldown events and config reloads
        clock: Millisecond clock
        sleep: Coroutine used by the periodic cleanup loop (seconds)
    """

    def __init__(
        self,
        config_service,
        event_bus=None,
        clock: Optional[Callable[[], int]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if config_service is None:
            raise ValueError("CommandCooldownService requires config")
        self._config_service = config_service
        self._event_bus = event_bus
        self._clock = clock or now_ms
        self._sleep = sleep

        self.users: Dict[str, UserCooldownState] = {}
        self.settings = self._read_settings()
        self.last_config_refresh_ms = self._clock()
        self._cleanup_task: Optional[asyncio.Task] = None
        self._subscription = None
        if event_bus is not None:
            self._subscription = event_bus.subscribe(
                PlatformEvents.CONFIG_CHANGED, self._on_config_changed
            )

    def _read_settings(self) -> CooldownSettings:
        general = self._config_service.general
        cooldowns = self._config_service.config.cooldowns
        return CooldownSettings(
            cooldown_ms=general.cmd_cooldown_ms,
            heavy_threshold=general.heavy_command_threshold,
            heavy_window_ms=general.heavy_command_window,
            heavy_cooldown_ms=general.heavy_command_cooldown,
            max_entries=cooldowns.max_entries,
            cleanup_interval_ms=cooldowns.cleanup_interval_ms,
        )

    def _on_config_changed(self, payload: Optional[Dict[str, Any]]) -> None:
        section = (payload or {}).get("section")
        if section in RELOAD_SECTIONS:
            self.settings = self._read_settings()
            self.last_config_refresh_ms = self._clock()
            logger.debug("[CommandCooldown] Cooldown settings reloaded")

    def _window(self, state: UserCooldownState, now: int) -> List[int]:
        window_start = now - self.settings.heavy_window_ms
        state.timestamps = [t for t in state.timestamps if t > window_start]
        return state.timestamps

    def check_user_cooldown(
        self,
        user_id: Optional[str],
        cooldown_ms: Optional[int] = None,
        heavy_cooldown_ms: Optional[int] = None,
    ) -> bool:
        """
        Whether the user may run a command now.

        Args:
            user_id: Platform user id
            cooldown_ms: Regular cooldown override
            heavy_cooldown_ms: Heavy penalty override

        Returns:
            bool: True when allowed
        """
        if not user_id or not isinstance(user_id, str):
            logger.warning("[CommandCooldown] Invalid userId provided to check_user_cooldown")
            return False

        cooldown_ms = self.settings.cooldown_ms if cooldown_ms is None else cooldown_ms
        state = self.users.get(user_id)
        if state is None:
            return True

        now = self._clock()
        if (
            cooldown_ms > 0
            and state.last_command_ms is not None
            and now - state.last_command_ms < cooldown_ms
        ):
            remaining = cooldown_ms - (now - state.last_command_ms)
            logger.debug(
                f"[CommandCooldown] User {user_id} is on regular cooldown ({remaining}ms remaining)"
            )
            return False

        if heavy_cooldown_ms is not None and state.last_heavy_command_ms is not None:
            heavy_until = state.last_heavy_command_ms + heavy_cooldown_ms
        else:
            heavy_until = state.heavy_until_ms
        if now < heavy_until:
            logger.debug(
                f"[CommandCooldown] User {user_id} is under heavy command limit "
                f"({heavy_until - now}ms remaining)"
            )
            return False

        window = self._window(state, now)
        if len(window) >= self.settings.heavy_threshold:
            logger.debug(
                f"[CommandCooldown] User {user_id} reached {len(window)} commands "
                f"in {self.settings.heavy_window_ms}ms"
            )
            return False
        return True

    def update_user_cooldown(self, user_id: Optional[str]) -> None:
        """Record an accepted command for the user."""
        if not user_id or not isinstance(user_id, str):
            logger.warning("[CommandCooldown] Invalid userId provided to update_user_cooldown")
            return

        now = self._clock()
        state = self.users.setdefault(user_id, UserCooldownState())
        state.last_command_ms = now
        window = self._window(state, now)
        window.append(now)

        self._emit(
            PlatformEvents.COOLDOWN_UPDATED,
            {
                "userId": user_id,
                "timestamp": iso_from_ms(now),
                "expiresAt": iso_from_ms(now + self.settings.cooldown_ms),
            },
        )

        if len(window) >= self.settings.heavy_threshold:
            state.last_heavy_command_ms = now
            state.heavy_until_ms = now + self.settings.heavy_cooldown_ms
            logger.debug(
                f"[CommandCooldown] User {user_id} is now under heavy command limit "
                f"({len(window)} commands in {self.settings.heavy_window_ms}ms)"
            )
            self._emit(
                PlatformEvents.COOLDOWN_HEAVY_DETECTED,
                {
                    "userId": user_id,
                    "commandCount": len(window),
                    "windowMs": self.settings.heavy_window_ms,
                    "timestamp": iso_from_ms(now),
                },
            )

    def reset_user_cooldown(self, user_id: str) -> None:
        self.users.pop(user_id, None)
        logger.debug(f"[CommandCooldown] Reset all cooldowns for user {user_id}")
        self._emit(
            PlatformEvents.COOLDOWN_RESET,
            {"userId": user_id, "timestamp": iso_from_ms(self._clock())},
        )

    def cleanup_expired_cooldowns(self) -> int:
        """
        Forget users with nothing left to enforce, then trim to max_entries.

        Returns:
            int: Number of removed users
        """
        now = self._clock()
        horizon = max(
            self.settings.cooldown_ms,
            self.settings.heavy_window_ms,
            self.settings.heavy_cooldown_ms,
        )
        expired = [
            user_id for user_id, state in self.users.items()
            if now >= state.heavy_until_ms
            and (state.last_command_ms is None or now - state.last_command_ms >= horizon)
        ]
        for user_id in expired:
            del self.users[user_id]

        overflow = len(self.users) - self.settings.max_entries
        if overflow > 0:
            oldest = sorted(self.users, key=lambda uid: self.users[uid].last_command_ms or 0)
            for user_id in oldest[:overflow]:
                del self.users[user_id]
                expired.append(user_id)

        if expired:
            logger.debug(f"[CommandCooldown] Cleaned up {len(expired)} cooldown entries")
        return len(expired)

    def get_status(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        now = self._clock()
        status: Dict[str, Any] = {
            "config": {
                "cooldownMs": self.settings.cooldown_ms,
                "heavyCommandThreshold": self.settings.heavy_threshold,
                "heavyCommandWindow": self.settings.heavy_window_ms,
                "heavyCommandCooldown": self.settings.heavy_cooldown_ms,
                "maxEntries": self.settings.max_entries,
            },
            "activeUsers": len(self.users),
            "heavyLimitUsers": sum(1 for s in self.users.values() if now < s.heavy_until_ms),
            "lastConfigRefresh": iso_from_ms(self.last_config_refresh_ms),
        }
        if user_id is not None:
            state = self.users.get(user_id, UserCooldownState())
            status["user"] = {
                "userId": user_id,
                "lastCommandTime": state.last_command_ms,
                "isHeavyLimit": now < state.heavy_until_ms,
                "commandCount": state.recent_heavy_count,
            }
        return status

    def start(self) -> None:
        """Start the periodic cleanup loop on the running event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await self._sleep(self.settings.cleanup_interval_ms / 1000)
                self.cleanup_expired_cooldowns()
            except asyncio.CancelledError:
                break

    def dispose(self) -> None:
        if self._cleanup_task is not None and not self._cleanup_task.done():
            self._cleanup_task.cancel()
        self._cleanup_task = None
        if self._event_bus is not None and self._subscription is not None:
            self._event_bus.unsubscribe(self._subscription)
            self._subscription = None
        self.users.clear()
        logger.debug("[CommandCooldown] Disposed")

    def _emit(self, topic, payload: Dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(topic, payload)
