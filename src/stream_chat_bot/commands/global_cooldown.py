"""
Per-command global cooldown.

One timestamp per command name, shared by every user. Command names are
case-sensitive keys.
"""

from typing import Callable, Dict, Optional

from loguru import logger

from ..utils.time_utils import now_ms

DEFAULT_MAX_AGE_MS = 300000


class GlobalCommandCooldownManager:
    """
    Tracks the last accepted execution of each command.

    Args:
        clock: Millisecond clock, injectable for tests
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or now_ms
        self.command_timestamps: Dict[str, int] = {}
        self._checks = 0
        self._blocks = 0
        self._updates = 0

    def is_command_on_cooldown(self, command_name: Optional[str], cooldown_ms: int) -> bool:
        """
        Whether a command was executed less than cooldown_ms ago.

        Empty names and non-positive cooldowns are never on cooldown.
        """
        self._checks += 1
        if not command_name or not isinstance(command_name, str) or cooldown_ms <= 0:
            logger.debug(
                f"[GlobalCooldown] Allowing '{command_name}' (cooldown {cooldown_ms}ms): nothing to check"
            )
            return False

        last = self.command_timestamps.get(command_name)
        if last is None:
            return False

        elapsed = self._clock() - last
        if elapsed < cooldown_ms:
            self._blocks += 1
            logger.debug(
                f"[GlobalCooldown] {command_name} blocked: used {elapsed}ms ago, cooldown {cooldown_ms}ms"
            )
            return True
        return False

    def update_command_timestamp(self, command_name: Optional[str]) -> None:
        if not command_name or not isinstance(command_name, str):
            logger.debug(f"[GlobalCooldown] Skipping update for invalid command name: {command_name}")
            return
        self.command_timestamps[command_name] = self._clock()
        self._updates += 1

    def get_remaining_cooldown(self, command_name: Optional[str], cooldown_ms: int) -> int:
        """Milliseconds left before the command may run again (0 when free)."""
        if not command_name or not isinstance(command_name, str) or cooldown_ms <= 0:
            return 0
        last = self.command_timestamps.get(command_name)
        if last is None:
            return 0
        return max(0, cooldown_ms - (self._clock() - last))

    def clear_expired_cooldowns(self, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> int:
        """
        Drop entries whose age is at least max_age_ms.

        Returns:
            int: Number of removed entries
        """
        now = self._clock()
        expired = [
            name for name, timestamp in self.command_timestamps.items()
            if now - timestamp >= max_age_ms
        ]
        for name in expired:
            del self.command_timestamps[name]

        if expired:
            logger.debug(
                f"[GlobalCooldown] Cleared {len(expired)} expired cooldowns "
                f"(kept {len(self.command_timestamps)} active)"
            )
        return len(expired)

    def reset_all_cooldowns(self) -> None:
        cleared = len(self.command_timestamps)
        self.command_timestamps.clear()
        self._checks = self._blocks = self._updates = 0
        logger.debug(f"[GlobalCooldown] Reset all cooldowns (cleared {cleared} commands)")

    def get_stats(self) -> Dict[str, float]:
        now = self._clock()
        timestamps = list(self.command_timestamps.values())
        return {
            "tracked_commands": len(timestamps),
            "commands_on_cooldown": sum(1 for t in timestamps if now - t < DEFAULT_MAX_AGE_MS),
            "oldest_command_timestamp": min(timestamps) if timestamps else 0,
            "checks": self._checks,
            "blocks": self._blocks,
            "updates": self._updates,
            "block_rate": self._blocks / self._checks if self._checks else 0,
        }
