"""First-message detection for greetings."""

from typing import Any, Dict, Optional, Set

from loguru import logger


class UserTrackingService:
    """
    In-memory set of users who have spoken during this run.

    Nothing is persisted; a restart greets everyone again.
    """

    def __init__(self):
        self._seen: Set[str] = set()

    def is_first_message(self, user_id: Optional[str], context: Optional[Dict[str, Any]] = None) -> bool:
        """
        True the first time a user is seen, then False.

        Messages without a user id are never treated as first messages.
        """
        if not user_id:
            return False
        key = str(user_id)
        if key in self._seen:
            return False
        self._seen.add(key)
        context = context or {}
        logger.debug(
            f"[UserTracking] First message from {context.get('username') or key}"
            f" on {context.get('platform') or 'unknown platform'}"
        )
        return True

    def has_spoken(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and str(user_id) in self._seen

    def reset(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
