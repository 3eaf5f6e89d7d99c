"""
JSON token store for the game-streaming platform.

Tokens survive restarts and are rewritten after every successful refresh.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from loguru import logger


class TokenStore:
    """
    Persists `{accessToken, refreshToken, expiresAt}` under a `twitch` key.

    Writes go to a temporary file that replaces the store atomically;
    other top-level keys in the file are preserved.
    """

    def __init__(self, token_store_path: str):
        if not token_store_path:
            raise ValueError("tokenStorePath is required for token persistence")
        self.token_file = Path(token_store_path)

    def load(self) -> Optional[Dict[str, Optional[str]]]:
        """
        Load persisted tokens.

        Returns:
            Dict with accessToken, refreshToken, expiresAt, or None when the
            store is missing or holds no tokens.

        Raises:
            ValueError: If the file exists but is not valid JSON.
        """
        if not self.token_file.exists():
            logger.info("[TokenStore] Token store file not found; OAuth will be required")
            return None

        data = self._read()
        twitch = data.get("twitch") or {}
        if not twitch.get("accessToken") and not twitch.get("refreshToken"):
            return None

        return {
            "accessToken": twitch.get("accessToken"),
            "refreshToken": twitch.get("refreshToken"),
            "expiresAt": twitch.get("expiresAt"),
        }

    def save(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[str] = None,
    ) -> None:
        """
        Persist tokens. A missing refresh token keeps the previously stored one.
        """
        if not access_token:
            raise ValueError("accessToken is required to persist tokens")

        self.token_file.parent.mkdir(parents=True, exist_ok=True)

        existing: Dict = {}
        if self.token_file.exists():
            existing = self._read()

        previous_refresh = (existing.get("twitch") or {}).get("refreshToken")
        payload = {
            **existing,
            "twitch": {
                "accessToken": access_token,
                "refreshToken": refresh_token or previous_refresh,
                "expiresAt": expires_at,
                "updatedAt": datetime.now(timezone.utc).isoformat(),
            },
        }

        temp_path = self.token_file.with_name(self.token_file.name + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        _try_chmod(temp_path, 0o600)
        os.replace(temp_path, self.token_file)
        logger.debug(f"[TokenStore] Tokens saved to {self.token_file}")

    def clear(self) -> None:
        """Remove the twitch entry, keeping other keys."""
        if not self.token_file.exists():
            return
        data = self._read()
        data.pop("twitch", None)
        with open(self.token_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info("[TokenStore] Tokens cleared")

    def _read(self) -> Dict:
        try:
            with open(self.token_file, "r", encoding="utf-8") as f:
                return json.load(f) or {}
        except json.JSONDecodeError as e:
            logger.error(f"[TokenStore] Invalid token store file: {self.token_file}")
            raise ValueError(f"Invalid token store file: {self.token_file}") from e


def _try_chmod(path: Path, mode: int) -> None:
    if os.name == "nt":
        return
    try:
        os.chmod(path, mode)
    except OSError as e:
        logger.warning(f"[TokenStore] Failed to set permissions on {path}: {e}")
