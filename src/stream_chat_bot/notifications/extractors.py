"""
Per-platform author, message, id and timestamp extraction.

Each platform adapter hands the processor a raw item in its own shape;
the extractors here are the only place that knows those shapes.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional

from ..utils.time_utils import normalize_timestamp


@dataclass(frozen=True)
class Author:
    id: Optional[str]
    name: str


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _clean_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _run_text(run: Any) -> str:
    if isinstance(run, str):
        return run
    run = _as_dict(run)
    for key in ("text", "emojiText"):
        if isinstance(run.get(key), str):
            return run[key]
    shortcuts = _as_dict(run.get("emoji")).get("shortcuts")
    if isinstance(shortcuts, list) and shortcuts and isinstance(shortcuts[0], str):
        return shortcuts[0]
    return ""


def message_text(value: Any) -> str:
    """
    Flatten a raw message into plain text.

    Strings pass through; run/fragment lists are concatenated; objects
    without recognisable text become "" rather than a repr.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, list):
        return "".join(_run_text(run) for run in value)
    if isinstance(value, dict):
        for key in ("runs", "fragments"):
            if isinstance(value.get(key), list):
                return message_text(value[key])
        for key in ("text", "simpleText"):
            if isinstance(value.get(key), str):
                return value[key]
    return ""


class PlatformExtractor(ABC):
    """Capability interface the unified processor is generic over."""

    platform: str = ""
    # Display names that identify anonymous or junk authors (lower-case)
    junk_names: FrozenSet[str] = frozenset()

    @abstractmethod
    def extract_author(self, raw: Dict[str, Any]) -> Optional[Author]:
        """Return the acting user, or None when the item has no author."""
        pass

    @abstractmethod
    def extract_message(self, raw: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def extract_timestamp(self, raw: Dict[str, Any]) -> Optional[str]:
        """ISO-8601 UTC timestamp, or None when missing or unparseable."""
        pass

    def extract_id(self, raw: Dict[str, Any]) -> Optional[str]:
        return _clean_id(raw.get("id"))

    def is_suppressed(self, author: Optional[Author]) -> bool:
        """Anonymous or junk authors never produce events."""
        if author is None:
            return False
        name = author.name.strip() if isinstance(author.name, str) else ""
        return not name or name.lower() in self.junk_names


class YouTubeExtractor(PlatformExtractor):
    """Live-chat items, either bare or wrapped as {"item": {...}}."""

    platform = "youtube"
    junk_names = frozenset({"anonymous", "n/a"})

    @staticmethod
    def _item(raw: Dict[str, Any]) -> Dict[str, Any]:
        item = raw.get("item")
        return item if isinstance(item, dict) else raw

    def extract_author(self, raw):
        author = self._item(raw).get("author")
        if not isinstance(author, dict):
            return None
        name = author.get("name")
        return Author(
            id=_clean_id(author.get("id") or author.get("channelId")),
            name=name if isinstance(name, str) else "",
        )

    def extract_message(self, raw):
        item = self._item(raw)
        value = item.get("message")
        if value is None and item is not raw:
            value = raw.get("message")
        return message_text(value)

    def extract_timestamp(self, raw):
        item = self._item(raw)
        value = item.get("timestampUsec")
        if value is None:
            value = item.get("timestamp_usec", item.get("timestamp"))
        return normalize_timestamp(value)

    def extract_id(self, raw):
        return _clean_id(self._item(raw).get("id"))


class TwitchExtractor(PlatformExtractor):
    """EventSub payloads (or adapter-normalised dicts)."""

    platform = "twitch"
    junk_names = frozenset({"ananonymouscheerer", "anonymous"})

    def extract_author(self, raw):
        user_id = (
            raw.get("userId")
            or raw.get("user_id")
            or raw.get("chatter_user_id")
        )
        name = (
            raw.get("username")
            or raw.get("user_name")
            or raw.get("chatter_user_name")
            or raw.get("user_login")
        )
        if user_id is None and name is None:
            return None
        return Author(id=_clean_id(user_id), name=name if isinstance(name, str) else "")

    def extract_message(self, raw):
        return message_text(raw.get("message"))

    def extract_timestamp(self, raw):
        for key in ("timestamp", "followed_at", "started_at", "redeemed_at"):
            if raw.get(key) is not None:
                return normalize_timestamp(raw[key])
        return None

    def extract_id(self, raw):
        return _clean_id(raw.get("id") or raw.get("message_id"))


class TikTokExtractor(PlatformExtractor):
    """Webcast messages with a nested `user` object."""

    platform = "tiktok"
    junk_names = frozenset({"anonymous"})

    def extract_author(self, raw):
        user = raw.get("user")
        if not isinstance(user, dict):
            if raw.get("userId") is None and raw.get("username") is None:
                return None
            user = {"userId": raw.get("userId"), "nickname": raw.get("username")}
        name = user.get("nickname") or user.get("uniqueId")
        return Author(
            id=_clean_id(user.get("userId") or user.get("uniqueId")),
            name=name if isinstance(name, str) else "",
        )

    def extract_message(self, raw):
        value = raw.get("comment")
        if value is None:
            value = raw.get("message")
        return message_text(value)

    def extract_timestamp(self, raw):
        value = raw.get("createTime")
        if value is None:
            value = raw.get("timestamp")
        return normalize_timestamp(value)

    def extract_id(self, raw):
        return _clean_id(raw.get("msgId") or raw.get("id"))


EXTRACTORS = {
    "youtube": YouTubeExtractor,
    "twitch": TwitchExtractor,
    "tiktok": TikTokExtractor,
}


def get_extractor(platform: str) -> PlatformExtractor:
    try:
        return EXTRACTORS[platform]()
    except KeyError:
        raise ValueError(f"Unsupported platform: {platform}") from None


# "Cheer100", "Corgo100" ... one token per cheermote
_CHEERMOTE = re.compile(r"(?<!\S)([A-Za-z][A-Za-z_]*?)(\d+)(?!\S)")


def sum_cheermote_bits(message: str, prefixes: Optional[Iterable[str]] = None) -> int:
    """
    Total bits in a cheer message.

    Args:
        message: Chat text such as "Corgo100 Corgo100 nice"
        prefixes: Known cheermote prefixes; any alphabetic prefix when None

    Returns:
        int: Sum of the cheermote amounts (200 for the example above)
    """
    if not isinstance(message, str):
        return 0
    allowed = {p.lower() for p in prefixes} if prefixes is not None else None
    total = 0
    for match in _CHEERMOTE.finditer(message):
        if allowed is not None and match.group(1).lower() not in allowed:
            continue
        total += int(match.group(2))
    return total
