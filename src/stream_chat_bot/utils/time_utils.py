"""
Millisecond clock and timestamp normalisation helpers.
"""

import math
import time
from datetime import datetime, timezone
from typing import Any, Optional

# Numeric timestamps above this are microseconds
MICROSECOND_THRESHOLD = 10**13
# Numeric timestamps below this are seconds
SECOND_THRESHOLD = 10**11


def now_ms() -> int:
    """Wall clock in milliseconds."""
    return int(time.time() * 1000)


def to_epoch_ms(value: Any) -> Optional[int]:
    """
    Convert a raw timestamp to epoch milliseconds.

    Accepts numbers and numeric strings (seconds, milliseconds or
    microseconds, told apart by magnitude), ISO-8601 strings and
    datetime objects.

    Returns:
        Optional[int]: Milliseconds, or None when the value does not parse
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            return to_epoch_ms(parsed)

    if not isinstance(value, (int, float)) or value != value or value <= 0:
        return None
    if isinstance(value, float) and math.isinf(value):
        return None

    if value > MICROSECOND_THRESHOLD:
        return int(value // 1000)
    if value < SECOND_THRESHOLD:
        return int(value * 1000)
    return int(value)


def iso_from_ms(ms: int) -> Optional[str]:
    """
    Format epoch milliseconds as ISO-8601 UTC with millisecond precision.

    Returns None when the value is outside the range datetime can represent.
    """
    try:
        dt = datetime.fromtimestamp(ms // 1000, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{ms % 1000:03d}Z"


def normalize_timestamp(value: Any) -> Optional[str]:
    """Raw timestamp to canonical ISO-8601 string, or None when unparseable."""
    ms = to_epoch_ms(value)
    if ms is None:
        return None
    return iso_from_ms(ms)
