"""
Display, TTS and log text for canonical events.

build_notification() takes a canonical event payload (camelCase keys) and
returns a copy with `displayMessage`, `ttsMessage` and `logMessage` added.
"""

import re
from typing import Any, Dict, Optional

MAX_DISPLAY_USERNAME = 40
MAX_TTS_USERNAME = 20

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "INR": "₹",
    "KRW": "₩",
}

CURRENCY_WORDS = {
    "$": "dollars",
    "USD": "dollars",
    "EUR": "euros",
    "€": "euros",
    "GBP": "pounds",
    "£": "pounds",
    "JPY": "yen",
    "¥": "yen",
    "KRW": "won",
    "₩": "won",
    "INR": "rupees",
    "CAD": "canadian dollars",
    "AUD": "australian dollars",
}

TEMPLATES = {
    "follow": {
        "display": "{username} just followed!",
        "tts": "{tts_username} just followed",
        "log": "New follower: {username}",
    },
    "share": {
        "display": "{username} shared the stream",
        "tts": "{tts_username} shared the stream",
        "log": "Share from {username}",
    },
    "envelope": {
        "display": "{username} sent a treasure chest!",
        "tts": "{tts_username} sent a treasure chest",
        "log": "Treasure chest from {username}",
    },
    "greeting": {
        "display": "Welcome, {username}! 👋",
        "tts": "Hi {tts_username}",
        "log": "Greeting: {username}",
    },
    "farewell": {
        "display": "Goodbye, {username}! 👋",
        "tts": "Goodbye {tts_username}",
        "log": "Farewell: {username}",
    },
    "command": {
        "display": "{username} used command {command}",
        "tts": "{tts_username} used command {command_name}",
        "log": "Command {command} triggered by {username}",
    },
}

ERROR_LABELS = {
    "gift": "gift",
    "giftpaypiggy": "gift",
    "paypiggy": "subscription",
    "envelope": "treasure chest",
}

_TTS_UNSAFE = re.compile(r"[^\w\s'-]", re.UNICODE)


def truncate_username(username: Any, max_length: int = MAX_DISPLAY_USERNAME) -> str:
    name = username if isinstance(username, str) else ""
    if len(name) <= max_length:
        return name
    return name[: max_length - 3] + "..."


def sanitize_username_for_tts(username: Any, max_length: int = MAX_TTS_USERNAME) -> str:
    """Strip emoji and symbols so TTS engines read the name cleanly."""
    name = username if isinstance(username, str) else ""
    name = _TTS_UNSAFE.sub("", name).replace("_", " ")
    name = " ".join(name.split())
    return name[:max_length].strip() or "someone"


def format_coins(coins: Any) -> str:
    try:
        value = max(0, int(coins))
    except (TypeError, ValueError):
        return "0 coins"
    return "1 coin" if value == 1 else f"{value:,} coins"


def format_currency(amount: float, currency: str) -> str:
    """"$4.99", "€5.00", or "CAD10.00" for codes without a unique symbol."""
    code = (currency or "$").strip()
    symbol = CURRENCY_SYMBOLS.get(code.upper(), code)
    if code.upper() == "JPY":
        return f"{symbol}{amount:,.0f}"
    return f"{symbol}{amount:,.2f}"


def format_currency_for_tts(amount: float, currency: str) -> str:
    word = CURRENCY_WORDS.get((currency or "$").strip(), "dollars")
    whole = int(amount)
    cents = round((amount - whole) * 100)
    if cents:
        return f"{whole} {word} {cents}"
    if whole == 1:
        return f"1 {word[:-1] if word.endswith('s') else word}"
    return f"{whole} {word}"


def format_gift_count(count: int, gift_type: str) -> str:
    """"1 rose", "3 roses", "1 bit", "200 bits"."""
    lower = gift_type.lower()
    if count == 1:
        return "1 bit" if lower == "bits" else f"1 {lower}"
    if lower.endswith("s"):
        return f"{count} {lower}"
    return f"{count} {lower}s"


def format_tier(tier: Optional[str]) -> str:
    """Tier 1 is the default and is not shown."""
    if not tier or str(tier) in ("1000", "1"):
        return ""
    mapping = {"2000": "2", "3000": "3"}
    return f" (Tier {mapping.get(str(tier), tier)})"


def format_ordinal(value: int) -> str:
    n = abs(int(value))
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def _error_message(event_type: str, username: str) -> str:
    label = ERROR_LABELS.get(event_type, "notification")
    if username:
        return f"Error processing {label} from {username}"
    return f"Error processing {label}"


def _gift_messages(data: Dict[str, Any], name: str, tts_name: str):
    gift_type = data.get("giftType") or "gift"
    count = int(data.get("giftCount") or 0)
    amount = float(data.get("amount") or 0)
    currency = str(data.get("currency") or "").strip()
    message = (data.get("message") or "").strip()

    if data.get("isAggregated"):
        types = data.get("giftTypes") or []
        types_text = f" ({', '.join(types)})" if types else ""
        noun = "gift" if count == 1 else "gifts"
        display = f"{name} sent {count} {noun} worth {format_coins(amount)}{types_text}"
        tts = f"{tts_name} sent {count} {noun} worth {format_coins(amount)}"
        return display, tts, display

    if currency.lower() == "bits":
        bits = int(amount)
        label = "bit" if bits == 1 else "bits"
        suffix = f": {message}" if message else ""
        display = f"{name} sent {bits:,} {label}{suffix}"
        tts = f"{tts_name} sent {bits} {label}"
        log = f"Bits from {name}: {bits:,} {label}"
        return display, tts, log

    if currency and currency.lower() != "coins":
        formatted = format_currency(amount, currency)
        suffix = f": {message}" if message else ""
        display = f"{name} sent a {formatted} {gift_type}{suffix}"
        tts = f"{tts_name} sent a {format_currency_for_tts(amount, currency)} {gift_type}"
        log = f"Gift from {name}: {gift_type} ({formatted})"
        return display, tts, log

    count_text = f"{count}x " if count > 1 else ""
    coin_text = f" ({format_coins(amount)})" if amount > 0 else ""
    gift_word = "" if "gift" in gift_type.lower() else " gift"
    display = f"{name} sent {count_text}{gift_type}{gift_word}{coin_text}"
    tts = f"{tts_name} sent {format_gift_count(count, gift_type)}"
    if amount > 0:
        tts += f" for {format_coins(amount)}"
    log = f"Gift from {name}: {count_text}{gift_type}{coin_text}"
    return display, tts, log


def _paypiggy_messages(data: Dict[str, Any], name: str, tts_name: str):
    platform = data.get("platform")
    months = int(data.get("months") or 0)
    renewal = bool(data.get("isRenewal")) or months > 1
    tier = format_tier(data.get("tier"))

    if platform == "youtube":
        level = data.get("membershipLevel")
        level_text = f" ({level})" if level and level != "Member" else ""
        if renewal:
            months_text = f" for their {format_ordinal(months)} month" if months else ""
            display = f"{name} renewed membership{months_text}{level_text}!"
            return display, f"{tts_name} renewed membership{months_text}", f"Member renewal: {name}"
        return (
            f"{name} just became a member!{level_text}",
            f"{tts_name} just became a member",
            f"New member: {name}!{level_text}",
        )

    if renewal:
        months_text = f" for {months} months" if months else ""
        return (
            f"{name} renewed subscription{months_text}!{tier}",
            f"{tts_name} renewed subscription{months_text}",
            f"Subscriber renewal: {name}{months_text}{tier}",
        )
    return (
        f"{name} just subscribed!{tier}",
        f"{tts_name} just subscribed",
        f"New subscriber: {name}!{tier}",
    )


def _giftpaypiggy_messages(data: Dict[str, Any], name: str, tts_name: str):
    count = int(data.get("giftCount") or 0)
    youtube = data.get("platform") == "youtube"
    noun, plural = ("membership", "memberships") if youtube else ("subscription", "subscriptions")
    tier = format_tier(data.get("tier")) if data.get("platform") == "twitch" else ""
    if count > 1:
        display = f"{name} gifted {count} {plural}!{tier}"
        tts = f"{tts_name} gifted {count} {plural}"
    else:
        display = f"{name} gifted a {noun}!{tier}"
        tts = f"{tts_name} gifted a {noun}"
    return display, tts, display


def build_messages(data: Dict[str, Any]) -> Dict[str, str]:
    """
    Render display, TTS and log strings for one payload.

    Args:
        data: Canonical event payload (camelCase keys)

    Returns:
        Dict with displayMessage, ttsMessage and logMessage
    """
    event_type = data.get("type", "")
    username = data.get("username") or ""
    name = truncate_username(username)
    tts_name = sanitize_username_for_tts(username)

    if data.get("isError"):
        text = _error_message(event_type, name)
        return {"displayMessage": text, "ttsMessage": text, "logMessage": text}

    if event_type == "gift":
        display, tts, log = _gift_messages(data, name, tts_name)
    elif event_type == "paypiggy":
        display, tts, log = _paypiggy_messages(data, name, tts_name)
    elif event_type == "giftpaypiggy":
        display, tts, log = _giftpaypiggy_messages(data, name, tts_name)
    elif event_type == "raid":
        viewers = int(data.get("viewerCount") or 0)
        display = f"Incoming raid from {name} with {viewers:,} viewers!"
        tts = f"Incoming raid from {tts_name} with {viewers} {'viewer' if viewers == 1 else 'viewers'}"
        log = display
    elif event_type == "redemption":
        title = data.get("rewardTitle") or "a reward"
        cost = data.get("rewardCost")
        display = f"{name} redeemed {title} ({cost:,} points)!" if cost else f"{name} redeemed {title}!"
        tts = f"{tts_name} redeemed {title}"
        log = f"Redemption by {name}: {title} ({cost or 0} points)"
    elif event_type == "chat":
        message = data.get("message") or ""
        display = f"{name}: {message}"
        tts = f"{tts_name} says {message}"
        log = f"Chat from {username}: {message}"
    elif event_type in TEMPLATES:
        values = {
            "username": name,
            "tts_username": tts_name,
            "command": data.get("command") or "",
            "command_name": (data.get("command") or "").lstrip("!"),
        }
        templates = TEMPLATES[event_type]
        display = templates["display"].format(**values)
        tts = templates["tts"].format(**values)
        log = templates["log"].format(**{**values, "username": username})
    else:
        message = data.get("message") or ""
        display, tts, log = message, message, f"{event_type}: {message}"

    return {"displayMessage": display, "ttsMessage": tts, "logMessage": log}


def build_notification(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of the payload with rendered messages attached."""
    return {**data, **build_messages(data)}
