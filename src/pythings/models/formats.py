"""String format coercion for attribute values.

Each coercer takes a string and returns the normalized string, or
``None`` when the input cannot be made to satisfy the format. Inputs
are read generously; outputs are strict.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from urllib.parse import urlsplit

from pythings.state.policy import format_timestamp

_HEX6_RE = re.compile(r"^#[0-9A-F]{6}")
_HEX3_RE = re.compile(r"^#?([0-9A-F])([0-9A-F])([0-9A-F])$")
_BARE_HEX6_RE = re.compile(r"^[0-9A-F]{6}$")
_RGB_FUNC_RE = re.compile(r"^RGB\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)$")

# CSS level 1 colors plus a few common extended names.
_NAMED_COLORS: dict[str, str] = {
    "BLACK": "#000000",
    "SILVER": "#C0C0C0",
    "GRAY": "#808080",
    "GREY": "#808080",
    "WHITE": "#FFFFFF",
    "MAROON": "#800000",
    "RED": "#FF0000",
    "PURPLE": "#800080",
    "FUCHSIA": "#FF00FF",
    "MAGENTA": "#FF00FF",
    "GREEN": "#008000",
    "LIME": "#00FF00",
    "OLIVE": "#808000",
    "YELLOW": "#FFFF00",
    "NAVY": "#000080",
    "BLUE": "#0000FF",
    "TEAL": "#008080",
    "AQUA": "#00FFFF",
    "CYAN": "#00FFFF",
    "ORANGE": "#FFA500",
    "PINK": "#FFC0CB",
    "BROWN": "#A52A2A",
    "GOLD": "#FFD700",
    "VIOLET": "#EE82EE",
    "INDIGO": "#4B0082",
}


def format_color(value: str) -> str | None:
    """Normalize to ``#RRGGBB`` (upper-case)."""
    text = value.strip().upper()
    if _HEX6_RE.match(text):
        return text[:7]
    if _BARE_HEX6_RE.match(text):
        return "#" + text
    match = _HEX3_RE.match(text)
    if match:
        return "#" + "".join(c * 2 for c in match.groups())
    match = _RGB_FUNC_RE.match(text)
    if match:
        channels = [int(c) for c in match.groups()]
        if all(0 <= c <= 255 for c in channels):
            return "#" + "".join(f"{c:02X}" for c in channels)
        return None
    return _NAMED_COLORS.get(text.replace(" ", ""))


_DATETIME_FALLBACKS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%d %b %Y %H:%M:%S",
    "%d %b %Y",
    "%a, %d %b %Y %H:%M:%S %Z",
)


def _parse_datetime(value: str) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00").replace("z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATETIME_FALLBACKS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def format_datetime(value: str) -> str | None:
    """Normalize to UTC ``YYYY-MM-DDTHH:MM:SS.mmmZ``; naive inputs are taken as UTC."""
    parsed = _parse_datetime(value)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return format_timestamp(parsed)


def format_date(value: str) -> str | None:
    """Normalize to ``YYYY-MM-DD``."""
    text = value.strip()
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    parsed = _parse_datetime(text)
    if parsed is None:
        return None
    return parsed.date().isoformat()


def format_time(value: str) -> str | None:
    """Normalize to ``HH:MM:SS`` in UTC; an offset is converted, not dropped."""
    text = value.strip()
    if "T" in text:
        text = text.split("T", 1)[1]
    text = text.rstrip("Zz")
    try:
        parsed = time.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = datetime.combine(date(2000, 1, 1), parsed).astimezone(UTC).timetz()
    return parsed.replace(microsecond=0, tzinfo=None).isoformat()


def format_uri(value: str) -> str | None:
    """Keep *value* when it carries a scheme."""
    text = value.strip()
    parts = urlsplit(text)
    if not parts.scheme or not (parts.netloc or parts.path):
        return None
    return text


FORMATTERS: dict[str, Callable[[str], str | None]] = {
    "color": format_color,
    "datetime": format_datetime,
    "date": format_date,
    "time": format_time,
    "uri": format_uri,
}
