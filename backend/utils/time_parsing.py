"""Lenient parsing helpers for clock strings, timestamps and calendar dates.

Every helper returns ``None`` instead of raising: malformed input is treated as
absent by the callers.
"""

from __future__ import annotations

import re
from datetime import date, datetime, tzinfo
from typing import Optional

from backend.utils.logger import get_logger


logger = get_logger(__name__)

_CLOCK_12H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_CLOCK_24H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_clock_minutes(value: Optional[str]) -> Optional[int]:
    """Return minute-of-day for ``"09:30 AM"`` or ``"14:00"`` style strings."""
    if value is None:
        return None
    text = str(value)
    if not text.strip() or "--" in text:
        return None

    match = _CLOCK_12H.match(text)
    if match is not None:
        hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            return None
        if period == "PM" and hour != 12:
            hour += 12
        elif period == "AM" and hour == 12:
            hour = 0
        return hour * 60 + minute

    match = _CLOCK_24H.match(text)
    if match is not None:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return hour * 60 + minute

    logger.debug("Ignoring unparseable clock value %r", value)
    return None


def format_clock(minutes: int) -> str:
    """Render minute-of-day as ``"HH:MM AM"``."""
    hour, minute = divmod(minutes, 60)
    period = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"{display_hour:02d}:{minute:02d} {period}"


def parse_timestamp(value: object, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse ISO timestamps into naive local datetimes.

    Aware values are converted to ``tz`` (when given) before the offset is
    dropped, so hour arithmetic happens on the lab's wall clock.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Ignoring unparseable timestamp %r", value)
            return None

    if parsed.tzinfo is not None:
        if tz is not None:
            parsed = parsed.astimezone(tz)
        parsed = parsed.replace(tzinfo=None)
    return parsed


def parse_calendar_date(value: object, tz: Optional[tzinfo] = None) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_timestamp(value, tz)
    if parsed is None:
        return None
    return parsed.date()
