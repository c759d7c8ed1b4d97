"""Display formatting for times, durations, dates and player labels."""

import math
import re
from datetime import datetime
from email.utils import parsedate_to_datetime

LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def format_time(seconds: float | None) -> str:
    """Format seconds as M:SS, or H:MM:SS past the hour. Unknown is 0:00."""
    if seconds is None or math.isnan(seconds) or math.isinf(seconds):
        return "0:00"
    total = max(int(seconds), 0)
    hrs, remainder = divmod(total, 3600)
    mins, secs = divmod(remainder, 60)
    if hrs > 0:
        return f"{hrs}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def format_duration(duration: str) -> str:
    """Format a raw feed duration (seconds or an already formatted HH:MM:SS).

    Examples:
        "125" -> "2:05"
        "01:02:05" -> "01:02:05"
    """
    if not duration:
        return ""
    if ":" in duration:
        return duration
    match = LEADING_INT.match(duration)
    if not match:
        return format_time(None)
    return format_time(int(match.group(1)))


def format_date(date_str: str) -> str:
    """Format an RSS date as e.g. "Jan 5, 2026"; unparsable values pass through."""
    if not date_str:
        return ""
    value = date_str.strip()
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            return date_str
    return f"{dt:%b} {dt.day}, {dt.year}"


def volume_icon(volume: float) -> str:
    if volume <= 0:
        return "volume_off"
    if volume < 0.5:
        return "volume_down"
    return "volume_up"


def episode_count_label(count: int) -> str:
    return f"{count} episode{'' if count == 1 else 's'}"


def speed_label(speed: float) -> str:
    return f"{speed:g}x"
