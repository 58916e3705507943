from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    local_tz = datetime.now().astimezone().tzinfo
    if not name:
        return local_tz or timezone.utc
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except Exception as exc:  # pragma: no cover - environment-dependent
        logger.warning("Failed to load timezone %s via zoneinfo (%s)", name, exc)
    if local_tz:
        logger.warning("Using system local timezone instead: %s", getattr(local_tz, "key", local_tz))
        return local_tz
    logger.warning("System timezone unavailable, fallback to UTC")
    return timezone.utc


def now_in_tz(tz: Optional[tzinfo]) -> datetime:
    if tz:
        return datetime.now(tz)
    return datetime.now().astimezone()


def format_tz_offset(tz: tzinfo) -> str:
    offset = tz.utcoffset(now_in_tz(tz))
    if offset is None:
        return ""
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def format_time_remaining(target: datetime, now: datetime) -> str:
    """Short countdown such as '2d 3h 15m', or 'Now' once due."""
    diff = target - now
    if diff <= timedelta(0):
        return "Now"
    total_minutes = int(diff.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_clock(hour: int, minute: int) -> str:
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {suffix}"
