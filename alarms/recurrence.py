from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from dateutil.relativedelta import relativedelta


class RepeatType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


_PERIODS = {
    RepeatType.DAILY: timedelta(days=1),
    RepeatType.WEEKLY: timedelta(weeks=1),
}


def parse_repeat_type(value) -> RepeatType:
    """Map any stored value onto a RepeatType; unknown values mean no repetition."""
    if isinstance(value, RepeatType):
        return value
    if value is None:
        return RepeatType.NONE
    try:
        return RepeatType(str(value).strip().lower())
    except ValueError:
        return RepeatType.NONE


def is_repeating(repeat_type) -> bool:
    return parse_repeat_type(repeat_type) is not RepeatType.NONE


def advance(trigger_time: datetime, repeat_type, steps: int) -> datetime:
    """Return the occurrence `steps` whole periods after trigger_time.

    Always counted from trigger_time itself, so month-end clamping
    (Jan 31 -> Feb 28) never carries over into later months.
    """
    repeat = parse_repeat_type(repeat_type)
    if repeat is RepeatType.MONTHLY:
        return trigger_time + relativedelta(months=steps)
    period = _PERIODS.get(repeat)
    if period is None:
        return trigger_time
    return trigger_time + period * steps


def next_occurrence(trigger_time: datetime, repeat_type, now: Optional[datetime] = None) -> datetime:
    """Next instant strictly after `now` at which the alarm is due.

    Non-repeating alarms return trigger_time as is, even when it already
    passed; the caller decides to fire those immediately.
    """
    repeat = parse_repeat_type(repeat_type)
    if repeat is RepeatType.NONE:
        return trigger_time

    now = now or datetime.now(trigger_time.tzinfo)
    if trigger_time > now:
        return trigger_time

    steps = max(1, _estimate_steps(trigger_time, repeat, now) - 1)
    candidate = advance(trigger_time, repeat, steps)
    while candidate <= now:
        steps += 1
        candidate = advance(trigger_time, repeat, steps)
    return candidate


def _estimate_steps(trigger_time: datetime, repeat: RepeatType, now: datetime) -> int:
    # Lower bound on whole periods elapsed; stepping resumes one period earlier.
    if repeat is RepeatType.MONTHLY:
        return (now.year - trigger_time.year) * 12 + (now.month - trigger_time.month)
    return int((now - trigger_time) // _PERIODS[repeat])
