from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from time_utils import format_clock

from .recurrence import RepeatType
from .storage import AlarmDraft

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

MESSAGES = {
    "water": "Time to hydrate! Your body will thank you.",
    "exercise": "Time to get moving! Your fitness goals await.",
    "work": "Time to focus! You've got this.",
    "meeting": "Time for your scheduled engagement!",
    "medicine": "Time to take your medication. Health first!",
    "break": "Time for a well-deserved break!",
    "food": "Time to nourish your body!",
    "sleep": "Time to rest and recharge!",
}

REPEAT_PHRASES = (
    (RepeatType.DAILY, ("every day", "daily"), "Daily"),
    (RepeatType.WEEKLY, ("every week", "weekly"), "Weekly"),
    (RepeatType.MONTHLY, ("every month", "monthly"), "Monthly"),
)

_DND_RE = re.compile(
    r"(?:don't|do not|dont)\s+disturb\s+(?:for\s+)?(?:next\s+)?(\d+)\s+(minutes|minute|hours|hour|days|day)"
)
_RELATIVE_RE = re.compile(r"(?:in\s+)?(\d+)\s+(minutes|minute|mins|min|hours|hour)(?:\s+from\s+now)?")
# Most specific first: "at 7", "7pm", "7:30", then any bare hour.
_TIME_PATTERNS = (
    re.compile(r"\bat\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b"),
    re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b"),
    re.compile(r"\b(\d{1,2}):(\d{2})()\b"),
    re.compile(r"\b(\d{1,2})()()\b"),
)
_WEEKDAY_RE = re.compile(r"(?:next|upcoming|this)\s+(" + "|".join(WEEKDAYS) + ")")

_TITLE_CLEANUP = (
    re.compile(r"^(?:put\s+a\s+|set\s+a\s+|set\s+an\s+|create\s+a\s+)?(?:reminder|alarm|timer)\s+(?:for\s+)?", re.I),
    re.compile(r"(?:^|\s+)in\s+\d+\s+(?:minutes|minute|mins|min|hours|hour|days|day|weeks|week|months|month)\b", re.I),
    re.compile(r"\s+(?:next|this|upcoming)\s+(?:" + "|".join(WEEKDAYS) + r"|week|month)", re.I),
    re.compile(r"\s+(?:at\s+)?\d{1,2}(?::\d{2})?(?:\s*(?:am|pm))?\b", re.I),
    re.compile(r"\s+(?:every\s+(?:day|morning|evening|night|week|month)|daily|weekly|monthly)", re.I),
    re.compile(r"\s+tomorrow|\s+today", re.I),
    re.compile(r"^(?:to|for)\s+|\s+(?:to|for)$", re.I),
)


@dataclass
class ParsedAlarm:
    kind: str  # "alarm" or "dnd"
    summary: str
    draft: Optional[AlarmDraft] = None
    dnd_delta: Optional[timedelta] = None


def parse_alarm_text(text: str, now: Optional[datetime] = None) -> Optional[ParsedAlarm]:
    """Parse an English alarm request such as 'water at 9am every day'.

    Returns None when no time can be found.
    """
    now = now or datetime.now().astimezone()
    cleaned = text.strip()
    lower = cleaned.lower()
    if not lower:
        return None

    dnd_match = _DND_RE.search(lower)
    if dnd_match:
        amount = int(dnd_match.group(1))
        unit = dnd_match.group(2).rstrip("s")
        delta = timedelta(**{f"{unit}s": amount})
        return ParsedAlarm(kind="dnd", summary=f"Do Not Disturb for {amount} {dnd_match.group(2)}", dnd_delta=delta)

    title = extract_title(cleaned)

    relative = _RELATIVE_RE.search(lower)
    if relative:
        amount = int(relative.group(1))
        unit = relative.group(2)
        delta = timedelta(hours=amount) if unit.startswith("hour") else timedelta(minutes=amount)
        draft = AlarmDraft(title=title, description=notification_message(title), trigger_time=now + delta)
        return ParsedAlarm(kind="alarm", summary=f"Timer: {title} - In {amount} {unit}", draft=draft)

    time_match = _find_time(lower)
    if not time_match:
        return None
    hour = int(time_match.group(1))
    minute = int(time_match.group(2)) if time_match.group(2) else 0
    hour = _adjust_hour(hour, time_match.group(3) or None)
    if hour > 23 or minute > 59:
        return None

    repeat_type = RepeatType.NONE
    today_at = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    clock = format_clock(hour, minute)

    if "tomorrow" in lower:
        trigger_time = today_at + timedelta(days=1)
        when = "Tomorrow"
    else:
        repeat = _match_repeat(lower)
        weekday_match = _WEEKDAY_RE.search(lower)
        if repeat:
            repeat_type, when = repeat
            trigger_time = today_at if today_at > now else today_at + timedelta(days=1)
        elif weekday_match:
            target = WEEKDAYS.index(weekday_match.group(1))
            days_ahead = (target - now.weekday()) % 7 or 7
            trigger_time = today_at + timedelta(days=days_ahead)
            when = weekday_match.group(1).capitalize()
        elif today_at > now:
            trigger_time = today_at
            when = "Today"
        else:
            trigger_time = today_at + timedelta(days=1)
            when = "Tomorrow"

    draft = AlarmDraft(
        title=title,
        description=notification_message(title),
        trigger_time=trigger_time,
        repeat_type=repeat_type,
    )
    return ParsedAlarm(kind="alarm", summary=f"Alarm: {title} - {when} at {clock}", draft=draft)


def extract_title(text: str) -> str:
    cleaned = text.strip()
    for pattern in _TITLE_CLEANUP:
        cleaned = pattern.sub("", cleaned).strip()
    if cleaned and not re.fullmatch(r"(?:alarm|timer|reminder)", cleaned, re.I):
        return cleaned[0].upper() + cleaned[1:]
    return "Reminder"


def notification_message(title: str) -> str:
    lower = title.lower()
    for keyword, message in MESSAGES.items():
        if keyword in lower:
            return message
    return f"Time for: {title}! Stay productive."


def _find_time(lower: str) -> Optional[re.Match]:
    for pattern in _TIME_PATTERNS:
        match = pattern.search(lower)
        if match:
            return match
    return None


def _match_repeat(lower: str):
    for repeat_type, phrases, label in REPEAT_PHRASES:
        if any(phrase in lower for phrase in phrases):
            return repeat_type, label
    return None


def _adjust_hour(hour: int, meridiem: Optional[str]) -> int:
    if meridiem == "pm" and hour != 12:
        return hour + 12
    if meridiem == "am" and hour == 12:
        return 0
    return hour
