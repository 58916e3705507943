from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from .manager import AlarmManager, AlarmValidationError
from .parser import parse_alarm_text

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"#?(\d+)")
_MINUTES_RE = re.compile(r"(\d+)\s*(?:minutes|minute|mins|min)\b")
_PERCENT_RE = re.compile(r"(\d+)\s*%?")
_DND_OFF = ("dnd off", "do not disturb off", "don't disturb off")
DEFAULT_EXPORT_PATH = "alarms-export.json"


@dataclass
class IntentResult:
    handled: bool
    response_text: Optional[str] = None
    action: Optional[str] = None


class IntentRouter:
    """Turns typed commands into alarm manager calls."""

    def __init__(self, alarm_manager: AlarmManager, default_snooze_minutes: int = 5):
        self.alarm_manager = alarm_manager
        self.default_snooze_minutes = default_snooze_minutes

    def handle_text(self, text: str, now: datetime) -> Optional[IntentResult]:
        lower = text.strip().lower()
        if not lower:
            return None

        if lower in ("list", "alarms") or lower.startswith(("list ", "show ")):
            return self._list(now)

        if lower in ("stop", "dismiss") or lower.startswith(("stop ", "dismiss ")):
            current = self.alarm_manager.stop_ringing()
            resp = f"Stopped '{current.title}'." if current else "Nothing is ringing right now."
            return IntentResult(handled=True, response_text=resp, action="stop")

        if lower.startswith("snooze"):
            match = _MINUTES_RE.search(lower)
            minutes = int(match.group(1)) if match else self.default_snooze_minutes
            snoozed = self.alarm_manager.snooze(minutes=minutes)
            if snoozed:
                resp = f"Snoozed for {minutes} minutes, ringing again at {format_alarm_time(snoozed.trigger_time, now)}."
            else:
                resp = "Nothing is ringing, nothing to snooze."
            return IntentResult(handled=True, response_text=resp, action="snooze")

        if lower in _DND_OFF:
            self.alarm_manager.clear_do_not_disturb()
            return IntentResult(handled=True, response_text="Do not disturb is off.", action="dnd_off")

        if lower.startswith("volume"):
            match = _PERCENT_RE.search(lower)
            if not match:
                return IntentResult(handled=True, response_text="Say a volume from 0 to 100.", action="volume")
            level = self.alarm_manager.gateway.set_volume(int(match.group(1)) / 100)
            return IntentResult(handled=True, response_text=f"Alarm volume set to {round(level * 100)}%.", action="volume")

        if lower.split()[0] in ("export", "import"):
            return self._transfer(text.strip())

        if lower.startswith(("delete", "remove", "cancel")):
            return self._by_id(lower, "delete")
        if lower.startswith(("disable", "pause", "turn off")):
            return self._by_id(lower, "disable")
        if lower.startswith(("enable", "resume", "turn on")):
            return self._by_id(lower, "enable")

        parsed = parse_alarm_text(text, now=now)
        if not parsed:
            return None
        logger.info("Alarm intent detected: %s", parsed.summary)

        if parsed.kind == "dnd":
            until = self.alarm_manager.set_do_not_disturb(parsed.dnd_delta)
            resp = f"Do not disturb until {format_alarm_time(until, now)}."
            return IntentResult(handled=True, response_text=resp, action="dnd")

        try:
            alarm = self.alarm_manager.add_alarm(parsed.draft)
        except AlarmValidationError as exc:
            return IntentResult(handled=True, response_text=str(exc), action="add")
        resp = f"{parsed.summary} (#{alarm.id}, {format_alarm_time(alarm.trigger_time, now)})."
        return IntentResult(handled=True, response_text=resp, action="add")

    def _list(self, now: datetime) -> IntentResult:
        scheduled = self.alarm_manager.active_alarms()
        if not scheduled:
            return IntentResult(handled=True, response_text="No active alarms.", action="list")
        lines = []
        for item in scheduled:
            repeat = item.alarm.repeat_type.value
            lines.append(
                f"#{item.alarm.id} {format_alarm_time(item.next_trigger, now)} - {item.alarm.title} "
                f"[{repeat}, in {item.time_remaining}]"
            )
        return IntentResult(handled=True, response_text="Your alarms:\n" + "\n".join(lines), action="list")

    def _transfer(self, text: str) -> IntentResult:
        command, _, rest = text.partition(" ")
        action = command.lower()
        path = Path(rest.strip() or DEFAULT_EXPORT_PATH)
        if action == "export":
            payload = self.alarm_manager.export_data()
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            resp = f"Exported {len(payload['alarms'])} alarms to {path}."
            return IntentResult(handled=True, response_text=resp, action=action)

        try:
            with path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
            alarms = self.alarm_manager.import_data(payload)
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Import from %s failed: %s", path, exc)
            return IntentResult(handled=True, response_text=f"Couldn't import {path}.", action=action)
        return IntentResult(handled=True, response_text=f"Imported {len(alarms)} alarms from {path}.", action=action)

    def _by_id(self, lower: str, action: str) -> IntentResult:
        match = _ID_RE.search(lower)
        alarm = self.alarm_manager.store.get(int(match.group(1))) if match else None
        if alarm is None:
            return IntentResult(handled=True, response_text="Couldn't find that alarm.", action=action)

        if action == "delete":
            self.alarm_manager.delete_alarm(alarm.id)
            resp = f"Deleted '{alarm.title}'."
        else:
            updated = self.alarm_manager.toggle_alarm(alarm.id, action == "enable")
            if action == "enable" and not updated.is_active:
                resp = f"'{updated.title}' was already due and has fired."
            else:
                state = "enabled" if updated.is_active else "disabled"
                resp = f"'{updated.title}' {state}."
        return IntentResult(handled=True, response_text=resp, action=action)


def format_alarm_time(dt: datetime, now: datetime) -> str:
    dt = dt.astimezone(now.tzinfo) if now.tzinfo else dt
    time_part = dt.strftime("%H:%M")
    if dt.date() == now.date():
        return f"today {time_part}"
    if dt.date() == now.date() + timedelta(days=1):
        return f"tomorrow {time_part}"
    return f"{dt.strftime('%d.%m')} {time_part}"  # explicit date
