from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Dict, List, Optional

from .recurrence import RepeatType, parse_repeat_type

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"

# Keys written by the browser store, accepted on load.
_CAMEL_KEYS = {
    "trigger_time": "triggerTime",
    "repeat_type": "repeatType",
    "repeat_value": "repeatValue",
    "sound_enabled": "soundEnabled",
    "is_active": "isActive",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "snoozed_from": "snoozedFrom",
}


@dataclass
class AlarmDraft:
    title: str
    trigger_time: datetime
    description: Optional[str] = None
    repeat_type: RepeatType = RepeatType.NONE
    repeat_value: Optional[str] = None
    sound_enabled: bool = True
    is_active: bool = True
    snoozed_from: Optional[int] = None


@dataclass(frozen=True)
class Alarm:
    id: int
    title: str
    trigger_time: datetime
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    repeat_type: RepeatType = RepeatType.NONE
    repeat_value: Optional[str] = None
    sound_enabled: bool = True
    is_active: bool = True
    snoozed_from: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "trigger_time": self.trigger_time.isoformat(),
            "repeat_type": self.repeat_type.value,
            "repeat_value": self.repeat_value,
            "sound_enabled": self.sound_enabled,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "snoozed_from": self.snoozed_from,
        }

    @classmethod
    def from_dict(cls, data: dict, tz: Optional[tzinfo] = None) -> "Alarm":
        if not isinstance(data, dict):
            raise TypeError(f"Alarm payload must be a mapping, got {type(data).__name__}")

        def pick(key: str, default=None):
            value = data.get(key)
            if value is None:
                value = data.get(_CAMEL_KEYS.get(key, key))
            return default if value is None else value

        trigger_raw = pick("trigger_time")
        if not trigger_raw or data.get("id") is None:
            raise ValueError("Alarm payload missing id/trigger_time fields")
        trigger_time = _parse_ts(trigger_raw, tz)
        created_at = _parse_ts(pick("created_at"), tz) if pick("created_at") else trigger_time
        updated_at = _parse_ts(pick("updated_at"), tz) if pick("updated_at") else created_at
        snoozed_from = pick("snoozed_from")
        return cls(
            id=int(data["id"]),
            title=str(pick("title", "Alarm")),
            description=pick("description"),
            trigger_time=trigger_time,
            repeat_type=parse_repeat_type(pick("repeat_type")),
            repeat_value=pick("repeat_value"),
            sound_enabled=_as_bool(pick("sound_enabled", True)),
            is_active=_as_bool(pick("is_active", True)),
            created_at=created_at,
            updated_at=updated_at,
            snoozed_from=int(snoozed_from) if snoozed_from is not None else None,
        )


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


_MUTABLE_FIELDS = {f.name for f in fields(Alarm)} - {"id", "created_at", "updated_at"}


class AlarmStore:
    """JSON file holding the alarm collection and the id counter."""

    def __init__(self, path: Path, timezone: Optional[tzinfo] = None):
        self.path = Path(path)
        self.tzinfo = timezone
        self._alarms: Dict[int, Alarm] = {}
        self._next_id = 1

    def load(self) -> List[Alarm]:
        self._alarms = {}
        self._next_id = 1
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Failed to load alarms from %s: %s", self.path, exc)
            return []

        if isinstance(payload, dict):
            items = payload.get("alarms") or []
            next_id = payload.get("next_id")
        else:
            items = payload or []
            next_id = None
        for item in items:
            if not isinstance(item, dict):
                logger.warning("Skipping alarm item of type %s", type(item).__name__)
                continue
            try:
                alarm = Alarm.from_dict(item, self.tzinfo)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping alarm item due to parse error: %s", exc)
                continue
            self._alarms[alarm.id] = alarm
        highest = max(self._alarms, default=0)
        self._next_id = max(int(next_id or 1), highest + 1)
        return self.list_alarms()

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": STORE_VERSION,
            "next_id": self._next_id,
            "alarms": [a.to_dict() for a in self.list_alarms()],
        }
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    def list_alarms(self, include_inactive: bool = True) -> List[Alarm]:
        alarms = sorted(self._alarms.values(), key=lambda a: a.id)
        if include_inactive:
            return alarms
        return [a for a in alarms if a.is_active]

    def get(self, alarm_id: int) -> Optional[Alarm]:
        return self._alarms.get(alarm_id)

    def create(self, draft: AlarmDraft, now: datetime) -> Alarm:
        values = asdict(draft)
        values["trigger_time"] = self._ensure_tz(draft.trigger_time)
        values["repeat_type"] = parse_repeat_type(draft.repeat_type)
        alarm = Alarm(id=self._next_id, created_at=now, updated_at=now, **values)
        self._next_id += 1
        self._alarms[alarm.id] = alarm
        self.save()
        return alarm

    def update(self, alarm_id: int, now: datetime, **changes) -> Optional[Alarm]:
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown alarm fields: {', '.join(sorted(unknown))}")
        current = self._alarms.get(alarm_id)
        if current is None:
            return None
        if "trigger_time" in changes:
            changes["trigger_time"] = self._ensure_tz(changes["trigger_time"])
        if "repeat_type" in changes:
            changes["repeat_type"] = parse_repeat_type(changes["repeat_type"])
        updated = replace(current, updated_at=now, **changes)
        self._alarms[alarm_id] = updated
        self.save()
        return updated

    def delete(self, alarm_id: int, now: datetime) -> bool:
        return self.update(alarm_id, now, is_active=False) is not None

    def remove(self, alarm_id: int) -> bool:
        if self._alarms.pop(alarm_id, None) is None:
            return False
        self.save()
        return True

    def export_data(self, now: datetime) -> dict:
        return {
            "alarms": [a.to_dict() for a in self.list_alarms()],
            "version": STORE_VERSION,
            "exported_at": now.isoformat(),
        }

    def import_data(self, payload: dict) -> List[Alarm]:
        alarms = [Alarm.from_dict(item, self.tzinfo) for item in payload.get("alarms") or []]
        self._alarms = {a.id: a for a in alarms}
        self._next_id = max(self._alarms, default=0) + 1
        self.save()
        logger.info("Imported %s alarms", len(alarms))
        return self.list_alarms()

    def _ensure_tz(self, dt: datetime) -> datetime:
        return _ensure_tz(dt, self.tzinfo)


def _parse_ts(raw, tz: Optional[tzinfo]) -> datetime:
    if isinstance(raw, datetime):
        return _ensure_tz(raw, tz)
    text = str(raw)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _ensure_tz(datetime.fromisoformat(text), tz)


def _ensure_tz(dt: datetime, tz: Optional[tzinfo]) -> datetime:
    if dt.tzinfo:
        return dt
    if tz is None:
        return dt.astimezone()
    return dt.replace(tzinfo=tz)
