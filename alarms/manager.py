from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Callable, List, Optional, Set

from time_utils import format_time_remaining, now_in_tz

from .notifications import NotificationGateway
from .recurrence import RepeatType, next_occurrence
from .scheduler import DEFAULT_MAX_TIMER_DELAY, AlarmScheduler
from .storage import Alarm, AlarmDraft, AlarmStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_AHEAD = timedelta(days=365)
DEFAULT_UPCOMING_WINDOW = timedelta(hours=24)


class AlarmError(Exception):
    pass


class AlarmValidationError(AlarmError, ValueError):
    pass


class AlarmNotFoundError(AlarmError, KeyError):
    pass


@dataclass
class ScheduledAlarm:
    alarm: Alarm
    next_trigger: datetime
    time_remaining: str


class AlarmRuntimeState:
    def __init__(self) -> None:
        self.ringing_alarm: Optional[Alarm] = None
        self.do_not_disturb_until: Optional[datetime] = None


def validate_alarm_time(trigger_time: datetime, now: datetime, max_ahead: timedelta = DEFAULT_MAX_AHEAD) -> None:
    if trigger_time <= now:
        raise AlarmValidationError("Alarm time must be in the future")
    if trigger_time > now + max_ahead:
        raise AlarmValidationError("Alarm cannot be set more than 1 year in the future")


class AlarmManager:
    """Owns the alarm collection and keeps the scheduler reconciled with it.

    Every mutation goes store first, then scheduler. Must be used from the
    event loop thread the scheduler runs on.
    """

    def __init__(
        self,
        store: AlarmStore,
        gateway: NotificationGateway,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timezone: Optional[tzinfo] = None,
        max_timer_delay: timedelta = DEFAULT_MAX_TIMER_DELAY,
        default_snooze_minutes: int = 5,
        max_ahead: timedelta = DEFAULT_MAX_AHEAD,
        on_alarm_triggered: Optional[Callable[[Alarm], None]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.tzinfo = timezone or store.tzinfo
        self.default_snooze_minutes = max(1, default_snooze_minutes)
        self.max_ahead = max_ahead
        self.on_alarm_triggered = on_alarm_triggered
        self._clock = clock or (lambda: now_in_tz(self.tzinfo))
        self._runtime = AlarmRuntimeState()
        self.scheduler = AlarmScheduler(
            on_fire=self._handle_fire,
            loop=loop,
            clock=self._clock,
            max_timer_delay=max_timer_delay,
        )

    def now(self) -> datetime:
        return self._clock()

    def start(self) -> None:
        alarms = self.store.load()
        logger.info("Loaded %s alarms from %s", len(alarms), self.store.path)
        self.reconcile()

    def shutdown(self) -> None:
        self.scheduler.cancel_all()
        self.gateway.silence()

    def reconcile(self) -> Set[int]:
        active = {a.id: a for a in self.store.list_alarms(include_inactive=False)}
        for alarm_id in self.scheduler.pending_ids() - set(active):
            self.scheduler.cancel(alarm_id)
        for alarm in active.values():
            self.scheduler.arm(alarm)
        pending = self.scheduler.pending_ids()
        logger.info("Reconciled schedule: %s active, %s pending", len(active), len(pending))
        return pending

    def add_alarm(self, draft: AlarmDraft) -> Alarm:
        now = self._clock()
        validate_alarm_time(draft.trigger_time, now, self.max_ahead)
        alarm = self.store.create(draft, now)
        logger.info("Created alarm %s (%s) at %s", alarm.id, alarm.title, alarm.trigger_time.isoformat())
        self.scheduler.arm(alarm)
        return alarm

    def update_alarm(self, alarm_id: int, **changes) -> Alarm:
        now = self._clock()
        if changes.get("trigger_time") is not None:
            validate_alarm_time(changes["trigger_time"], now, self.max_ahead)
        alarm = self.store.update(alarm_id, now, **changes)
        if alarm is None:
            raise AlarmNotFoundError(alarm_id)
        logger.info("Updated alarm %s (%s)", alarm_id, ", ".join(sorted(changes)))
        self.scheduler.arm(alarm)
        # arming a past-due one-shot fires it, which deactivates it in the store
        return self.store.get(alarm_id)

    def toggle_alarm(self, alarm_id: int, is_active: bool) -> Alarm:
        return self.update_alarm(alarm_id, is_active=is_active)

    def delete_alarm(self, alarm_id: int) -> None:
        if not self.store.delete(alarm_id, self._clock()):
            raise AlarmNotFoundError(alarm_id)
        self.scheduler.cancel(alarm_id)
        logger.info("Deleted alarm %s", alarm_id)

    def get_alarm(self, alarm_id: int) -> Alarm:
        alarm = self.store.get(alarm_id)
        if alarm is None:
            raise AlarmNotFoundError(alarm_id)
        return alarm

    def list_alarms(self) -> List[Alarm]:
        return self.store.list_alarms()

    def active_alarms(self) -> List[ScheduledAlarm]:
        now = self._clock()
        result = []
        for alarm in self.store.list_alarms(include_inactive=False):
            nxt = next_occurrence(alarm.trigger_time, alarm.repeat_type, now)
            result.append(ScheduledAlarm(alarm=alarm, next_trigger=nxt, time_remaining=format_time_remaining(nxt, now)))
        result.sort(key=lambda s: s.next_trigger)
        return result

    def upcoming_alarms(self, window: timedelta = DEFAULT_UPCOMING_WINDOW) -> List[ScheduledAlarm]:
        horizon = self._clock() + window
        return [s for s in self.active_alarms() if s.next_trigger <= horizon]

    def snooze(self, alarm_id: Optional[int] = None, minutes: Optional[int] = None) -> Optional[Alarm]:
        minutes = minutes or self.default_snooze_minutes
        if alarm_id is None:
            original = self._runtime.ringing_alarm
        else:
            original = self.store.get(alarm_id)
        if original is None:
            return None
        self.stop_ringing()

        self.toggle_alarm(original.id, False)
        draft = AlarmDraft(
            title=f"{original.title} (Snoozed)",
            description=original.description,
            trigger_time=self._clock() + timedelta(minutes=minutes),
            repeat_type=RepeatType.NONE,
            sound_enabled=original.sound_enabled,
            snoozed_from=original.id,
        )
        snoozed = self.add_alarm(draft)
        logger.info("Alarm %s snoozed for %s minutes as %s", original.id, minutes, snoozed.id)
        return snoozed

    def stop_ringing(self) -> Optional[Alarm]:
        current = self._runtime.ringing_alarm
        self._runtime.ringing_alarm = None
        self.gateway.silence()
        return current

    @property
    def is_ringing(self) -> bool:
        return self._runtime.ringing_alarm is not None

    @property
    def ringing_alarm(self) -> Optional[Alarm]:
        return self._runtime.ringing_alarm

    @property
    def do_not_disturb_until(self) -> Optional[datetime]:
        until = self._runtime.do_not_disturb_until
        if until and until <= self._clock():
            self._runtime.do_not_disturb_until = None
            return None
        return until

    def set_do_not_disturb(self, duration: timedelta) -> datetime:
        until = self._clock() + duration
        self._runtime.do_not_disturb_until = until
        logger.info("Do not disturb until %s", until.isoformat())
        return until

    def clear_do_not_disturb(self) -> None:
        self._runtime.do_not_disturb_until = None
        logger.info("Do not disturb cleared")

    def export_data(self) -> dict:
        return self.store.export_data(self._clock())

    def import_data(self, payload: dict) -> List[Alarm]:
        alarms = self.store.import_data(payload)
        self.reconcile()
        return alarms

    def _handle_fire(self, alarm: Alarm) -> None:
        self._runtime.ringing_alarm = alarm
        try:
            if self.do_not_disturb_until:
                logger.info("Alarm %s fired during do-not-disturb, notification suppressed", alarm.id)
            else:
                self.gateway.notify(alarm)
            if self.on_alarm_triggered:
                self.on_alarm_triggered(alarm)
        finally:
            if alarm.repeat_type is RepeatType.NONE:
                self.store.update(alarm.id, self._clock(), is_active=False)
