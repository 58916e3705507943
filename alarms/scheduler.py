from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Set

from .recurrence import is_repeating, next_occurrence
from .storage import Alarm

logger = logging.getLogger(__name__)

DEFAULT_MAX_TIMER_DELAY = timedelta(hours=24)


@dataclass
class _PendingAlarm:
    alarm: Alarm
    fire_at: datetime
    handle: Any = None


def _local_now() -> datetime:
    return datetime.now().astimezone()


class AlarmScheduler:
    """Keeps exactly one event-loop timer per armed alarm id.

    All methods must be called from the loop's thread. `on_fire` is invoked
    once per occurrence; anything it raises is logged and swallowed so the
    schedule stays consistent.
    """

    def __init__(
        self,
        on_fire: Callable[[Alarm], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_timer_delay: timedelta = DEFAULT_MAX_TIMER_DELAY,
    ):
        if max_timer_delay <= timedelta(0):
            raise ValueError("max_timer_delay must be positive")
        self.on_fire = on_fire
        self.max_timer_delay = max_timer_delay
        self._loop = loop
        self._clock = clock or _local_now
        self._pending: Dict[Any, _PendingAlarm] = {}

    def arm(self, alarm: Alarm) -> None:
        self.cancel(alarm.id)
        if not alarm.is_active:
            logger.debug("Alarm %s is inactive, not scheduling", alarm.id)
            return

        now = self._clock()
        fire_at = next_occurrence(alarm.trigger_time, alarm.repeat_type, now)
        if fire_at <= now:
            logger.info("Alarm %s (%s) is past due since %s, firing now", alarm.id, alarm.title, fire_at.isoformat())
            self._fire(alarm, fire_at, now)
            return

        self._start_timer(_PendingAlarm(alarm=alarm, fire_at=fire_at), now)
        logger.info("Alarm %s (%s) scheduled for %s", alarm.id, alarm.title, fire_at.isoformat())

    def cancel(self, alarm_id) -> None:
        entry = self._pending.pop(alarm_id, None)
        if entry is None:
            return
        if entry.handle is not None:
            entry.handle.cancel()
        logger.debug("Alarm %s unscheduled", alarm_id)

    def cancel_all(self) -> None:
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            if entry.handle is not None:
                entry.handle.cancel()
        if entries:
            logger.info("Cleared %s scheduled alarms", len(entries))

    def pending_ids(self) -> Set[Any]:
        return set(self._pending)

    def next_fire_at(self, alarm_id) -> Optional[datetime]:
        entry = self._pending.get(alarm_id)
        return entry.fire_at if entry else None

    def _start_timer(self, entry: _PendingAlarm, now: datetime) -> None:
        remaining = entry.fire_at - now
        delay = min(max(remaining, timedelta(0)), self.max_timer_delay)
        loop = self._loop or asyncio.get_running_loop()
        entry.handle = loop.call_later(delay.total_seconds(), self._on_timer, entry)
        self._pending[entry.alarm.id] = entry

    def _on_timer(self, entry: _PendingAlarm) -> None:
        if self._pending.get(entry.alarm.id) is not entry:
            return  # superseded by a later arm/cancel

        now = self._clock()
        if entry.fire_at > now:
            # Capped timer elapsed before the real target.
            self._start_timer(entry, now)
            logger.debug(
                "Alarm %s re-armed, %.0fs remaining", entry.alarm.id, (entry.fire_at - now).total_seconds()
            )
            return

        del self._pending[entry.alarm.id]
        self._fire(entry.alarm, entry.fire_at, now)

    def _fire(self, alarm: Alarm, fire_at: datetime, now: datetime) -> None:
        # The follow-up entry goes in before the callback runs so that a
        # cancel() or arm() issued from the callback wins.
        if is_repeating(alarm.repeat_type):
            next_at = next_occurrence(alarm.trigger_time, alarm.repeat_type, max(now, fire_at))
            self._start_timer(_PendingAlarm(alarm=alarm, fire_at=next_at), now)
            logger.info("Alarm %s re-armed for %s", alarm.id, next_at.isoformat())

        logger.info("Alarm %s triggered (%s)", alarm.id, alarm.title)
        try:
            self.on_fire(alarm)
        except Exception:
            logger.error("on_fire callback failed for alarm %s", alarm.id, exc_info=True)
