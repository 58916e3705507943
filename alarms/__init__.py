"""Alarm scheduling and recurrence engine."""

from .manager import AlarmManager, AlarmNotFoundError, AlarmRuntimeState, AlarmValidationError
from .parser import ParsedAlarm, parse_alarm_text
from .recurrence import RepeatType, next_occurrence
from .scheduler import AlarmScheduler
from .storage import Alarm, AlarmDraft, AlarmStore
