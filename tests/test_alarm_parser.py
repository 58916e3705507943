from datetime import datetime, timedelta, timezone

from alarms.parser import extract_title, notification_message, parse_alarm_text
from alarms.recurrence import RepeatType


def _now() -> datetime:
    # Wednesday
    return datetime(2025, 1, 1, 6, 0, tzinfo=timezone.utc)


def test_parse_absolute_time_same_day():
    result = parse_alarm_text("set an alarm for water at 7:30", now=_now())
    assert result
    assert result.kind == "alarm"
    assert result.draft.title == "Water"
    assert result.draft.trigger_time == datetime(2025, 1, 1, 7, 30, tzinfo=timezone.utc)
    assert result.draft.repeat_type is RepeatType.NONE
    assert result.summary == "Alarm: Water - Today at 7:30 AM"


def test_parse_pm_qualifier():
    result = parse_alarm_text("call mom at 8pm", now=_now())
    assert result
    assert result.draft.trigger_time.hour == 20
    assert result.draft.title == "Call mom"


def test_passed_time_rolls_to_tomorrow():
    result = parse_alarm_text("read at 5am", now=_now())
    assert result.draft.trigger_time == datetime(2025, 1, 2, 5, 0, tzinfo=timezone.utc)
    assert "Tomorrow" in result.summary


def test_parse_relative_minutes():
    result = parse_alarm_text("remind me to stretch in 15 minutes", now=_now())
    assert result
    assert result.draft.trigger_time == _now() + timedelta(minutes=15)
    assert result.summary.startswith("Timer:")


def test_parse_relative_hours():
    result = parse_alarm_text("timer in 2 hours", now=_now())
    assert result.draft.trigger_time == _now() + timedelta(hours=2)
    assert result.draft.title == "Reminder"


def test_parse_daily_repeat():
    result = parse_alarm_text("drink water at 9am every day", now=_now())
    assert result.draft.repeat_type is RepeatType.DAILY
    assert result.draft.title == "Drink water"
    assert result.draft.description == "Time to hydrate! Your body will thank you."
    assert result.summary == "Alarm: Drink water - Daily at 9:00 AM"


def test_parse_weekly_and_monthly():
    assert parse_alarm_text("team sync at 10 weekly", now=_now()).draft.repeat_type is RepeatType.WEEKLY
    monthly = parse_alarm_text("pay rent at 5am monthly", now=_now())
    assert monthly.draft.repeat_type is RepeatType.MONTHLY
    # 5am already passed today, first occurrence is tomorrow
    assert monthly.draft.trigger_time == datetime(2025, 1, 2, 5, 0, tzinfo=timezone.utc)


def test_parse_tomorrow():
    result = parse_alarm_text("wake up tomorrow at 7:15 am", now=_now())
    assert result.draft.trigger_time == datetime(2025, 1, 2, 7, 15, tzinfo=timezone.utc)
    assert result.draft.title == "Wake up"


def test_parse_next_weekday():
    result = parse_alarm_text("gym next friday at 6pm", now=_now())
    assert result.draft.trigger_time == datetime(2025, 1, 3, 18, 0, tzinfo=timezone.utc)
    same_day = parse_alarm_text("gym next wednesday at 6pm", now=_now())
    assert same_day.draft.trigger_time == datetime(2025, 1, 8, 18, 0, tzinfo=timezone.utc)


def test_parse_do_not_disturb():
    result = parse_alarm_text("don't disturb for 30 minutes", now=_now())
    assert result.kind == "dnd"
    assert result.dnd_delta == timedelta(minutes=30)
    assert result.draft is None


def test_no_time_returns_none():
    assert parse_alarm_text("buy milk", now=_now()) is None
    assert parse_alarm_text("   ", now=_now()) is None


def test_title_and_message_helpers():
    assert extract_title("alarm") == "Reminder"
    assert notification_message("Weekly meeting") == "Time for your scheduled engagement!"
    assert notification_message("Laundry") == "Time for: Laundry! Stay productive."
