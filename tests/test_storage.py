import json
from datetime import datetime, timedelta, timezone

import pytest

from alarms.recurrence import RepeatType
from alarms.storage import Alarm, AlarmDraft, AlarmStore


def _now() -> datetime:
    return datetime(2025, 1, 1, 6, 0, tzinfo=timezone.utc)


def _draft(title="Water", hours=1, repeat=RepeatType.NONE) -> AlarmDraft:
    return AlarmDraft(title=title, trigger_time=_now() + timedelta(hours=hours), repeat_type=repeat)


def test_create_assigns_ids_and_persists(tmp_path):
    path = tmp_path / "alarms.json"
    store = AlarmStore(path, timezone=timezone.utc)
    first = store.create(_draft("Water"), _now())
    second = store.create(_draft("Standup", repeat=RepeatType.DAILY), _now())

    assert (first.id, second.id) == (1, 2)
    assert first.created_at == first.updated_at == _now()

    reloaded = AlarmStore(path, timezone=timezone.utc)
    alarms = reloaded.load()
    assert [a.title for a in alarms] == ["Water", "Standup"]
    assert alarms[1].repeat_type is RepeatType.DAILY
    assert reloaded.create(_draft("Third"), _now()).id == 3


def test_update_replaces_snapshot(tmp_path):
    store = AlarmStore(tmp_path / "alarms.json")
    original = store.create(_draft(), _now())
    later = _now() + timedelta(minutes=5)

    updated = store.update(original.id, later, title="Tea", repeat_type="weekly")
    assert updated.title == "Tea"
    assert updated.repeat_type is RepeatType.WEEKLY
    assert updated.updated_at == later
    assert original.title == "Water"
    assert store.update(42, later, title="x") is None


def test_update_rejects_unknown_fields(tmp_path):
    store = AlarmStore(tmp_path / "alarms.json")
    alarm = store.create(_draft(), _now())
    with pytest.raises(TypeError):
        store.update(alarm.id, _now(), id=5)


def test_delete_is_soft_and_remove_is_hard(tmp_path):
    store = AlarmStore(tmp_path / "alarms.json")
    alarm = store.create(_draft(), _now())

    assert store.delete(alarm.id, _now())
    assert store.get(alarm.id).is_active is False
    assert store.list_alarms(include_inactive=False) == []
    assert not store.delete(99, _now())

    assert store.remove(alarm.id)
    assert store.get(alarm.id) is None
    assert not store.remove(alarm.id)


def test_load_accepts_browser_payload_and_skips_bad_items(tmp_path):
    path = tmp_path / "alarms.json"
    payload = [
        {
            "id": 7,
            "title": "Medicine",
            "triggerTime": "2025-01-02T08:00:00.000Z",
            "repeatType": "daily",
            "repeatValue": None,
            "soundEnabled": False,
            "isActive": True,
            "createdAt": "2024-12-30T10:00:00.000Z",
            "updatedAt": "2024-12-30T10:00:00.000Z",
        },
        {"id": 8, "title": "Broken"},
        {"id": 9, "title": "Odd", "triggerTime": "2025-01-02T08:00:00+00:00", "repeatType": "hourly"},
    ]
    path.write_text(json.dumps(payload), encoding="utf-8")

    store = AlarmStore(path, timezone=timezone.utc)
    alarms = store.load()
    assert [a.id for a in alarms] == [7, 9]
    assert alarms[0].trigger_time == datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc)
    assert alarms[0].sound_enabled is False
    assert alarms[1].repeat_type is RepeatType.NONE
    assert store.create(_draft(), _now()).id == 10


def test_load_corrupt_file_returns_empty(tmp_path):
    path = tmp_path / "alarms.json"
    path.write_text("{not json", encoding="utf-8")
    assert AlarmStore(path).load() == []


def test_naive_timestamps_take_store_timezone():
    alarm = Alarm.from_dict({"id": 1, "title": "x", "trigger_time": "2025-01-01T09:00:00"}, timezone.utc)
    assert alarm.trigger_time.tzinfo is timezone.utc
    assert alarm.created_at == alarm.trigger_time


def test_export_import_resets_counter(tmp_path):
    source = AlarmStore(tmp_path / "a.json")
    for title in ("One", "Two", "Three"):
        source.create(_draft(title), _now())
    exported = source.export_data(_now())
    assert exported["version"] == "1.0"
    assert exported["exported_at"] == _now().isoformat()

    target = AlarmStore(tmp_path / "b.json")
    imported = target.import_data(exported)
    assert [a.title for a in imported] == ["One", "Two", "Three"]
    assert target.create(_draft("Four"), _now()).id == 4


def test_load_skips_items_that_are_not_objects(tmp_path):
    path = tmp_path / "alarms.json"
    good = {"id": 2, "title": "Stretch", "trigger_time": "2025-01-02T08:00:00+00:00"}
    path.write_text(json.dumps({"alarms": [1, "junk", None, good]}), encoding="utf-8")

    alarms = AlarmStore(path, timezone=timezone.utc).load()
    assert [a.id for a in alarms] == [2]


def test_import_rejects_items_that_are_not_objects(tmp_path):
    with pytest.raises(TypeError):
        AlarmStore(tmp_path / "alarms.json").import_data({"alarms": [1]})


def test_string_flags_are_parsed():
    base = {"id": 1, "title": "Gym", "triggerTime": "2025-01-02T08:00:00Z"}
    off = Alarm.from_dict({**base, "isActive": "false", "soundEnabled": "0"})
    assert off.is_active is False
    assert off.sound_enabled is False
    on = Alarm.from_dict({**base, "isActive": "True", "soundEnabled": 1})
    assert on.is_active is True
    assert on.sound_enabled is True
