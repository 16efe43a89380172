from datetime import date, datetime

from emulator.config import Settings
from emulator.engine.device_state import DeviceState
from emulator.models import DevicePerson, ProtocolMode, WorkType


def _person(card_id: str, name: str = "JOHN") -> DevicePerson:
    return DevicePerson(card_id=card_id, name=name, table="01", valid_until=date(2024, 1, 1))


def test_defaults():
    state = DeviceState()
    assert state.persons == []
    assert state.attendance_log == []
    assert state.read_cursor == 0
    assert state.work_type == WorkType.ON_OFF
    assert state.protocol_mode == ProtocolMode.CLIENT


def test_from_settings():
    state = DeviceState.from_settings(Settings(work_type=2, protocol=1))
    assert state.work_type == WorkType.OFFLINE
    assert state.protocol_mode == ProtocolMode.SERVER


def test_remove_person_drops_every_match():
    state = DeviceState()
    state.add_person(_person("AAAAAAAA"))
    state.add_person(_person("BBBBBBBB"))
    state.add_person(_person("AAAAAAAA", name="JANE"))

    assert state.remove_person("AAAAAAAA") == 2
    assert [p.card_id for p in state.persons] == ["BBBBBBBB"]
    assert state.remove_person("CCCCCCCC") == 0


def test_clear_persons():
    state = DeviceState()
    state.add_person(_person("AAAAAAAA"))
    state.clear_persons()
    assert state.persons == []


def test_cursor_never_passes_log_length():
    state = DeviceState()
    assert state.advance_cursor() is False
    assert state.read_cursor == 0

    state.record_attendance("AAAAAAAA", datetime(2024, 1, 1, 8, 0, 0))
    assert state.pending_attendance().card_id == "AAAAAAAA"
    assert state.advance_cursor() is True
    assert state.advance_cursor() is False
    assert state.read_cursor == 1
    assert state.pending_attendance() is None


def test_clear_attendance_resets_cursor():
    state = DeviceState()
    state.record_attendance("AAAAAAAA")
    state.advance_cursor()
    state.clear_attendance()
    assert state.attendance_log == []
    assert state.read_cursor == 0
