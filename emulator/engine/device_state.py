"""In-memory device model: roster, attendance log, read cursor and modes."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from emulator.models import DeviceAttendance, DevicePerson, ProtocolMode, WorkType

if TYPE_CHECKING:
    from emulator.config import Settings


@dataclass
class DeviceState:
    """Mutable device state shared by every command on the active connection.

    Not thread-safe; only the single connection handler may touch it.
    """

    persons: List[DevicePerson] = field(default_factory=list)
    attendance_log: List[DeviceAttendance] = field(default_factory=list)
    read_cursor: int = 0
    work_type: WorkType = WorkType.ON_OFF
    protocol_mode: ProtocolMode = ProtocolMode.CLIENT

    @classmethod
    def from_settings(cls, settings: Settings) -> DeviceState:
        return cls(work_type=settings.work_type, protocol_mode=settings.protocol)

    # Roster

    def add_person(self, person: DevicePerson) -> None:
        self.persons.append(person)

    def remove_person(self, card_id: str) -> int:
        """Remove every person holding ``card_id``; returns how many went."""
        before = len(self.persons)
        self.persons = [p for p in self.persons if p.card_id != card_id]
        return before - len(self.persons)

    def clear_persons(self) -> None:
        self.persons.clear()

    # Attendance log

    def record_attendance(self, card_id: str, timestamp: Optional[datetime] = None) -> DeviceAttendance:
        """Append a swipe to the log.

        No protocol command produces swipes; this is the hook for an external
        event source.
        """
        record = DeviceAttendance(timestamp=timestamp or datetime.now(), card_id=card_id)
        self.attendance_log.append(record)
        return record

    def pending_attendance(self) -> Optional[DeviceAttendance]:
        """The first record not yet acknowledged, if any."""
        if len(self.attendance_log) > self.read_cursor:
            return self.attendance_log[self.read_cursor]
        return None

    def advance_cursor(self) -> bool:
        """Acknowledge one record; never moves past the end of the log."""
        if len(self.attendance_log) > self.read_cursor:
            self.read_cursor += 1
            return True
        return False

    def clear_attendance(self) -> None:
        self.attendance_log.clear()
        self.read_cursor = 0
