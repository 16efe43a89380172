"""
Device data models
"""
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel


class WorkType(int, Enum):
    """Device work mode"""

    ONLINE = 1
    OFFLINE = 2
    ON_OFF = 3


class ProtocolMode(int, Enum):
    """Whether the real device connects out or listens"""

    CLIENT = 0
    SERVER = 1


class DevicePerson(BaseModel):
    """Person enrolled on the device roster"""

    card_id: str
    name: str
    table: str
    valid_until: date


class DeviceAttendance(BaseModel):
    """Card swipe recorded in the offline attendance log"""

    timestamp: datetime
    card_id: str
