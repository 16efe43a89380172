"""
Command Dispatcher - Maps decoded payloads onto device behaviour.

The first payload byte selects the command; the rest is a command-specific
ASCII parameter string. Each handler reads or mutates the DeviceState and
returns the response payload, or None when the command is consumed silently.
Handlers signal bad input by raising a CommandError that carries the response
to send back instead.
"""
from __future__ import annotations

import random
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from emulator.engine.device_state import DeviceState
from emulator.engine.frame_codec import FrameCodec
from emulator.exceptions import (
    CommandError,
    FrameError,
    ParameterError,
    ProtocolError,
    UnsupportedOperationError,
)
from emulator.models import DevicePerson, ProtocolMode, WorkType

logger = structlog.get_logger()

OK = b"o"
ERR = b"h"
PARAM_ERROR = b"n"
EMPTY_CARD = b"a00"
FILLED_CARD = b"b00D32EF4CF"

FIXED_RESPONSES = (OK, ERR, PARAM_ERROR, EMPTY_CARD, FILLED_CARD)

ATTENDANCE_SUFFIX = "0101000001"

# Two-digit years at or above this map to the previous century
_TWO_DIGIT_YEAR_LIMIT = 2050


class Command(int, Enum):
    """Command ids understood by the reader"""

    PING = 10
    READ_CARD = 11
    ACCESS_RESULT = 17
    SET_CLOCK = 21
    GET_CLOCK = 22
    SET_WORK_TYPE = 24
    ADD_PERSON = 31
    CLEAR_PERSONS = 32
    DELETE_PERSON = 33
    MIFARE_READ = 52
    SET_PROTOCOL = 101
    ACK_ATTENDANCE = 111
    PERSON_COUNT = 248
    ATTENDANCE_COUNT = 249
    DELETE_ATTENDANCE = 250


MIFARE_COMMANDS = frozenset({54, 55, 56, 58, 59, 62, 63, 70, 71})


def iso_weekday(moment: date) -> int:
    """Monday=1 .. Sunday=7"""
    return moment.isoweekday()


def format_clock(moment: datetime) -> str:
    """``HHmmss0WddMMyy`` as used by the clock commands."""
    return f"{moment:%H%M%S}0{iso_weekday(moment)}{moment:%d%m%y}"


def parse_timestamp(text: str, fmt: str, width: int) -> Optional[datetime]:
    """Parse a fixed-width, digits-only timestamp; None when it does not fit."""
    if len(text) != width or not (text.isascii() and text.isdigit()):
        return None
    try:
        parsed = datetime.strptime(text, fmt)
    except ValueError:
        return None
    if "%y" in fmt and parsed.year >= _TWO_DIGIT_YEAR_LIMIT:
        parsed = parsed.replace(year=parsed.year - 100)
    return parsed


class CommandDispatcher:
    """Executes reader commands against a DeviceState."""

    def __init__(
        self,
        state: DeviceState,
        reader_id: int,
        random_card_reads: bool = False,
        log_requests: bool = False,
        clock: Callable[[], datetime] = datetime.now,
        rng: Optional[random.Random] = None,
    ):
        self.state = state
        self.codec = FrameCodec(reader_id, precomputed=FIXED_RESPONSES)
        self.random_card_reads = random_card_reads
        self.log_requests = log_requests
        self._clock = clock
        self._rng = rng or random.Random()

        self._handlers: Dict[int, Callable[[str], Optional[bytes]]] = {
            Command.PING: self._ping,
            Command.READ_CARD: self._read_card,
            Command.ACCESS_RESULT: self._access_result,
            Command.SET_CLOCK: self._set_clock,
            Command.GET_CLOCK: self._get_clock,
            Command.SET_WORK_TYPE: self._set_work_type,
            Command.ADD_PERSON: self._add_person,
            Command.CLEAR_PERSONS: self._clear_persons,
            Command.DELETE_PERSON: self._delete_person,
            Command.MIFARE_READ: self._mifare_read,
            Command.SET_PROTOCOL: self._set_protocol,
            Command.ACK_ATTENDANCE: self._ack_attendance,
            Command.PERSON_COUNT: self._person_count,
            Command.ATTENDANCE_COUNT: self._attendance_count,
            Command.DELETE_ATTENDANCE: self._delete_attendance,
        }
        for command_id in MIFARE_COMMANDS:
            self._handlers[command_id] = self._mifare_unsupported

    def process_frame(self, frame: bytes) -> Optional[bytes]:
        """Validate and decode ``frame``, run its command, return the framed reply."""
        try:
            self.codec.verify(frame)
            payload = self.codec.decode(frame)
        except FrameError as exc:
            logger.warning(
                "frame_rejected",
                reason=exc.message,
                error_type=type(exc).__name__,
                frame=frame.hex(),
            )
            return None

        response = self.handle(payload)
        if response is None:
            return None
        try:
            return self.codec.encode(response)
        except ProtocolError as exc:
            logger.error(
                "response_not_encodable",
                command_id=payload[0],
                reason=exc.message,
                response_size=len(response),
            )
            return None

    def handle(self, payload: bytes) -> Optional[bytes]:
        """Run the command in ``payload`` and return the response payload."""
        if not payload:
            logger.warning("empty_payload_dropped")
            return None

        command_id = payload[0]
        params = payload[1:].decode("utf-8", errors="replace")

        if self.log_requests:
            logger.info("request_received", command_id=command_id, params=params)

        handler = self._handlers.get(command_id)
        if handler is None:
            logger.debug("unknown_command_ignored", command_id=command_id)
            return None

        try:
            return handler(params)
        except UnsupportedOperationError as exc:
            logger.warning(
                "mifare_unsupported",
                command_id=command_id,
                detail=exc.message,
                response=exc.response.decode("ascii"),
            )
            return exc.response
        except CommandError as exc:
            logger.info(
                "command_rejected",
                command_id=command_id,
                params=params,
                reason=exc.message,
            )
            return exc.response

    # Handlers

    def _ping(self, params: str) -> bytes:
        return OK

    def _read_card(self, params: str) -> bytes:
        record = self.state.pending_attendance()
        if record is not None:
            stamp = record.timestamp
            return (
                f"d00{format_clock(stamp)}{record.card_id}{ATTENDANCE_SUFFIX}"
            ).encode("utf-8")

        if self.state.work_type == WorkType.OFFLINE:
            return EMPTY_CARD
        if self.random_card_reads and self._rng.randrange(100) > 50:
            return FILLED_CARD
        return EMPTY_CARD

    def _access_result(self, params: str) -> bytes:
        if params.startswith("+"):
            stamp = parse_timestamp(params[1:15], "%H%M%S%d%m%Y", 14)
            if stamp is not None:
                logger.info(
                    "access_granted",
                    at=f"{stamp:%H:%M:%S %d.%m.%Y}",
                    identifier=params[15:],
                    beep="short",
                )
            else:
                logger.info("access_granted", beep="short")
            return OK
        if params.startswith("-"):
            logger.info("access_denied", beep="long")
            return OK
        raise ParameterError("Access result must start with '+' or '-'", PARAM_ERROR)

    def _set_clock(self, params: str) -> bytes:
        # HHmmss, filler, weekday digit, ddMMyy
        if len(params) != 14:
            raise ParameterError(f"Clock value must be 14 characters, got {len(params)}", ERR)
        stamp = parse_timestamp(params[:6] + params[8:], "%H%M%S%d%m%y", 12)
        if stamp is None:
            raise ParameterError("Unparseable clock value", ERR)
        weekday = params[7]
        if not weekday.isdigit() or int(weekday) != iso_weekday(stamp):
            raise ParameterError(
                "Weekday does not match date",
                ERR,
                {"supplied": weekday, "computed": iso_weekday(stamp)},
            )
        return OK

    def _get_clock(self, params: str) -> bytes:
        return f"c{format_clock(self._clock())}".encode("ascii")

    def _set_work_type(self, params: str) -> bytes:
        if params not in ("1", "2", "3"):
            raise ParameterError(f"Unknown work type {params!r}", ERR)
        self.state.work_type = WorkType(int(params))
        logger.info("work_type_changed", work_type=self.state.work_type.name)
        return OK

    def _add_person(self, params: str) -> bytes:
        if len(params) < 16:
            raise ParameterError("Person record shorter than 16 characters", ERR)
        valid_until = parse_timestamp(params[10:16], "%d%m%y", 6)
        if valid_until is None:
            raise ParameterError("Unparseable validity date", ERR)
        self.state.add_person(
            DevicePerson(
                card_id=params[:8],
                table=params[8:10],
                valid_until=valid_until.date(),
                name=params[16:],
            )
        )
        return OK

    def _clear_persons(self, params: str) -> bytes:
        self.state.clear_persons()
        return OK

    def _delete_person(self, params: str) -> bytes:
        self.state.remove_person(params)
        return OK

    def _mifare_read(self, params: str) -> bytes:
        raise UnsupportedOperationError(
            "Mifare card operations not supported; answering empty card for compatibility",
            EMPTY_CARD,
        )

    def _mifare_unsupported(self, params: str) -> bytes:
        raise UnsupportedOperationError("Mifare card operations not supported", ERR)

    def _set_protocol(self, params: str) -> bytes:
        if params not in ("0", "1"):
            raise ParameterError(f"Unknown protocol mode {params!r}", ERR)
        self.state.protocol_mode = ProtocolMode(int(params))
        logger.info("protocol_mode_changed", protocol_mode=self.state.protocol_mode.name)
        return OK

    def _ack_attendance(self, params: str) -> None:
        self.state.advance_cursor()
        return None

    def _person_count(self, params: str) -> bytes:
        return f"z{len(self.state.persons):05d}".encode("ascii")

    def _attendance_count(self, params: str) -> bytes:
        return f"z{len(self.state.attendance_log):010d}{self.state.read_cursor:010d}".encode("ascii")

    def _delete_attendance(self, params: str) -> bytes:
        if params != "DEL":
            raise ParameterError("Attendance delete requires 'DEL'", ERR)
        self.state.clear_attendance()
        return OK
