"""
Custom Exception Hierarchy for the reader emulator

Provides structured exceptions so frame problems, bad command parameters and
socket failures can be told apart and recovered from at the right level.
All custom exceptions inherit from EmulatorError base class.
"""
from typing import Optional


class EmulatorError(Exception):
    """
    Base exception for all emulator-specific errors.

    All custom exceptions should inherit from this class to allow
    catching all emulator errors with a single except clause.
    """
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Configuration Errors

class ConfigurationError(EmulatorError):
    """
    Invalid configuration or settings.

    Raised when a setting cannot be coerced to a usable value.
    """
    pass


# Protocol and Framing Errors

class ProtocolError(EmulatorError):
    """
    Protocol-related errors during framing or parsing.

    Base class for all wire protocol handling errors.
    """
    pass


class FrameError(ProtocolError):
    """
    A received frame is not well-formed.

    The frame is dropped and stream processing continues.
    """
    pass


class MissingFrameStartError(FrameError):
    """No STX byte in the buffer."""
    pass


class MissingFrameEndError(FrameError):
    """No ETX byte after the STX."""
    pass


class TruncatedFrameError(FrameError):
    """Length byte below 3 or fewer bytes than the length byte announces."""
    pass


class ChecksumMismatchError(FrameError):
    """Embedded BCC does not match the XOR of header and payload."""
    def __init__(self, message: str, expected: str, actual: str):
        super().__init__(message, {"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class PayloadTooLargeError(ProtocolError):
    """Payload does not fit the single-byte length field."""
    pass


# Command Errors

class CommandError(EmulatorError):
    """
    A command was understood but cannot be executed as requested.

    Carries the response payload that is sent back to the peer instead.
    """
    def __init__(self, message: str, response: bytes, details: Optional[dict] = None):
        super().__init__(message, details)
        self.response = response


class ParameterError(CommandError):
    """Wrong token, unparseable date/time or wrong parameter length."""
    pass


class UnsupportedOperationError(CommandError):
    """Mifare card operations the emulator does not implement."""
    pass


# Network and Transport Errors

class TransportError(EmulatorError):
    """
    Network transport failures.

    Terminates the current connection handler; the accept loop keeps running.
    """
    pass
