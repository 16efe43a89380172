"""
Test that all modules can be imported correctly
Run this after installing dependencies to validate the setup
"""


def test_emulator_imports():
    """Test emulator module imports"""
    from emulator.config import Settings
    from emulator.exceptions import EmulatorError, FrameError
    from emulator.logging import setup_logging
    from emulator.main import build_parser, main
    from emulator.models import DeviceAttendance, DevicePerson
    from emulator.server import ReaderServer


def test_engine_imports():
    """Test engine module imports"""
    from emulator.engine.device_state import DeviceState
    from emulator.engine.dispatcher import CommandDispatcher
    from emulator.engine.frame_codec import FrameCodec
    from emulator.engine.stream_framer import FrameBuffer, StreamFramer


def test_parser_help_lists_reader_options():
    from emulator.main import build_parser

    help_text = build_parser().format_help()
    for option in ("--ip", "--port", "--readerId", "--randomCardReads", "--logRequests", "--workType", "--protocol"):
        assert option in help_text
