"""
Reader emulator entry point

Parses command-line options, layers them over AKSREADER_* environment
variables and runs the TCP listener until interrupted.
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

import structlog
from pydantic import ValidationError

from emulator.config import Settings
from emulator.engine.device_state import DeviceState
from emulator.engine.dispatcher import CommandDispatcher
from emulator.exceptions import ConfigurationError
from emulator.logging import setup_logging
from emulator.server import ReaderServer

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aks-reader-emulator",
        description="AKS access-control card reader emulator",
    )
    parser.add_argument("--ip", help="IP address to listen on (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="TCP port to listen on (default: 1001)")
    parser.add_argument("--readerId", "--reader-id", dest="reader_id", type=int, help="Reader ID (default: 150)")
    parser.add_argument(
        "--randomCardReads",
        "--random-card-reads",
        dest="random_card_reads",
        choices=["true", "false"],
        help="Enable random card reads (default: false)",
    )
    parser.add_argument(
        "--logRequests",
        "--log-requests",
        dest="log_requests",
        choices=["true", "false"],
        help="Log every incoming request (default: false)",
    )
    parser.add_argument(
        "--workType",
        "--work-type",
        dest="work_type",
        type=int,
        help="Device work type: 1 (online), 2 (offline), 3 (OnOff) (default: 3)",
    )
    parser.add_argument(
        "--protocol",
        type=int,
        help="Device protocol: 0 (Client), 1 (Server) (default: 0)",
    )
    parser.add_argument("--log-dir", dest="log_dir", type=Path, help="Also write logs to this directory")
    parser.add_argument("--log-level", dest="log_level", help="Log level (default: INFO)")
    parser.add_argument("--json-logs", dest="json_logs", action="store_true", default=None, help="Render logs as JSON")
    return parser


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Command-line values override environment values."""
    args = build_parser().parse_args(argv)
    overrides: Dict[str, object] = {k: v for k, v in vars(args).items() if v is not None}
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            details={"errors": [
                {"setting": ".".join(str(part) for part in error["loc"]), "error": error["msg"]}
                for error in e.errors()
            ]},
        ) from e


def log_coercions(settings: Settings) -> None:
    for coercion in settings.coercions:
        logger.warning("setting_coerced", **coercion)


def build_server(settings: Settings) -> ReaderServer:
    state = DeviceState.from_settings(settings)
    dispatcher = CommandDispatcher(
        state,
        reader_id=settings.reader_id,
        random_card_reads=settings.random_card_reads,
        log_requests=settings.log_requests,
    )
    return ReaderServer(settings, dispatcher)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = load_settings(argv)
    except ConfigurationError as e:
        print(f"{e.message}:", file=sys.stderr)
        for error in e.details["errors"]:
            print(f"  {error['setting']}: {error['error']}", file=sys.stderr)
        return 2

    setup_logging("emulator", settings.log_level, settings.log_dir, settings.json_logs)
    log_coercions(settings)
    logger.info(
        "emulator_starting",
        ip=settings.ip,
        port=settings.port,
        reader_id=settings.reader_id,
        work_type=settings.work_type.name,
        protocol=settings.protocol.name,
        random_card_reads=settings.random_card_reads,
    )

    server = build_server(settings)
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("emulator_stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
