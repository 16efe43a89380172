"""Central logging helpers"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

import structlog
import structlog.stdlib

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _build_file_handler(log_dir: Path, component: str) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{component}.log"
    handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=5)
    handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
    return handler


def setup_logging(
    component: str = "emulator",
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Path] = None,
    json_logs: bool = False,
) -> None:
    """Configure structlog + stdlib logging for a component"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        handlers.append(_build_file_handler(log_dir, component))

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logging.basicConfig(level=level, handlers=handlers, format=_DEFAULT_FORMAT, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.getLogger(__name__).info("logging_initialized", extra={"component": component})
