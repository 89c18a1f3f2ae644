from __future__ import annotations

import logging
import sys
from typing import Any, Optional, Union

from loguru import logger

DEFAULT_COMPONENT = "repcoach"

_LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <7}</level> | "
    "<magenta>{extra[component]}</magenta> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class StdlibBridge(logging.Handler):
    """Forward stdlib ``logging`` records into Loguru, tagged with the stdlib logger name."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        depth = 2
        caller = logging.currentframe()
        while caller is not None and caller.f_code.co_filename == logging.__file__:
            caller = caller.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).bind(component=record.name).log(
            level, record.getMessage()
        )


def configure_logging(level: Union[str, int] = "INFO", sink: Any = None) -> int:
    """Send engine logs, and stdlib logging, to one Loguru sink (stderr by default).

    Returns the sink id so callers can remove it again.
    """
    logger.remove()
    logger.configure(extra={"component": DEFAULT_COMPONENT})
    handler_id = logger.add(
        sink if sink is not None else sys.stderr,
        format=_LOG_FORMAT,
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    logging.basicConfig(handlers=[StdlibBridge()], level=level, force=True)
    return handler_id


def get_logger(component: Optional[str] = None):
    """Loguru logger tagged with ``component`` (shown in the log line)."""
    return logger.bind(component=component) if component else logger
