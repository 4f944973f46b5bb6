"""
Logging setup for proxyforward.

All modules log through loguru. ``configure_logging`` installs a single
stderr sink at the requested verbosity and routes records emitted through
the standard ``logging`` module (asyncio, for one) into the same sink.
"""

import inspect
import logging
import sys
import traceback

from loguru import logger as _logger

from proxyforward.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}


class _InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module so loguru reports it
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        _logger.bind(name=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """
    Configure the global loguru sink.

    Args:
        level: Verbosity level. FULL also enables backtraces and variable
            dumps in exception reports.
    """
    full = level == LogLevel.FULL
    _logger.remove()
    _logger.configure(extra={"name": "proxyforward"})
    _logger.add(
        sys.stderr,
        level=_LEVEL_MAP.get(level, "INFO"),
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
    )
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)


def get_logger(name: str):
    """Return the loguru logger bound to a module name."""
    return _logger.bind(name=name)


def format_traceback(exc: BaseException) -> str:
    """Format an exception with its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def level_from_verbosity(verbosity: int) -> LogLevel:
    """Map a repeated ``-v`` count to a LogLevel."""
    if verbosity <= 0:
        return LogLevel.WARNING
    if verbosity == 1:
        return LogLevel.INFO
    if verbosity == 2:
        return LogLevel.DEBUG
    return LogLevel.FULL
