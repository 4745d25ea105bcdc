"""
Logging setup for replrelay.

All modules obtain their logger through :func:`get_logger`, which returns a
loguru logger bound to the module name. :func:`configure_logging` must be
called once at startup to install the sinks for the selected level.
"""

import sys
import traceback

from loguru import logger as _logger

from replrelay.models.enums import LogLevel

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

# Default binding so records logged before configure_logging() still format
_logger.configure(extra={"name": "replrelay"})


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: str | None = None):
    """
    Install loguru sinks for the given verbosity.

    Args:
        level: Verbosity level.
        log_file: Optional path of a file sink (rotated at 10 MB).
    """
    full = level == LogLevel.FULL
    loguru_level = _LEVEL_MAP.get(level, "INFO")

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
        enqueue=False,
    )
    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=LOG_FORMAT,
            rotation="10 MB",
            backtrace=full,
            diagnose=full,
        )


def get_logger(name: str):
    """Return a logger bound to ``name``."""
    return _logger.bind(name=name)


def format_traceback(exc: BaseException) -> str:
    """Render an exception and its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
