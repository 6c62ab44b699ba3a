"""Logging helpers built on femtologging.

Waymark emits pre-formatted messages so every log line is fully
interpolated before it reaches the femtologging worker thread. Use the
``log_*`` helpers instead of calling ``logger.log`` directly.

Example:
>>> from waymark.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "channel %s loaded", "github-main")

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger


class LogLevel(enum.StrEnum):
    """Log levels accepted by ``WAYMARK_LOG_LEVEL``."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Normalize a raw log level and flag unusable values.

    Parameters
    ----------
    level : str | None
        Raw level, typically read from the environment.

    Returns
    -------
    tuple[str, bool]
        The normalized level (``INFO`` when unusable) and ``True`` when the
        input was missing or unrecognised.

    """
    if not level:
        return ("INFO", True)

    candidate = level.strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)

    return ("INFO", True)


def configure_logging(level: str | None, *, force: bool = False) -> tuple[str, bool]:
    """Configure femtologging at ``level`` and report what was applied.

    Parameters
    ----------
    level : str | None
        Raw level string.
    force : bool, optional
        Replace an existing handler configuration.

    Returns
    -------
    tuple[str, bool]
        The applied level and whether the input had to be replaced.

    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into a percent-style ``template``."""
    if not args:
        return template
    return template % args


def format_fields(**fields: object) -> str:
    """Render keyword fields as ``key=value`` pairs in call order.

    Examples
    --------
    >>> format_fields(channel="gh", retries=2)
    'channel=gh retries=2'

    """
    return " ".join(f"{key}={value}" for key, value in fields.items())


class _SupportsLog(typ.Protocol):
    """Structural type for femtologging loggers."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: str,
    message: str,
    *,
    exc_info: object | None = None,
) -> None:
    logger.log(level, message, exc_info=exc_info, stack_info=False)


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Emit ``template % args`` at DEBUG."""
    _emit(logger, "DEBUG", format_log_message(template, *args))


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit ``template % args`` at INFO.

    ``exc_info`` is forwarded untouched, so callers may attach an exception
    to an informational record (a retried delivery, for example).
    """
    _emit(logger, "INFO", format_log_message(template, *args), exc_info=exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit ``template % args`` at WARNING; see :func:`log_info`."""
    _emit(logger, "WARNING", format_log_message(template, *args), exc_info=exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit ``template % args`` at ERROR; see :func:`log_info`."""
    _emit(logger, "ERROR", format_log_message(template, *args), exc_info=exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log ``message`` at ERROR with ``exc`` attached as exc_info."""
    _emit(logger, "ERROR", message, exc_info=exc)


__all__ = [
    "LogLevel",
    "configure_logging",
    "format_fields",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
