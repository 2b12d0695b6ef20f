"""Structured file logging for cloudvm.

Loggers are built with `structlog.wrap_logger`, so creating one never
touches the global structlog configuration that library components fall
back to.
"""

import logging
from logging.handlers import RotatingFileHandler
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, cast

import structlog

from ._paths import get_cloudvm_log_file

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger, Processor

LogFormatType = Literal["json", "text"]


def _resolve_level(level: str | None) -> int:
    if getenv("CLOUDVM_DEBUG"):
        return logging.DEBUG
    name = level or getenv("CLOUDVM_LOG_LEVEL", "info")
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _open_sink(
    path: Path,
    level: int,
    max_bytes: int | None,
    backup_count: int | None,
) -> Any:  # noqa: ANN401
    """Return the object structlog writes rendered entries to.

    A plain append-mode file, or a private stdlib logger with a rotating
    handler when both rotation limits are given.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if max_bytes is None or backup_count is None:
        return structlog.WriteLoggerFactory(file=path.open("a"))()

    sink = logging.getLogger(f"cloudvm.file.{path}")
    for old in sink.handlers:
        old.close()
    sink.handlers.clear()
    sink.propagate = False
    sink.setLevel(level)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(logging.Formatter("%(message)s"))
    sink.addHandler(handler)
    return sink


def create_logger(
    *,
    level: str | None = None,
    log_format: LogFormatType = "json",
    log_file: str = "",
    max_bytes: int | None = None,
    backup_count: int | None = None,
    **context: str,
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create the logger shared by the controller and its collaborators.

    The threshold is DEBUG when CLOUDVM_DEBUG is set, otherwise `level`,
    otherwise CLOUDVM_LOG_LEVEL, otherwise INFO.

    Args:
        level: Log level threshold (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        log_file: Path to log file (uses the default log file if empty).
        max_bytes: Size in bytes that triggers rotation. Rotation needs
            backup_count too.
        backup_count: Number of rotated files to keep.
        context: Key/values bound to every entry, e.g. ``command="start"``.

    Returns:
        A FilteringBoundLogger instance.
    """
    effective_level = _resolve_level(level)
    path = Path(log_file) if log_file else get_cloudvm_log_file()

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    logger = cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            _open_sink(path, effective_level, max_bytes, backup_count),
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(effective_level),
            context_class=dict,
        ),
    )
    return logger.bind(**context) if context else logger
