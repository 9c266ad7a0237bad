"""structlog configuration shared by the server and the command-line tools.

Environment variables:
- LOG_FORMAT: "json" for log aggregation, "console" or unset for
  human-readable output.
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR" or "CRITICAL".
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_LOG_FORMATS = {"json", "console", ""}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _plain(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _render_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log enum members (room mode, phase, reason) by value."""
    for key, value in event_dict.items():
        event_dict[key] = _plain(value)
    return event_dict


def _log_format() -> str:
    value = os.environ.get("LOG_FORMAT", "").lower()
    if value not in _LOG_FORMATS:
        raise ValueError(f"Invalid LOG_FORMAT={value!r}. Must be 'json', 'console', or unset.")
    return value or "console"


def _log_level() -> int:
    value = os.environ.get("LOG_LEVEL", "INFO").upper()
    if value not in _LOG_LEVELS:
        raise ValueError(f"Invalid LOG_LEVEL={value!r}. Must be one of {', '.join(sorted(_LOG_LEVELS))}.")
    return getattr(logging, value)


def _formatter(log_format: str, *, colors: bool) -> logging.Formatter:
    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
    *,
    file_prefix: str = "tabu",
) -> Path | None:
    """Route structlog and stdlib logging to stdout and, optionally, a file.

    When ``log_dir`` is given a ``<prefix>_<timestamp>.log`` file is created
    in it and its path returned. Outside of that, returns None.
    """
    log_format = _log_format()
    if level is None:
        level = _log_level()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _render_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(_formatter(log_format, colors=sys.stdout.isatty()))
    root_logger.addHandler(stdout_handler)

    if log_dir is None:
        return None

    dir_path = Path(log_dir)
    dir_path.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)
    file_path = dir_path / f"{file_prefix}_{timestamp}.log"
    file_handler = logging.FileHandler(file_path, encoding="utf-8")
    file_handler.setFormatter(_formatter(log_format, colors=False))
    root_logger.addHandler(file_handler)
    return file_path
