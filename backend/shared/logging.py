"""Structured logging for the relay: structlog events rendered by stdlib handlers.

Environment variables (read through LogSettings):
- LOG_FORMAT: "json" for log aggregation, "console" or unset for
  human-readable output.
- LOG_LEVEL: DEBUG, INFO (default), WARNING, ERROR or CRITICAL, any case.
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# uvicorn logs one line per websocket upgrade; the relay logs its own connect/disconnect events.
_QUIET_LOGGERS = ("uvicorn.access", "uvicorn.error")


class LogSettings(BaseSettings):
    log_format: Literal["json", "console", ""] = Field(default="", validation_alias="LOG_FORMAT")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
    )

    @field_validator("log_format", mode="before")
    @classmethod
    def _lower_format(cls, v: object) -> object:
        return v.lower() if isinstance(v, str) else v

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @property
    def json_mode(self) -> bool:
        return self.log_format == "json"

    @property
    def level(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log room types and error codes by value rather than repr."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def _formatter(*, json_mode: bool, colors: bool = False) -> logging.Formatter:
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def configure_structlog() -> None:
    """Hand structlog events to stdlib logging; whichever handlers are installed render them."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _serialize_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _open_log_file(log_dir: Path | str) -> Path:
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"


def setup_logging(log_dir: Path | str | None = None, level: int | None = None) -> Path | None:
    """Install stdout logging, plus a timestamped file in log_dir when one is given.

    The file is never created under pytest. Returns its path, or None.
    Raises pydantic.ValidationError for an unknown LOG_FORMAT or LOG_LEVEL.
    """
    settings = LogSettings()
    configure_structlog()

    root = logging.getLogger()
    root.setLevel(settings.level if level is None else level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(json_mode=settings.json_mode, colors=sys.stdout.isatty()))
    root.addHandler(console)

    if log_dir is None or _is_test():
        return None

    log_path = _open_log_file(log_dir)
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(_formatter(json_mode=settings.json_mode))
    root.addHandler(file_handler)
    return log_path
