"""
proto-toolchain — structured logging.

File: src/proto_toolchain/observability/logging.py

Purpose
- Components log key/value events through ``structlog.get_logger(__name__)``.
- ``structlog`` hands each event to the stdlib ``logging`` tree, where one run's sinks
  render it: a stderr stream (text or JSON lines) and an optional JSON-lines file at
  ``<log_dir>/<run_id>/toolchain.jsonl``.

Functional requirements
- Correlation fields (``run_id``, ``command``, ``registration``) live in a context
  variable and are stamped onto every record in scope.
- Setting up a run replaces the previous run's sinks; shutdown flushes and detaches them.
- Importing this module configures nothing.
"""

from __future__ import annotations

import contextvars
import json
import logging
import math
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Final, Literal

import structlog

DEFAULT_LOGGER_NAME: Final[str] = "proto_toolchain"
DEFAULT_LOG_FILENAME: Final[str] = "toolchain.jsonl"

CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "command", "registration")

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "proto_toolchain_correlation", default={}
)

_active_lock = threading.Lock()
_active: list[StructuredLoggingHandle] = []


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Sinks and level for one run."""

    run_id: str
    base_log_dir: Path | str = Path("build/logs")
    logger_name: str = DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stderr: bool = True
    log_to_file: bool = False
    stream: IO[str] | None = None


@dataclass(slots=True)
class StructuredLoggingHandle:
    """The sinks installed for one run."""

    logger: logging.Logger
    run_id: str
    log_path: Path | None
    handlers: tuple[logging.Handler, ...]
    _closed: bool = field(default=False, repr=False)

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self) -> None:
        for handler in self.handlers:
            handler.flush()

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        for handler in self.handlers:
            handler.flush()
            self.logger.removeHandler(handler)
            handler.close()


def configure_structlog() -> None:
    """Send structlog events to stdlib loggers, key/values travelling as ``extra``."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    level: int | str | None = None,
    log_format: str | None = None,
    logger_name: str = DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Install sinks from an ``[observability]`` table; keyword arguments win over it."""

    settings = dict(observability_config or {})
    chosen_level = level if level is not None else settings.get("log_level", "INFO")
    chosen_format = log_format if log_format is not None else settings.get("log_format")
    chosen_dir = log_dir if log_dir is not None else settings.get("log_dir", "build/logs")

    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=chosen_dir if isinstance(chosen_dir, (str, Path)) else "build/logs",
            logger_name=logger_name,
            level=chosen_level if isinstance(chosen_level, (int, str)) else "INFO",
            log_format="json" if chosen_format == "json" else "text",
            log_to_file=bool(settings.get("log_to_file", False)),
        )
    )
    return handle.logger


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install the sinks described by ``config``, shutting down the previous run's first."""

    shutdown_logging()

    run_id = _non_blank(config.run_id, "run_id")
    logger_name = _non_blank(config.logger_name, "logger_name")
    filename = _non_blank(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    level = _level_number(config.level)

    handlers: list[logging.Handler] = []
    log_path: Path | None = None
    if config.log_to_file:
        log_path = Path(config.base_log_dir) / run_id / filename
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
        handlers[-1].setFormatter(JsonLineFormatter(run_id))
    if config.log_to_stderr:
        handlers.append(logging.StreamHandler(config.stream or sys.stderr))
        formatter = JsonLineFormatter if config.log_format == "json" else TextLineFormatter
        handlers[-1].setFormatter(formatter(run_id))

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False
    for handler in handlers:
        handler.setLevel(level)
        logger.addHandler(handler)

    configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger, run_id=run_id, log_path=log_path, handlers=tuple(handlers)
    )
    with _active_lock:
        _active[:] = [handle]
    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Flush and detach ``handle``, or the active run's sinks when omitted."""

    with _active_lock:
        target = handle if handle is not None else (_active[0] if _active else None)
        if target is not None and any(item is target for item in _active):
            _active.clear()
    if target is not None:
        target.shutdown()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active[0] if _active else None


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[Mapping[str, str]]:
    """Bind (or, with ``None``, unbind) correlation fields; returns a reset token."""

    merged = dict(_correlation.get())
    for key, value in fields.items():
        key = _non_blank(key, "correlation key")
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = _non_blank(value, "correlation value")
    return _correlation.set(merged)


def reset_correlation_fields(token: contextvars.Token[Mapping[str, str]]) -> None:
    _correlation.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


class _RunFormatter(logging.Formatter):
    """Shared record decoding for both line formats."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def correlation(self, record: logging.LogRecord) -> dict[str, str]:
        fields = {"run_id": self._run_id, **_correlation.get()}
        for key in CORRELATION_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str) and value.strip():
                fields[key] = value.strip()
        return fields

    @staticmethod
    def event_fields(record: logging.LogRecord) -> dict[str, object]:
        return {
            key: _jsonable(value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
            and key not in CORRELATION_KEYS
            and not key.startswith("_")
        }


class JsonLineFormatter(_RunFormatter):
    """One sorted, compact JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        timestamp = created.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        line: dict[str, object] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **self.correlation(record),
        }
        fields = self.event_fields(record)
        if fields:
            line["fields"] = fields
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            line["stack"] = record.stack_info
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class TextLineFormatter(_RunFormatter):
    """``LEVEL logger event key=value ...`` for terminals; the run id is left out."""

    def format(self, record: logging.LogRecord) -> str:
        pairs: dict[str, object] = self.event_fields(record)
        pairs.update(self.correlation(record))
        pairs.pop("run_id", None)

        parts = [f"{record.levelname:<7}", record.name, record.getMessage()]
        for key in sorted(pairs):
            value = pairs[key]
            parts.append(f"{key}={value if isinstance(value, str) else json.dumps(value)}")
        text = " ".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    return repr(value)


def _non_blank(value: object, label: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{label} must not be empty")
    return stripped


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {level!r}")
    return number


__all__ = [
    "CORRELATION_KEYS",
    "JsonLineFormatter",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "TextLineFormatter",
    "configure_structlog",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
