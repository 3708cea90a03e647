"""Logging setup shared by mr2tachiyomi tools.

Modules log through ``logging.getLogger(__name__)``. Structured fields are
passed per call as ``extra={"extra_fields": {...}}`` or for a whole block
of work with ``LogContext``; the JSON formatter writes both.
"""

import json
import logging
import logging.handlers
import sys
import threading
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .logging_config import LoggingConfig


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(getattr(record, "context_fields", {}))
        entry.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        # Paths in structured fields
        return json.dumps(entry, default=str)


class DetailedFormatter(logging.Formatter):
    """Timestamped text lines with source location."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class SimpleFormatter(logging.Formatter):
    """Level, logger and message only."""

    def __init__(self) -> None:
        super().__init__(fmt="%(levelname)-8s | %(name)s | %(message)s")


FORMATTERS: Dict[str, Callable[[], logging.Formatter]] = {
    "simple": SimpleFormatter,
    "detailed": DetailedFormatter,
    "json": StructuredFormatter,
}


def setup_logging(
    level: str = "INFO",
    format: str = "simple",
    log_file: Optional[Path] = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
) -> None:
    """Replace the root logger's handlers.

    Console output goes to stderr; stdout carries command results only.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        format: Console format: simple, detailed or json
        log_file: Optional file receiving JSON lines, rotated by size
        max_file_size_mb: Rotation threshold for log_file
        backup_count: Rotated log files kept
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(FORMATTERS.get(format, SimpleFormatter)())
    root.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        rotating.setFormatter(StructuredFormatter())
        root.addHandler(rotating)


def setup_logging_from_config(config: LoggingConfig) -> None:
    """Apply a validated ``[logging]`` config section."""
    setup_logging(
        level=config.level,
        format=config.format,
        log_file=Path(config.file) if config.file else None,
        max_file_size_mb=config.max_file_size_mb,
        backup_count=config.backup_count,
    )


# Active LogContext blocks of the current thread or task, outermost first
_active_contexts: ContextVar[Tuple["LogContext", ...]] = ContextVar(
    "mr2tachiyomi_log_contexts", default=()
)
_factory_lock = threading.Lock()


def _install_context_factory() -> None:
    """Wrap the record factory once so records pick up active context fields."""
    with _factory_lock:
        base = logging.getLogRecordFactory()
        if getattr(base, "adds_log_context", False):
            return

        def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = base(*args, **kwargs)
            contexts = _active_contexts.get()
            if contexts:
                fields: Dict[str, Any] = {}
                for context in contexts:
                    fields.update(context.fields)
                record.context_fields = fields
            return record

        factory.adds_log_context = True  # type: ignore[attr-defined]
        logging.setLogRecordFactory(factory)


class LogContext:
    """Attach fields to every record created inside a ``with`` block.

    Fields land on ``record.context_fields``, separate from per-call
    ``extra_fields``. Nested contexts merge, the innermost value winning.
    Contexts are tracked per thread and per asyncio task, so concurrent
    extractions never see each other's fields.
    """

    def __init__(self, logger: logging.Logger, **fields: Any) -> None:
        self.logger = logger
        self.fields = fields

    def __enter__(self) -> "LogContext":
        _install_context_factory()
        _active_contexts.set(_active_contexts.get() + (self,))
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        # Removed by identity: contexts may be exited out of order
        _active_contexts.set(
            tuple(context for context in _active_contexts.get() if context is not self)
        )
