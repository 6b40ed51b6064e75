# ruff: noqa: PLR6301
"""Logging for sqlmapper.

Loggers live under the ``sqlmapper`` namespace. Records carry the SQL id
being parsed (set with :func:`sql_context`) and an optional correlation ID,
both taken from context variables, so a line logged deep inside a parser can
be traced back to the mapper statement and the request that triggered it.

Statement context fields (``sql_id``, ``sql_ids``, ``format``, ``driver``)
passed through ``extra=`` or :func:`log_with_context` are emitted as
top-level keys by :class:`StructuredFormatter`. The library never installs
handlers on import; applications call :func:`configure_logging`.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Final

import msgspec

if TYPE_CHECKING:
    from collections.abc import Iterator
    from logging import LogRecord

__all__ = (
    "SQL_CONTEXT_FIELDS",
    "SQLContextFilter",
    "StructuredFormatter",
    "configure_logging",
    "correlation_id_var",
    "get_correlation_id",
    "get_logger",
    "get_sql_id",
    "log_with_context",
    "set_correlation_id",
    "sql_context",
    "sql_id_var",
)

ROOT_LOGGER_NAME: Final = "sqlmapper"

SQL_CONTEXT_FIELDS: Final = ("sql_id", "sql_ids", "format", "driver")

correlation_id_var: ContextVar[str | None] = ContextVar("sqlmapper_correlation_id", default=None)
sql_id_var: ContextVar[str | None] = ContextVar("sqlmapper_sql_id", default=None)

_json_encoder = msgspec.json.Encoder(enc_hook=str)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context.

    Args:
        correlation_id: The correlation ID to set, or None to clear
    """
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def get_sql_id() -> str | None:
    """Return the SQL id bound by the innermost :func:`sql_context`."""
    return sql_id_var.get()


@contextmanager
def sql_context(sql_id: str | None) -> Iterator[None]:
    """Attach ``sql_id`` to every record logged inside the block."""
    token = sql_id_var.set(sql_id)
    try:
        yield
    finally:
        sql_id_var.reset(token)


def _context_fields(record: LogRecord) -> dict[str, Any]:
    fields = {name: getattr(record, name) for name in SQL_CONTEXT_FIELDS if getattr(record, name, None) is not None}
    extra_fields = getattr(record, "extra_fields", None)
    if extra_fields:
        fields.update(extra_fields)
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with statement context as top-level keys."""

    def format(self, record: LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if correlation_id := getattr(record, "correlation_id", None) or get_correlation_id():
            log_entry["correlation_id"] = correlation_id
        log_entry.update(_context_fields(record))
        if "sql_id" not in log_entry and (sql_id := get_sql_id()):
            log_entry["sql_id"] = sql_id
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return _json_encoder.encode(log_entry).decode("utf-8")


class SQLContextFilter(logging.Filter):
    """Copy the current SQL id and correlation ID onto records that lack them."""

    def filter(self, record: LogRecord) -> bool:
        if getattr(record, "sql_id", None) is None and (sql_id := get_sql_id()):
            record.sql_id = sql_id
        if correlation_id := get_correlation_id():
            record.correlation_id = correlation_id
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger under the ``sqlmapper`` namespace.

    Args:
        name: Logger name, with or without the ``sqlmapper.`` prefix. The
            root sqlmapper logger when omitted.
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    logger = logging.getLogger(name)
    if not any(isinstance(f, SQLContextFilter) for f in logger.filters):
        logger.addFilter(SQLContextFilter())
    return logger


def configure_logging(
    level: str = "INFO",
    format_style: str = "structured",
    extra_handlers: list[logging.Handler] | None = None,
) -> None:
    """Send sqlmapper records to stdout.

    Args:
        level: Logging level name.
        format_style: ``"structured"`` for JSON lines, anything else for
            ``[sql_id] message`` text.
        extra_handlers: Additional handlers for the sqlmapper logger.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(SQLContextFilter())
    formatter: logging.Formatter
    if format_style == "structured":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(sql_id)s] %(message)s", defaults={"sql_id": "-"}
        )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    for handler in extra_handlers or ():
        root_logger.addHandler(handler)
    root_logger.propagate = False

    log_with_context(root_logger, logging.INFO, "sqlmapper logging configured", level=level, format_style=format_style)


def log_with_context(logger: logging.Logger, level: int, message: str, **extra_fields: Any) -> None:
    """Log ``message`` with structured fields, e.g. ``format="sql", sql_ids=[...]``."""
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(logger.name, level, "(unknown file)", 0, message, (), None)
    record.extra_fields = extra_fields  # type: ignore[attr-defined]
    logger.handle(record)
