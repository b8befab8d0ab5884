"""
Structured JSON logging for the inventory kernel.

Every record under the ``inventory_kernel`` namespace is rendered as one
JSON object per line.  Request-scoped fields (correlation id, acting user,
the document being processed) live in a single ContextVar so that log lines
emitted deep inside the mutator carry them without being passed down.

Usage::

    configure_logging(level="DEBUG")
    logger = get_logger("modules.goods_issue")

    with LogContext.bind(document_type="goods_issue", document_id=issue_id):
        logger.info("goods_issue_completed", extra={"line_count": 3})
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_ROOT_LOGGER_NAME = "inventory_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "document_type",
    "document_id",
    "trace_id",
)

# Never mutated in place; every change installs a fresh dict.
_context: ContextVar[Mapping[str, str]] = ContextVar(
    "inventory_log_context", default={}
)


def _with_fields(updates: Mapping[str, Any]) -> dict[str, str]:
    fields = dict(_context.get())
    for name, value in updates.items():
        if name not in CONTEXT_FIELDS:
            raise TypeError(f"Unknown log context field: {name!r}")
        if value is not None:
            fields[name] = str(value)
    return fields


class LogContext:
    """Request-scoped log fields, isolated per thread and per asyncio task."""

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set the given fields; ``None`` values leave a field untouched."""
        _context.set(_with_fields(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block.

        Values are stringified so UUIDs can be passed straight through.  On
        exit the context is restored exactly, including fields that were
        unset before the block.
        """
        token = _context.set(_with_fields(fields))
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: core fields, then context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(self._extras(record, payload))
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _extras(record: logging.LogRecord, taken: Mapping[str, Any]) -> dict[str, Any]:
        return {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in taken
        }

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Kernel errors keep their structured context as public attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name not in ("args", "code"):
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Return ``inventory_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")


# ---------------------------------------------------------------------------
# Handler installation
# ---------------------------------------------------------------------------

_install_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``inventory_kernel`` logger.

    Later calls are no-ops until ``reset_logging()`` runs, so entry points
    such as ``init_engine_from_url`` may call this unconditionally.
    """
    global _installed_handler
    with _install_lock:
        if _installed_handler is not None:
            return
        if handler is None:
            handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        handler.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(_ROOT_LOGGER_NAME)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(handler)
        _installed_handler = handler


def reset_logging() -> None:
    """Detach the handler installed by ``configure_logging()``.  Tests only."""
    global _installed_handler
    with _install_lock:
        kernel_logger = logging.getLogger(_ROOT_LOGGER_NAME)
        if _installed_handler is not None:
            kernel_logger.removeHandler(_installed_handler)
            _installed_handler = None
        kernel_logger.setLevel(logging.NOTSET)
        kernel_logger.propagate = True
