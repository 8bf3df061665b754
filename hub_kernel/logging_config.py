"""
Structured JSON logging for the hub kernel and its modules.

Every record is written as one JSON object per line.  Besides the core
fields (``ts``, ``level``, ``logger``, ``message``) a record carries:

* the request-scoped fields bound in ``LogContext`` (who is acting, on
  which entity, inside which service operation);
* the ``extra`` mapping passed at the call site;
* for records logged with ``exc_info``, the exception type, message,
  ``HubError.code`` and every structured attribute of the exception as
  ``exc_<name>``.

Services log snake_case event names (``stock_reserved``,
``booking_created``) rather than prose, so log queries can match on
``message`` exactly.
"""

__all__ = [
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
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

HUB_LOGGER = "hub"

# ---------------------------------------------------------------------------
# Request-scoped context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "entity_type",
    "entity_id",
    "operation",
)

_context: ContextVar[dict[str, str]] = ContextVar("hub_log_context", default={})


class LogContext:
    """
    Fields stamped on every record logged in the current thread or task.

    ``unit_of_work`` binds ``operation`` for the length of a service call;
    callers bind ``correlation_id`` and ``actor_id`` at their edge.
    """

    @staticmethod
    def _clean(fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(_CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        return {k: str(v) for k, v in fields.items() if v is not None}

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Merge fields into the current context; ``None`` values are skipped."""
        _context.set({**_context.get(), **cls._clean(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Add fields for the duration of a block, then restore the previous context."""
        token = _context.set({**_context.get(), **cls._clean(fields)})
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_jsonable)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.booking")`` -> the ``hub.services.booking`` logger."""
    return logging.getLogger(f"{HUB_LOGGER}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``hub`` logger.  Later calls are
    no-ops, so library code and scripts can both call it.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        hub = logging.getLogger(HUB_LOGGER)
        hub.setLevel(level.upper() if isinstance(level, str) else level)
        hub.propagate = False
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        hub.addHandler(target)


def reset_logging() -> None:
    """Drop the hub handlers so tests can configure logging again."""
    global _configured
    with _configure_lock:
        _configured = False
        hub = logging.getLogger(HUB_LOGGER)
        for h in list(hub.handlers):
            hub.removeHandler(h)
        hub.setLevel(logging.WARNING)
