"""
Structured JSON logging for the ledger.

Every record is one JSON line.  Operation context (the correlation id of
the BackOffice call, the acting user, the journal entry or document the
call is working on) lives in one context variable and is merged into
each record, so services log plain event names and let the context
identify what they belong to.

    with LogContext.bind(correlation_id=..., operation="approve_invoice"):
        LogContext.update(document_id=invoice.id)
        logger.info("invoice_approve")   # carries all three fields
"""

__all__ = [
    "LOG_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, TextIO
from uuid import UUID

LOG_FIELDS = ("correlation_id", "actor_id", "operation", "entry_id", "document_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default=_EMPTY)


def _coerce(fields: dict[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(LOG_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
    return {name: str(value) for name, value in fields.items() if value is not None}


class LogContext:
    """Operation-scoped log fields, safe across threads and tasks."""

    @staticmethod
    def fields() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Layer fields over the current context; the previous context is restored on exit."""
        token = _context.set(MappingProxyType({**_context.get(), **_coerce(fields)}))
        try:
            yield
        finally:
            _context.reset(token)

    @staticmethod
    def update(**fields: Any) -> None:
        """
        Add fields for the rest of the enclosing ``bind`` block.

        Used once a service knows which entry or document it is working
        on; the enclosing bind discards the fields when it exits.
        """
        _context.set(MappingProxyType({**_context.get(), **_coerce(fields)}))

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: header, context, extras, then any error."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _error_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # LedgerError subclasses keep their context as public attributes.
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


_ROOT = "ledger_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the ledger_kernel namespace."""
    return logging.getLogger(f"{_ROOT}.{name}")


def _installed(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, "_ledger_handler", False)]


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the ledger_kernel logger.

    Only the first call installs a handler; later calls leave the
    configuration alone.  Handlers added by other code are untouched.
    """
    root = logging.getLogger(_ROOT)
    if _installed(root):
        return
    chosen = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    chosen.setFormatter(StructuredFormatter())
    chosen._ledger_handler = True
    root.setLevel(level)
    root.propagate = False
    root.addHandler(chosen)


def reset_logging() -> None:
    """Remove the handler installed by configure_logging. Tests only."""
    root = logging.getLogger(_ROOT)
    for handler in _installed(root):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
