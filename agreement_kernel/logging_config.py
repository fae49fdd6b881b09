"""
Structured JSON logging for the agreement kernel.

Every record is emitted as one JSON object per line. Request-scoped fields
(correlation id, booking, agreement, actor) live in a single context
variable so they follow the call across threads started with
``contextvars.copy_context`` and across asyncio tasks.

Raw signature images must never reach a log sink: ``bytes`` values in
``extra`` are replaced with a length/digest summary.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import hashlib
import json
import logging
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_ROOT_NAME = "agreement_kernel"

_CONTEXT_FIELDS = (
    "correlation_id",
    "booking_id",
    "agreement_id",
    "actor_id",
    "actor_role",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_fields: ContextVar[Mapping[str, str]] = ContextVar("agreement_log_fields", default=_EMPTY)


def _with_updates(current: Mapping[str, str], updates: dict[str, Any]) -> Mapping[str, str]:
    merged = dict(current)
    for key, value in updates.items():
        if key not in _CONTEXT_FIELDS:
            raise TypeError(f"Unknown log context field: {key}")
        if value is not None:
            merged[key] = str(value)
    return MappingProxyType(merged)


class LogContext:
    """Request-scoped log fields, safe across threads and tasks."""

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Update context fields in place. None values are ignored."""
        _fields.set(_with_updates(_fields.get(), fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_fields.get())

    @classmethod
    def clear(cls) -> None:
        _fields.set(_EMPTY)

    @classmethod
    def bind(cls, **fields: str | None) -> "_Binding":
        """Scope fields to a ``with`` block; the previous values return on exit."""
        return _Binding(fields)


class _Binding:
    def __init__(self, fields: dict[str, str | None]):
        self._updates = fields
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _fields.set(_with_updates(_fields.get(), self._updates))
        return LogContext

    def __exit__(self, *exc_info: Any) -> None:
        _fields.reset(self._token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _summarize_bytes(data: bytes) -> str:
    return f"<{len(data)} bytes sha256:{hashlib.sha256(data).hexdigest()[:12]}>"


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _summarize_bytes(bytes(value))
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Kernel errors keep their structured context as public attributes.
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_fields.get(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``agreement_kernel`` hierarchy."""
    return logging.getLogger(f"{_ROOT_NAME}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the kernel logger. Later calls are no-ops."""
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())

        root = logging.getLogger(_ROOT_NAME)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False
        root.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """Detach the installed handler so tests can reconfigure."""
    global _installed_handler
    with _setup_lock:
        root = logging.getLogger(_ROOT_NAME)
        if _installed_handler is not None:
            root.removeHandler(_installed_handler)
            _installed_handler = None
        root.handlers.clear()
        root.setLevel(logging.WARNING)
