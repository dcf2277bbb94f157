"""
Structured logging for the repair workflow core.

Every record under the ``repair_kernel`` logger renders as one JSON object:
``ts``, ``level``, ``logger`` and ``message`` (an event name such as
``job_transition_applied``), then the job fields bound by ``LogContext``,
then the record's ``extra`` fields. A logged ``RepairKernelError`` adds its
``error_code``.

Services bind the job they are working on::

    with LogContext.for_job(job, "finalize"):
        ...  # every record here carries job_id, shop_id and job_event
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from typing import IO, Any

from repair_kernel.exceptions import RepairKernelError

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

ROOT_LOGGER = "repair_kernel"

CONTEXT_FIELDS = ("job_id", "shop_id", "job_event")

_job_context: ContextVar[Mapping[str, str]] = ContextVar("repair_job_log_context", default={})


class LogContext:
    """Job fields merged into every record logged inside ``bind``."""

    @staticmethod
    def current() -> dict[str, str]:
        return dict(_job_context.get())

    @staticmethod
    def clear() -> None:
        _job_context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Add ``fields`` for the duration of the block. Nested binds layer on
        top of the outer ones and the outer values come back on exit.

        Raises:
            ValueError: a field outside ``CONTEXT_FIELDS``.
        """
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise ValueError(f"Unknown log context fields: {unknown}")
        bound = {name: str(value) for name, value in fields.items() if value is not None}
        token = _job_context.set({**_job_context.get(), **bound})
        try:
            yield
        finally:
            _job_context.reset(token)

    @classmethod
    def for_job(cls, job: Any, job_event: str):
        return cls.bind(job_id=job.id, shop_id=job.shop_id, job_event=job_event)


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Renders a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_job_context.get())
        payload.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS
        )
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if isinstance(exc, RepairKernelError):
                payload["error_code"] = exc.code
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``repair_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def configure_logging(*, level: int = logging.INFO, stream: IO[str] | None = None) -> logging.Handler:
    """
    Send ``repair_kernel`` records to ``stream`` (stderr by default) as JSON.

    Calling again only updates the level and returns the handler already
    installed.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
            return handler
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    root.propagate = False
    return handler


def reset_logging() -> None:
    """Remove installed handlers and restore the default level. Used by tests."""
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    root.propagate = True
