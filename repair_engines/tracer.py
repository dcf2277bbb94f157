"""
repair_engines.tracer -- ``@traced_engine`` for the pure calculators.

Each call of a decorated engine logs one ``engine_invoked`` record naming
the engine, the job or job item it ran on (``subject_id``), the selected
keyword inputs and the duration. A domain error raised by the engine is
logged as ``engine_rejected`` with its code and then re-raised unchanged.

Usage:
    @traced_engine("status", inputs=("mode",))
    def recompute_status(job, *, mode):
        ...
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

from repair_kernel.exceptions import RepairKernelError
from repair_kernel.logging_config import get_logger

logger = get_logger("engines")


def _render(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _subject_id(args: tuple[Any, ...]) -> str | None:
    """Id of the job or job item an engine was handed first."""
    if not args:
        return None
    subject_id = getattr(args[0], "id", None)
    return str(subject_id) if subject_id is not None else None


def traced_engine(engine: str, inputs: tuple[str, ...] = ()) -> Callable:
    """Log every call of the decorated engine; ``inputs`` names kwargs to record."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fields = {
                "engine": engine,
                "function": func.__name__,
                "subject_id": _subject_id(args),
                "inputs": {name: _render(kwargs.get(name)) for name in inputs},
            }
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except RepairKernelError as exc:
                logger.info("engine_rejected", extra={**fields, "error_code": exc.code})
                raise
            fields["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
            logger.debug("engine_invoked", extra=fields)
            return result

        return wrapper

    return decorator
