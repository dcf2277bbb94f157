"""
Customer Notifications (``repair_services.notifications``).

Responsibility
--------------
Turns notification requests from the lifecycle engine into background tasks.
Delivery (SMS, email, invoice rendering) happens in the worker that drains
the queue and is out of scope here.

Invariants enforced
-------------------
* Fire-and-forget: a failing queue never fails the transition that asked
  for the notification. The failure is logged and ``notify`` returns False.
* No retries. A task the queue refused is dropped.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from repair_kernel.domain.clock import Clock, SystemClock
from repair_kernel.domain.job import Job
from repair_kernel.domain.notification import NotificationKind
from repair_kernel.logging_config import get_logger
from repair_services.ports import TaskQueue

logger = get_logger("services.notifications")

__all__ = [
    "InMemoryTaskQueue",
    "NotificationKind",
    "NotificationTask",
    "TaskQueueNotifier",
]


@dataclass(frozen=True)
class NotificationTask:
    """One queued notification."""
    kind: NotificationKind
    job_id: UUID
    shop_id: str
    requested_at: datetime


class InMemoryTaskQueue:
    """Thread-safe list-backed queue."""

    def __init__(self):
        self._tasks: list[NotificationTask] = []
        self._lock = threading.Lock()

    def enqueue(self, task: NotificationTask) -> None:
        with self._lock:
            self._tasks.append(task)

    def drain(self) -> list[NotificationTask]:
        with self._lock:
            tasks, self._tasks = self._tasks, []
        return tasks

    @property
    def pending(self) -> tuple[NotificationTask, ...]:
        with self._lock:
            return tuple(self._tasks)


class TaskQueueNotifier:
    """``NotificationDispatcher`` that enqueues a ``NotificationTask``."""

    def __init__(self, queue: TaskQueue, clock: Clock | None = None):
        self._queue = queue
        self._clock = clock or SystemClock()

    def notify(self, kind: NotificationKind, job: Job) -> bool:
        task = NotificationTask(
            kind=kind,
            job_id=job.id,
            shop_id=job.shop_id,
            requested_at=self._clock.now(),
        )
        try:
            self._queue.enqueue(task)
        except Exception:
            logger.error(
                "notification_enqueue_failed",
                extra={
                    "job_id": str(job.id),
                    "shop_id": job.shop_id,
                    "notification": kind.value,
                },
                exc_info=True,
            )
            return False

        logger.info(
            "notification_enqueued",
            extra={
                "job_id": str(job.id),
                "shop_id": job.shop_id,
                "notification": kind.value,
            },
        )
        return True
