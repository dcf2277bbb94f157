"""
Collaborator Ports (``repair_services.ports``).

Responsibility
--------------
Structural interfaces the workflow services depend on. Concrete
implementations live in ``repair_services.repositories`` (in-memory),
``repair_services.sql_repositories`` (SQLAlchemy),
``repair_services.notifications`` (task queue) and
``repair_services.rates`` (configuration-backed rates).

Architecture position
---------------------
**Services layer** -- interfaces only, no behavior.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from repair_engines.pricing import RateProvider
from repair_kernel.domain.job import InventoryRecord, Job
from repair_kernel.domain.notification import NotificationKind

__all__ = [
    "InventoryRepository",
    "JobRepository",
    "NotificationDispatcher",
    "RateProvider",
    "TaskQueue",
]


class NotificationDispatcher(Protocol):
    """Fire-and-forget notification sink."""

    def notify(self, kind: NotificationKind, job: Job) -> bool:
        """Request a notification. Returns False when it could not be queued."""
        ...


class JobRepository(Protocol):
    def get(self, job_id: UUID) -> Job:
        """Load a job aggregate. Raises ``RecordNotFoundError`` when absent."""
        ...

    def save(self, job: Job) -> Job:
        """Persist the aggregate and return it with ``persisted=True``."""
        ...


class InventoryRepository(Protocol):
    def get(self, shop_id: str, part_number: str) -> InventoryRecord | None:
        ...

    def get_for_update(self, shop_id: str, part_number: str) -> InventoryRecord | None:
        """Like ``get``, holding a row lock until the transaction ends."""
        ...

    def save(self, record: InventoryRecord) -> None:
        ...


class TaskQueue(Protocol):
    def enqueue(self, task) -> None:
        """Hand a task to the background worker. May raise."""
        ...
