"""
In-memory repositories.

Used by tests and by callers that keep jobs outside a database. Stored
objects are copied on the way in and on the way out so callers never share
mutable state with the store.
"""

from __future__ import annotations

import threading
from copy import deepcopy
from uuid import UUID

from repair_kernel.domain.job import InventoryRecord, Job
from repair_kernel.exceptions import RecordNotFoundError


class InMemoryJobRepository:
    def __init__(self):
        self._jobs: dict[UUID, Job] = {}
        self._lock = threading.Lock()

    def get(self, job_id: UUID) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise RecordNotFoundError("Job", str(job_id))
            return deepcopy(job)

    def save(self, job: Job) -> Job:
        stored = deepcopy(job)
        stored.persisted = True
        with self._lock:
            self._jobs[stored.id] = stored
        return deepcopy(stored)

    def __len__(self) -> int:
        return len(self._jobs)


class InMemoryInventoryRepository:
    """Inventory records keyed by ``(shop_id, part_number)``."""

    def __init__(self, records: list[InventoryRecord] | None = None):
        self._records: dict[tuple[str, str], InventoryRecord] = {}
        self._lock = threading.Lock()
        for record in records or ():
            self.save(record)

    def get(self, shop_id: str, part_number: str) -> InventoryRecord | None:
        with self._lock:
            record = self._records.get((shop_id, part_number))
            return deepcopy(record) if record is not None else None

    def get_for_update(self, shop_id: str, part_number: str) -> InventoryRecord | None:
        # Callers serialize per part through the ledger service's lock.
        return self.get(shop_id, part_number)

    def save(self, record: InventoryRecord) -> None:
        with self._lock:
            self._records[record.key] = deepcopy(record)
