"""
Module: repair_services.sql_repositories
Responsibility: SQLAlchemy-backed ``JobRepository`` and
    ``InventoryRepository``. Convert between the domain dataclasses and the
    ORM models of ``repair_kernel.models``.
Architecture position: Services. Accepts a Session from the caller.

Invariants enforced:
    - Session ownership: repositories flush but never commit. The caller owns
      the transaction (``repair_kernel.db.session_scope``).
    - ``get_for_update`` takes a row lock (SELECT ... FOR UPDATE) held until
      the caller's transaction ends. SQLite ignores the clause; the ledger
      service's in-process lock still serializes updates.
    - Saving a job replaces its children. Job items and estimate lines missing
      from the aggregate are deleted (delete-orphan cascade).

Failure modes:
    - RecordNotFoundError from ``SqlJobRepository.get`` for an unknown id.
    - IntegrityError on a duplicate (shop_id, part_number) inventory row.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from repair_kernel.domain.job import InventoryRecord, Job
from repair_kernel.exceptions import RecordNotFoundError
from repair_kernel.logging_config import get_logger
from repair_kernel.models.inventory import InventoryRecordModel
from repair_kernel.models.job import JobModel

logger = get_logger("services.sql_repositories")


class SqlJobRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, job_id: UUID) -> Job:
        model = self._session.get(JobModel, job_id)
        if model is None:
            raise RecordNotFoundError("Job", str(job_id))
        return model.to_dto()

    def save(self, job: Job) -> Job:
        """Insert or update the aggregate and return the stored version."""
        model = self._session.merge(JobModel.from_dto(job))
        self._session.flush()
        logger.debug(
            "job_saved",
            extra={
                "job_id": str(job.id),
                "lifecycle_state": job.lifecycle_state.value,
                "job_item_count": len(job.job_items),
            },
        )
        return model.to_dto()


class SqlInventoryRepository:
    def __init__(self, session: Session):
        self._session = session

    def _select(self, shop_id: str, part_number: str):
        return select(InventoryRecordModel).where(
            InventoryRecordModel.shop_id == shop_id,
            InventoryRecordModel.part_number == part_number,
        )

    def get(self, shop_id: str, part_number: str) -> InventoryRecord | None:
        model = self._session.execute(
            self._select(shop_id, part_number)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def get_for_update(self, shop_id: str, part_number: str) -> InventoryRecord | None:
        model = self._session.execute(
            self._select(shop_id, part_number)
            .with_for_update()  # Row-level lock
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def save(self, record: InventoryRecord) -> None:
        model = self._session.execute(
            self._select(record.shop_id, record.part_number)
        ).scalar_one_or_none()
        if model is None:
            self._session.add(InventoryRecordModel.from_dto(record))
        else:
            model.apply_dto(record)
        self._session.flush()
