"""
Inventory Ledger Service (``repair_services.inventory_ledger``).

Responsibility
--------------
Applies reservation, release and finalize-commit steps to per-shop
inventory records. The arithmetic lives in ``repair_engines.ledger``; this
service loads the record, applies the step and stores the result under a
per-part lock so concurrent edits on different jobs cannot lose updates.

Architecture
------------
Layer: **Services** -- stateful orchestration around a pure engine.

1. ``plan_reconciliation`` decides which steps a line needs.
2. ``apply_reservation`` / ``apply_commit`` compute the new record.
3. ``InventoryRepository`` loads and stores the record. SQL repositories
   take a row lock (``SELECT ... FOR UPDATE``) in ``get_for_update``.

Invariants
----------
- Each read-modify-write of one ``(shop_id, part_number)`` record is
  serialized by one of a fixed pool of striped locks chosen by that pair.
- A missing record is a silent ``MISS``: nothing changes and no error is
  raised.
- Overcommit is allowed. A negative ``available_quantity`` is stored and a
  ``QuantityConflictError`` is logged as a warning, never raised.

Failure Modes
-------------
- Repository errors propagate unchanged. The ledger never swallows them.

Usage::

    ledger = InventoryLedgerService(inventory_repository)
    adjustment = ledger.reserve_or_release(
        "BRK-001", "shop-1", previous_quantity=Decimal("0"), new_quantity=Decimal("2"),
    )
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from repair_engines.ledger import (
    LedgerAdjustment,
    LedgerOutcome,
    apply_commit,
    apply_reservation,
    out_of_stock,
    plan_reconciliation,
    plan_release,
    target_quantity,
)
from repair_kernel.domain.job import EstimateItem, Job, JobItem
from repair_kernel.exceptions import LedgerMissError, QuantityConflictError
from repair_kernel.logging_config import get_logger
from repair_services.ports import InventoryRepository

logger = get_logger("services.inventory_ledger")

# Keys share a fixed pool of locks; a collision only serializes two parts.
LOCK_STRIPES = 64


class InventoryLedgerService:
    """
    Keeps ``available_quantity`` and on-hand ``quantity`` in step with the
    part lines of repair orders.

    Contract
    --------
    ``reconcile_item`` is idempotent: reconciling a line whose
    ``total_quantity`` already matches its target issues no ledger step.
    The caller owns the transaction; the service never commits.
    """

    def __init__(self, inventory: InventoryRepository):
        self._inventory = inventory
        self._locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    @staticmethod
    def stripe_for(shop_id: str, part_number: str) -> int:
        return hash((shop_id, part_number)) % LOCK_STRIPES

    @contextmanager
    def _locked(self, shop_id: str, part_number: str) -> Iterator[None]:
        with self._locks[self.stripe_for(shop_id, part_number)]:
            yield

    def _report(self, adjustment: LedgerAdjustment) -> LedgerAdjustment:
        extra = {
            "shop_id": adjustment.shop_id,
            "part_number": adjustment.part_number,
            "operation": adjustment.operation.value,
            "delta": str(adjustment.delta),
            "outcome": adjustment.outcome.value,
        }
        if adjustment.outcome is LedgerOutcome.MISS:
            miss = LedgerMissError(adjustment.shop_id, adjustment.part_number)
            logger.debug("ledger_miss", extra={**extra, "error_code": miss.code})
        elif adjustment.outcome is LedgerOutcome.OVERCOMMITTED:
            conflict = QuantityConflictError(
                adjustment.shop_id,
                adjustment.part_number,
                adjustment.available_after,
            )
            logger.warning(
                "ledger_overcommitted",
                extra={
                    **extra,
                    "error_code": conflict.code,
                    "available_quantity": str(adjustment.available_after),
                    "quantity": str(adjustment.quantity_after),
                },
            )
        else:
            logger.info("ledger_adjusted", extra=extra)
        return adjustment

    # =========================================================================
    # Ledger operations
    # =========================================================================

    def reserve_or_release(
        self,
        part_number: str,
        shop_id: str,
        previous_quantity: Decimal,
        new_quantity: Decimal,
        *,
        estimate_item_id: UUID | None = None,
    ) -> LedgerAdjustment:
        """
        Move ``available_quantity`` by ``previous_quantity - new_quantity``.

        A negative delta reserves stock, a positive one releases it.
        """
        with self._locked(shop_id, part_number):
            record = self._inventory.get_for_update(shop_id, part_number)
            updated, adjustment = apply_reservation(
                record,
                shop_id=shop_id,
                part_number=part_number,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
            if updated is not None:
                self._inventory.save(updated)
        if estimate_item_id is not None:
            adjustment = _with_line(adjustment, estimate_item_id)
        return self._report(adjustment)

    def commit_on_finalize(
        self,
        part_number: str,
        shop_id: str,
        quantity: Decimal,
        *,
        estimate_item_id: UUID | None = None,
    ) -> LedgerAdjustment:
        """Consume ``quantity`` from on-hand stock when a job item finalizes."""
        with self._locked(shop_id, part_number):
            record = self._inventory.get_for_update(shop_id, part_number)
            updated, adjustment = apply_commit(
                record,
                shop_id=shop_id,
                part_number=part_number,
                quantity=quantity,
            )
            if updated is not None:
                self._inventory.save(updated)
        if estimate_item_id is not None:
            adjustment = _with_line(adjustment, estimate_item_id)
        return self._report(adjustment)

    def check_availability(
        self,
        shop_id: str,
        grouped_by_part: Mapping[str, Decimal],
    ) -> list[str]:
        """
        Part numbers in ``grouped_by_part`` that are missing or short.

        Advisory only; nothing is reserved or blocked.
        """
        records = {
            part_number: self._inventory.get(shop_id, part_number)
            for part_number in grouped_by_part
        }
        flagged = out_of_stock(grouped_by_part, records)
        if flagged:
            logger.info(
                "stock_check_flagged",
                extra={"shop_id": shop_id, "part_numbers": flagged},
            )
        return flagged

    def reconcile_item(
        self,
        job: Job,
        job_item: JobItem,
        line: EstimateItem,
    ) -> list[LedgerAdjustment]:
        """
        Bring ``line``'s reflected quantity to its current target.

        Updates ``total_quantity`` and ``reserved_part_number`` on the line
        even when the inventory record is missing.
        """
        target = target_quantity(job, job_item, line)
        plan = plan_reconciliation(target, line)
        adjustments = [
            self.reserve_or_release(
                step.part_number,
                job.shop_id,
                step.previous_quantity,
                step.new_quantity,
                estimate_item_id=line.id,
            )
            for step in plan.steps
        ]
        line.total_quantity = plan.total_quantity
        line.reserved_part_number = plan.reserved_part_number
        return adjustments

    def release_item(self, shop_id: str, line: EstimateItem) -> list[LedgerAdjustment]:
        """Give back everything ``line`` has reflected before it is deleted."""
        plan = plan_release(line)
        adjustments = [
            self.reserve_or_release(
                step.part_number,
                shop_id,
                step.previous_quantity,
                step.new_quantity,
                estimate_item_id=line.id,
            )
            for step in plan.steps
        ]
        line.total_quantity = plan.total_quantity
        line.reserved_part_number = plan.reserved_part_number
        return adjustments


def _with_line(adjustment: LedgerAdjustment, estimate_item_id: UUID) -> LedgerAdjustment:
    return replace(adjustment, estimate_item_id=estimate_item_id)
