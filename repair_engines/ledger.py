"""
Inventory Ledger Arithmetic (``repair_engines.ledger``).

Responsibility
--------------
Pure arithmetic of the inventory ledger: how a reservation, release or
finalize commit changes an ``InventoryRecord``, how much an estimate line
should have reflected against the ledger, and which ledger steps bring it
there. The ``InventoryLedgerService`` applies these under a per-part lock.

Architecture position
---------------------
**Engines layer** -- pure computation, zero I/O. Functions return new
records and adjustment descriptions; they never mutate their inputs.

Invariants enforced
-------------------
* Quantity conservation: a line's reflected quantity moves from
  ``total_quantity`` to its target in exactly one net step per part number,
  so ``available_quantity`` drops by exactly the surviving reflected
  quantities regardless of edit order.
* A part-number change releases the old part before reserving the new one.
* Overcommit is allowed. A negative ``available_quantity`` is reported as
  ``OVERCOMMITTED``, never refused.
* On-hand ``quantity`` after a commit is rounded to 2 decimal places.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from uuid import UUID

from repair_kernel.domain.job import EstimateItem, InventoryRecord, Job, JobItem
from repair_kernel.domain.values import round_half_up

_ZERO = Decimal("0")


class LedgerOutcome(Enum):
    APPLIED = "applied"
    MISS = "miss"
    OVERCOMMITTED = "overcommitted"


class LedgerOperation(Enum):
    RESERVE_OR_RELEASE = "reserve_or_release"
    COMMIT = "commit"


@dataclass(frozen=True)
class LedgerAdjustment:
    """What one ledger step did to one inventory record."""
    operation: LedgerOperation
    shop_id: str
    part_number: str
    delta: Decimal
    outcome: LedgerOutcome
    available_after: Decimal | None = None
    quantity_after: Decimal | None = None
    estimate_item_id: UUID | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is not LedgerOutcome.MISS


@dataclass(frozen=True)
class ReservationStep:
    """Move ``part_number``'s reflected quantity from ``previous`` to ``new``."""
    part_number: str
    previous_quantity: Decimal
    new_quantity: Decimal


@dataclass(frozen=True)
class ReconciliationPlan:
    """Ledger steps for one line and the bookkeeping to store afterwards."""
    steps: tuple[ReservationStep, ...]
    total_quantity: Decimal
    reserved_part_number: str | None


def apply_reservation(
    record: InventoryRecord | None,
    *,
    shop_id: str,
    part_number: str,
    previous_quantity: Decimal,
    new_quantity: Decimal,
) -> tuple[InventoryRecord | None, LedgerAdjustment]:
    """
    Reserve (delta < 0) or release (delta > 0) against ``available_quantity``.

    ``delta = previous_quantity - new_quantity``. Without a record the step is
    a ``MISS`` and nothing changes.
    """
    delta = previous_quantity - new_quantity
    if record is None:
        return None, LedgerAdjustment(
            operation=LedgerOperation.RESERVE_OR_RELEASE,
            shop_id=shop_id,
            part_number=part_number,
            delta=delta,
            outcome=LedgerOutcome.MISS,
        )

    available = record.available_quantity + delta
    outcome = LedgerOutcome.OVERCOMMITTED if available < _ZERO else LedgerOutcome.APPLIED
    updated = replace(record, available_quantity=available)
    return updated, LedgerAdjustment(
        operation=LedgerOperation.RESERVE_OR_RELEASE,
        shop_id=shop_id,
        part_number=part_number,
        delta=delta,
        outcome=outcome,
        available_after=available,
        quantity_after=record.quantity,
    )


def apply_commit(
    record: InventoryRecord | None,
    *,
    shop_id: str,
    part_number: str,
    quantity: Decimal,
) -> tuple[InventoryRecord | None, LedgerAdjustment]:
    """Consume ``quantity`` from on-hand stock, rounded to 2 places."""
    if record is None:
        return None, LedgerAdjustment(
            operation=LedgerOperation.COMMIT,
            shop_id=shop_id,
            part_number=part_number,
            delta=-quantity,
            outcome=LedgerOutcome.MISS,
        )

    on_hand = round_half_up(record.quantity - quantity)
    outcome = LedgerOutcome.OVERCOMMITTED if on_hand < _ZERO else LedgerOutcome.APPLIED
    updated = replace(record, quantity=on_hand)
    return updated, LedgerAdjustment(
        operation=LedgerOperation.COMMIT,
        shop_id=shop_id,
        part_number=part_number,
        delta=-quantity,
        outcome=outcome,
        available_after=record.available_quantity,
        quantity_after=on_hand,
    )


def target_quantity(job: Job, job_item: JobItem, line: EstimateItem) -> Decimal:
    """
    Quantity ``line`` should have reflected against the ledger right now.

    Estimates, declined job items and lines that are not parts with a part
    number reflect nothing.
    """
    if job.is_estimate or job_item.is_declined:
        return _ZERO
    if not line.is_part or not line.part_number:
        return _ZERO
    return line.quantity


def plan_reconciliation(target: Decimal, line: EstimateItem) -> ReconciliationPlan:
    """Steps moving ``line`` from what it has reflected to ``target``."""
    previous = line.total_quantity
    # Without a recorded part, the quantity was booked against the line's own part.
    reserved = line.reserved_part_number or line.part_number
    current = line.part_number if target != _ZERO else None
    steps: list[ReservationStep] = []

    if reserved and previous != _ZERO and reserved != line.part_number:
        # Part number changed or cleared: give back everything on the old part.
        steps.append(ReservationStep(reserved, previous, _ZERO))
        previous = _ZERO

    if current and target != previous:
        steps.append(ReservationStep(current, previous, target))
    elif not current and previous != _ZERO and reserved:
        steps.append(ReservationStep(reserved, previous, _ZERO))

    return ReconciliationPlan(
        steps=tuple(steps),
        total_quantity=target,
        reserved_part_number=current,
    )


def plan_release(line: EstimateItem) -> ReconciliationPlan:
    """Steps releasing everything ``line`` has reflected (line deletion)."""
    return plan_reconciliation(_ZERO, line)


def requested_by_part(job: Job, *, inventory_only: bool = True) -> dict[str, Decimal]:
    """Sum part quantities per part number over non-declined job items."""
    grouped: dict[str, Decimal] = {}
    for item in job.job_items:
        if item.is_declined:
            continue
        for line in item.part_lines:
            if not line.part_number:
                continue
            if inventory_only and not line.from_inventory:
                continue
            grouped[line.part_number] = grouped.get(line.part_number, _ZERO) + line.quantity
    return grouped


def out_of_stock(
    grouped_by_part: Mapping[str, Decimal],
    records: Mapping[str, InventoryRecord | None],
) -> list[str]:
    """
    Part numbers lacking stock, in request order.

    A part is flagged when it has no record, or when
    ``available_quantity + requested < requested``.
    """
    flagged: list[str] = []
    for part_number, requested in grouped_by_part.items():
        record = records.get(part_number)
        if record is None or record.available_quantity + requested < requested:
            flagged.append(part_number)
    return flagged
