"""
Job Domain Model (``repair_kernel.domain.job``).

Responsibility
--------------
The nouns of the repair-order workflow: the ``Job`` aggregate, its
``JobItem`` children, their priced ``EstimateItem`` lines, and the per-shop
``InventoryRecord``. Also the vocabulary enums: lifecycle states (explicit and
inferred variants), customer status codes, approval, item and order states.

Architecture
------------
Layer: **Kernel > Domain** -- pure data structures, zero I/O. Engines read
these objects and return new values; services mutate a private copy of the
aggregate and hand it back to the caller.

Invariants
----------
- ``EstimateItem.total_quantity`` is the quantity last reconciled against the
  inventory ledger, booked against ``reserved_part_number``.
- A Job whose ``lifecycle_state`` is finalized never changes state again.
- All quantities and money fields are ``Decimal``, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from uuid import UUID, uuid4

INVENTORY_SOURCE = "Inventory"


class ExplicitState(Enum):
    """Lifecycle states driven by explicit transition events."""
    AWAITING_DIAGNOSTIC = "awaiting_diagnostic"
    TECHNICIAN_PERFORMING_DIAGNOSTIC = "technician_performing_diagnostic"
    DIAGNOSTIC_COMPLETE = "diagnostic_complete"
    PARTS_ORDERED = "parts_ordered"
    PARTS_DELAYED = "parts_delayed"
    PARTS_DELIVERED = "parts_delivered"
    REPAIR_IN_PROGRESS = "repair_in_progress"
    REPAIR_COMPLETED = "repair_completed"
    REPAIR_DENIED = "repair_denied"
    FINALIZED = "finalized"

    @classmethod
    def parse(cls, value: str) -> ExplicitState:
        """Read a persisted state name, accepting legacy aliases."""
        return cls(LEGACY_STATE_ALIASES.get(value, value))


class InferredState(Enum):
    """Lifecycle states inferred from job item data (simplified flow)."""
    AWAITING_DIAGNOSTIC = "awaiting_diagnostic"
    PARTS_ORDERED = "parts_ordered"
    PARTS_DELAYED = "parts_delayed"
    REPAIR_IN_PROGRESS = "repair_in_progress"
    REPAIR_COMPLETED = "repair_completed"
    FINALIZED = "finalized"

    def as_explicit(self) -> ExplicitState:
        return ExplicitState(self.value)


LifecycleState = ExplicitState | InferredState

LEGACY_STATE_ALIASES: dict[str, str] = {
    "work_completed": "repair_completed",
    "work_started": "repair_in_progress",
}


def is_finalized(state: LifecycleState) -> bool:
    return state.value == ExplicitState.FINALIZED.value


class CustomerStatus(IntEnum):
    """Customer-facing status codes."""
    DIAGNOSING = 1
    WAITING_ON_CUSTOMER = 2
    WAITING_ON_PARTS = 3
    IN_PROCESS = 4
    FINISHED = 5
    APPOINTMENT = 6
    ON_HOLD = 7
    COMPLETED = 8
    FINALIZED = 9
    CLOSED = 10

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    CustomerStatus.DIAGNOSING: "Diagnosing",
    CustomerStatus.WAITING_ON_CUSTOMER: "Waiting on Customer",
    CustomerStatus.WAITING_ON_PARTS: "Waiting on Parts",
    CustomerStatus.IN_PROCESS: "In Process",
    CustomerStatus.FINISHED: "Finished",
    CustomerStatus.APPOINTMENT: "Appointment",
    CustomerStatus.ON_HOLD: "On-Hold",
    CustomerStatus.COMPLETED: "Completed",
    CustomerStatus.FINALIZED: "Finalized",
    CustomerStatus.CLOSED: "Closed",
}


class ApprovalStatus(Enum):
    """Job-level approval summary."""
    NONE = "none"
    PARTIAL = "partial"
    APPROVED = "approved"
    DEFERRED = "deferred"
    MIXED = "mixed"


class ItemApproval(Enum):
    """Customer decision on a single job item."""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class JobItemState(Enum):
    DECLINED = "declined"
    INITIAL = "initial"
    START_REPAIR = "start_repair"
    IN_PROGRESS = "in_progress"  # being worked; start_repair counts as done for inference
    COMPLETE_REPAIR = "complete_repair"
    FINALIZE = "finalize"


class ItemType(Enum):
    PART = "part"
    LABOR = "labor"
    FEES = "fees"


class PartOrderStatus(Enum):
    UNORDERED = "unordered"
    ORDERED = "ordered"
    RECEIVED = "received"


class WorkflowMode(Enum):
    """Which status derivation runs for a shop."""
    EXPLICIT = "explicit"
    SIMPLIFIED = "simplified"


@dataclass
class EstimateItem:
    """
    One priced line (part, labor or fee) under a job item.

    ``price_per_unit`` is an entered override and is never written by the
    pricing engine. ``unit_price`` and ``line_total`` are the priced result.
    """
    item_type: ItemType
    description: str | None = None
    quantity: Decimal = Decimal("0")
    cost: Decimal | None = None
    price_per_unit: Decimal | None = None
    unit_price: Decimal = Decimal("0")
    line_total: Decimal = Decimal("0")
    part_number: str | None = None
    saved_through: str | None = None
    total_quantity: Decimal = Decimal("0")
    reserved_part_number: str | None = None
    additional: bool = False
    package_add: Decimal = Decimal("0")
    fee_amount: Decimal | None = None
    fee_percentage: Decimal | None = None
    base_item_id: UUID | None = None
    labor_type: str | None = None
    labor_time: Decimal | None = None
    tax_category: str | None = None
    order_status: PartOrderStatus = PartOrderStatus.UNORDERED
    needs_review: bool = False
    review_reason: str | None = None
    job_item_id: UUID | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_part(self) -> bool:
        return self.item_type is ItemType.PART

    @property
    def is_labor(self) -> bool:
        return self.item_type is ItemType.LABOR

    @property
    def is_fee(self) -> bool:
        return self.item_type is ItemType.FEES

    @property
    def from_inventory(self) -> bool:
        return self.saved_through == INVENTORY_SOURCE


@dataclass
class JobItem:
    """A unit of work (e.g. "replace brake pads") with its estimate lines."""
    description: str | None = None
    state: JobItemState = JobItemState.INITIAL
    approval_type: ItemApproval = ItemApproval.PENDING
    package_price: Decimal | None = None
    labor_price: Decimal | None = None
    estimate_items: list[EstimateItem] = field(default_factory=list)
    job_id: UUID | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_declined(self) -> bool:
        return self.state is JobItemState.DECLINED

    @property
    def part_lines(self) -> list[EstimateItem]:
        return [e for e in self.estimate_items if e.is_part]

    @property
    def labor_lines(self) -> list[EstimateItem]:
        return [e for e in self.estimate_items if e.is_labor]

    def find_estimate_item(self, estimate_item_id: UUID) -> EstimateItem | None:
        for line in self.estimate_items:
            if line.id == estimate_item_id:
                return line
        return None


@dataclass
class Job:
    """The repair order aggregate."""
    shop_id: str
    lifecycle_state: LifecycleState = ExplicitState.AWAITING_DIAGNOSTIC
    customer_status: CustomerStatus = CustomerStatus.DIAGNOSING
    approval_status: ApprovalStatus = ApprovalStatus.NONE
    is_estimate: bool = True
    state_closed: bool = False
    closed_at: datetime | None = None
    finalized_at: datetime | None = None
    state_changed_at: datetime | None = None
    work_started_at: datetime | None = None
    work_completed_at: datetime | None = None
    profit_center_name: str | None = None
    technician_hourly_rate: Decimal | None = None
    vehicle_id: str | None = None
    tax_exempt: bool = False
    persisted: bool = False
    job_items: list[JobItem] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)

    @property
    def is_finalized(self) -> bool:
        return is_finalized(self.lifecycle_state)

    def find_job_item(self, job_item_id: UUID) -> JobItem | None:
        for item in self.job_items:
            if item.id == job_item_id:
                return item
        return None

    def locate_estimate_item(
        self, estimate_item_id: UUID,
    ) -> tuple[JobItem, EstimateItem] | None:
        for item in self.job_items:
            line = item.find_estimate_item(estimate_item_id)
            if line is not None:
                return item, line
        return None

    def all_estimate_items(self) -> list[tuple[JobItem, EstimateItem]]:
        return [(item, line) for item in self.job_items for line in item.estimate_items]

    def snapshot_state(self) -> JobState:
        return JobState(
            lifecycle_state=self.lifecycle_state,
            customer_status=self.customer_status,
            approval_status=self.approval_status,
            state_changed_at=self.state_changed_at,
            finalized_at=self.finalized_at,
            work_started_at=self.work_started_at,
            work_completed_at=self.work_completed_at,
        )

    def apply_state(self, state: JobState) -> None:
        self.lifecycle_state = state.lifecycle_state
        self.customer_status = state.customer_status
        self.approval_status = state.approval_status
        self.state_changed_at = state.state_changed_at
        self.finalized_at = state.finalized_at
        self.work_started_at = state.work_started_at
        self.work_completed_at = state.work_completed_at


@dataclass(frozen=True)
class JobState:
    """The state-machine-owned fields of a Job, as returned by the engine."""
    lifecycle_state: LifecycleState
    customer_status: CustomerStatus
    approval_status: ApprovalStatus
    state_changed_at: datetime | None = None
    finalized_at: datetime | None = None
    work_started_at: datetime | None = None
    work_completed_at: datetime | None = None

    def evolve(self, **changes) -> JobState:
        return replace(self, **changes)


@dataclass
class InventoryRecord:
    """Stock for one part number in one shop."""
    shop_id: str
    part_number: str
    available_quantity: Decimal = Decimal("0")
    quantity: Decimal = Decimal("0")
    cost: Decimal | None = None
    part_price: Decimal | None = None
    package_add: Decimal = Decimal("0")
    core_price: Decimal | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def key(self) -> tuple[str, str]:
        return (self.shop_id, self.part_number)
