"""
Status Projection Engine (``repair_engines.status``).

Responsibility
--------------
Derives the customer-facing status code of a Job from its lifecycle state,
and, in simplified-flow mode, infers the lifecycle state itself from the
states of the job items.

Two derivations exist and stay distinct:

* ``legacy_status`` -- explicit mode. A priority table over the explicitly
  transitioned lifecycle state, then the approval status, then the profit
  center.
* ``simplified_status`` -- simplified mode. A table over the inferred state
  with its own fallbacks; approved/mixed keeps the prior code.

``customer_status_for`` dispatches on the state variant
(``ExplicitState`` or ``InferredState``).

Architecture position
---------------------
**Engines layer** -- pure computation, zero I/O. The mode is always an
explicit argument.

Invariants enforced
-------------------
* ``recompute_status`` is idempotent: applying its snapshot to the job and
  recomputing yields the same snapshot.
* A finalized job stays finalized under inference.
"""

from __future__ import annotations

from dataclasses import dataclass

from repair_engines.tracer import traced_engine
from repair_kernel.domain.job import (
    ApprovalStatus,
    CustomerStatus,
    ExplicitState,
    InferredState,
    ItemApproval,
    Job,
    JobItemState,
    LifecycleState,
    PartOrderStatus,
    WorkflowMode,
    is_finalized,
)
from repair_kernel.logging_config import get_logger

logger = get_logger("engines.status")

LUBE_PROFIT_CENTER = "lube"

_FINISHED_STATES = frozenset({"repair_completed", "finalized"})
_IN_PROCESS_STATES = frozenset({"repair_in_progress"})
_PARTS_STATES = frozenset({"parts_delayed", "parts_ordered"})

# Job item states that count as "done" for simplified inference.
_COMPLETED_ITEM_STATES = frozenset({
    JobItemState.DECLINED,
    JobItemState.START_REPAIR,
    JobItemState.COMPLETE_REPAIR,
})


@dataclass(frozen=True)
class StatusSnapshot:
    """
    Result of a status recompute.

    ``internal_status`` is always the legacy derivation. ``customer_status``
    is the code for the active mode and is the value written to the Job.
    """
    lifecycle_state: LifecycleState
    internal_status: CustomerStatus
    customer_status: CustomerStatus


def legacy_status(
    state: ExplicitState,
    approval_status: ApprovalStatus,
    profit_center_name: str | None = None,
) -> CustomerStatus:
    """Explicit-mode derivation. First match wins."""
    name = state.value
    if name in _FINISHED_STATES:
        return CustomerStatus.FINISHED
    if name in _IN_PROCESS_STATES:
        return CustomerStatus.IN_PROCESS
    if name in _PARTS_STATES:
        return CustomerStatus.WAITING_ON_PARTS
    if state is ExplicitState.DIAGNOSTIC_COMPLETE:
        return CustomerStatus.WAITING_ON_CUSTOMER
    if approval_status in (ApprovalStatus.APPROVED, ApprovalStatus.MIXED):
        return CustomerStatus.WAITING_ON_PARTS
    if approval_status is ApprovalStatus.DEFERRED or state is ExplicitState.REPAIR_DENIED:
        return CustomerStatus.FINISHED
    if profit_center_name == LUBE_PROFIT_CENTER:
        return CustomerStatus.IN_PROCESS
    return CustomerStatus.DIAGNOSING


def simplified_status(
    state: LifecycleState,
    approval_status: ApprovalStatus,
    *,
    state_closed: bool,
    prior: CustomerStatus,
) -> CustomerStatus:
    """
    Simplified-mode derivation.

    Reads the state by name so that explicit states left over from before a
    shop switched modes (``repair_denied``, ``diagnostic_complete``) still map.
    """
    name = state.value
    if name == "finalized":
        return CustomerStatus.CLOSED if state_closed else CustomerStatus.FINALIZED
    if name in ("repair_completed", "repair_denied"):
        return CustomerStatus.COMPLETED
    if name in _IN_PROCESS_STATES:
        return CustomerStatus.IN_PROCESS
    if name in _PARTS_STATES:
        return CustomerStatus.WAITING_ON_PARTS
    if name == "diagnostic_complete":
        return CustomerStatus.WAITING_ON_CUSTOMER
    if approval_status in (ApprovalStatus.APPROVED, ApprovalStatus.MIXED):
        return prior
    if approval_status is ApprovalStatus.DEFERRED:
        return CustomerStatus.FINISHED
    return CustomerStatus.DIAGNOSING


def customer_status_for(
    state: LifecycleState,
    *,
    approval_status: ApprovalStatus,
    profit_center_name: str | None = None,
    state_closed: bool = False,
    prior: CustomerStatus = CustomerStatus.DIAGNOSING,
) -> CustomerStatus:
    """Customer status for ``state`` using the derivation of its variant."""
    match state:
        case InferredState():
            return simplified_status(
                state,
                approval_status,
                state_closed=state_closed,
                prior=prior,
            )
        case ExplicitState():
            return legacy_status(state, approval_status, profit_center_name)
    raise TypeError(f"Unknown lifecycle state variant: {state!r}")


def infer_lifecycle_state(job: Job) -> InferredState:
    """
    Infer the lifecycle state from job item data (simplified flow).

    Rules, first match wins:
        1. already finalized -> finalized
        2. unsaved job or no job items -> awaiting_diagnostic
        3. any job item in progress -> repair_in_progress
        4. ordered, unreceived parts on a pending approved item ->
           parts_delayed when approved parts are still unordered,
           otherwise parts_ordered
        5. every job item declined, started or completed -> repair_completed
        6. otherwise repair_in_progress, unless still awaiting diagnostic
    """
    if is_finalized(job.lifecycle_state):
        return InferredState.FINALIZED
    if not job.persisted or not job.job_items:
        return InferredState.AWAITING_DIAGNOSTIC

    current = job.lifecycle_state.value

    if any(item.state is JobItemState.IN_PROGRESS for item in job.job_items):
        return InferredState.REPAIR_IN_PROGRESS

    pending_approved = [
        item for item in job.job_items
        if item.state is JobItemState.INITIAL and item.approval_type is ItemApproval.APPROVED
    ]
    has_ordered = any(
        line.order_status is PartOrderStatus.ORDERED
        for item in pending_approved
        for line in item.part_lines
    )
    if has_ordered:
        has_unordered = any(
            line.order_status is PartOrderStatus.UNORDERED
            for item in job.job_items
            if item.approval_type is ItemApproval.APPROVED
            for line in item.part_lines
        )
        return InferredState.PARTS_DELAYED if has_unordered else InferredState.PARTS_ORDERED

    if all(item.state in _COMPLETED_ITEM_STATES for item in job.job_items):
        return InferredState.REPAIR_COMPLETED

    if current == InferredState.AWAITING_DIAGNOSTIC.value:
        return InferredState.AWAITING_DIAGNOSTIC
    return InferredState.REPAIR_IN_PROGRESS


def derive_approval_status(job: Job) -> ApprovalStatus:
    """
    Summarize the customer decisions on the job items.

    All approved -> approved; all declined -> deferred; both decisions
    present -> mixed; one decision with the rest pending -> partial.
    """
    decisions = [item.approval_type for item in job.job_items]
    if not decisions:
        return ApprovalStatus.NONE
    approved = decisions.count(ItemApproval.APPROVED)
    declined = decisions.count(ItemApproval.DECLINED)
    if approved == len(decisions):
        return ApprovalStatus.APPROVED
    if declined == len(decisions):
        return ApprovalStatus.DEFERRED
    if approved and declined:
        return ApprovalStatus.MIXED
    if approved or declined:
        return ApprovalStatus.PARTIAL
    return ApprovalStatus.NONE


def _as_explicit(state: LifecycleState) -> ExplicitState:
    if isinstance(state, InferredState):
        return state.as_explicit()
    return state


@traced_engine("status", inputs=("mode",))
def recompute_status(job: Job, *, mode: WorkflowMode) -> StatusSnapshot:
    """
    Recompute lifecycle state (simplified mode only) and status codes.

    Side-effect free: the caller writes ``lifecycle_state`` and
    ``customer_status`` back onto the job.
    """
    if mode is WorkflowMode.SIMPLIFIED:
        state: LifecycleState = infer_lifecycle_state(job)
    else:
        state = _as_explicit(job.lifecycle_state)

    internal = legacy_status(_as_explicit(state), job.approval_status, job.profit_center_name)
    customer = customer_status_for(
        state,
        approval_status=job.approval_status,
        profit_center_name=job.profit_center_name,
        state_closed=job.state_closed,
        prior=job.customer_status,
    )

    logger.debug(
        "status_recomputed",
        extra={
            "job_id": str(job.id),
            "mode": mode.value,
            "lifecycle_state": state.value,
            "internal_status": int(internal),
            "customer_status": int(customer),
        },
    )
    return StatusSnapshot(
        lifecycle_state=state,
        internal_status=internal,
        customer_status=customer,
    )
