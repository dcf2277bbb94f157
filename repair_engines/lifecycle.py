"""
Job Lifecycle Engine (``repair_engines.lifecycle``).

Responsibility
--------------
The job lifecycle state machine: the transition table (``JOB_WORKFLOW``)
and a pure ``transition()`` function that validates an event against the
table and returns the new job state plus a list of effect descriptors.
The engine never touches the ledger, the task queue or the database; the
workflow service executes the effects.

Architecture position
---------------------
**Engines layer** -- pure computation, zero I/O. ``now`` is passed in by
the caller.

Invariants enforced
-------------------
* No transition leaves ``finalized``.
* An event outside the table raises ``InvalidTransitionError`` and produces
  no new state.
* In simplified mode only ``finalize`` is accepted; other lifecycle states
  are inferred from job item data instead.
* ``deny_repair`` sets approval to deferred before the status recompute.

Failure modes
-------------
* ``InvalidTransitionError`` -- unknown event, event not allowed from the
  current state, or event not accepted in simplified mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from repair_engines.status import customer_status_for
from repair_engines.tracer import traced_engine
from repair_kernel.domain.job import (
    ApprovalStatus,
    ExplicitState,
    InferredState,
    Job,
    JobItemState,
    JobState,
    LifecycleState,
    WorkflowMode,
)
from repair_kernel.domain.notification import NotificationKind
from repair_kernel.domain.workflow import Transition, Workflow
from repair_kernel.exceptions import InvalidTransitionError
from repair_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from repair_config.schema import ShopConfig

logger = get_logger("engines.lifecycle")


class JobEvent(Enum):
    START_DIAGNOSTIC = "start_diagnostic"
    END_DIAGNOSTIC = "end_diagnostic"
    ORDER_PARTS = "order_parts"
    DELAY_PARTS = "delay_parts"
    RECEIVE_PARTS = "receive_parts"
    START_REPAIR = "start_repair"
    COMPLETE_REPAIR = "complete_repair"
    FINALIZE = "finalize"
    DENY_REPAIR = "deny_repair"


# -----------------------------------------------------------------------------
# Transition table
# -----------------------------------------------------------------------------

_S = ExplicitState

_PARTS_SOURCES = (
    _S.TECHNICIAN_PERFORMING_DIAGNOSTIC,
    _S.DIAGNOSTIC_COMPLETE,
    _S.REPAIR_COMPLETED,
    _S.REPAIR_DENIED,
)

_WORK_STATES = (
    _S.TECHNICIAN_PERFORMING_DIAGNOSTIC,
    _S.DIAGNOSTIC_COMPLETE,
    _S.PARTS_ORDERED,
    _S.PARTS_DELAYED,
    _S.PARTS_DELIVERED,
    _S.REPAIR_IN_PROGRESS,
)

_TABLE: tuple[tuple[JobEvent, tuple[ExplicitState, ...], ExplicitState], ...] = (
    (
        JobEvent.START_DIAGNOSTIC,
        (_S.AWAITING_DIAGNOSTIC, _S.REPAIR_DENIED, _S.REPAIR_COMPLETED),
        _S.TECHNICIAN_PERFORMING_DIAGNOSTIC,
    ),
    (
        JobEvent.END_DIAGNOSTIC,
        (
            _S.TECHNICIAN_PERFORMING_DIAGNOSTIC,
            _S.AWAITING_DIAGNOSTIC,
            _S.REPAIR_COMPLETED,
            _S.REPAIR_DENIED,
        ),
        _S.DIAGNOSTIC_COMPLETE,
    ),
    (JobEvent.ORDER_PARTS, _PARTS_SOURCES, _S.PARTS_ORDERED),
    (JobEvent.DELAY_PARTS, _PARTS_SOURCES + (_S.PARTS_ORDERED,), _S.PARTS_DELAYED),
    (
        JobEvent.RECEIVE_PARTS,
        _PARTS_SOURCES + (_S.PARTS_ORDERED, _S.PARTS_DELAYED),
        _S.PARTS_DELIVERED,
    ),
    (
        JobEvent.START_REPAIR,
        _PARTS_SOURCES + (_S.PARTS_ORDERED, _S.PARTS_DELAYED, _S.PARTS_DELIVERED),
        _S.REPAIR_IN_PROGRESS,
    ),
    (JobEvent.COMPLETE_REPAIR, _WORK_STATES + (_S.REPAIR_DENIED,), _S.REPAIR_COMPLETED),
    (
        JobEvent.FINALIZE,
        tuple(s for s in ExplicitState if s is not _S.FINALIZED),
        _S.FINALIZED,
    ),
    (JobEvent.DENY_REPAIR, _WORK_STATES, _S.REPAIR_DENIED),
)

JOB_WORKFLOW = Workflow(
    name="job_lifecycle",
    description="Repair order lifecycle from diagnosis to finalization",
    initial_state=_S.AWAITING_DIAGNOSTIC.value,
    states=tuple(s.value for s in ExplicitState),
    transitions=tuple(
        Transition(from_state=source.value, to_state=target.value, action=event.value)
        for event, sources, target in _TABLE
        for source in sources
    ),
    terminal_states=(_S.FINALIZED.value,),
)

SIMPLIFIED_EVENTS = frozenset({JobEvent.FINALIZE})

_EVENT_NOTIFICATIONS: dict[JobEvent, NotificationKind] = {
    JobEvent.END_DIAGNOSTIC: NotificationKind.DIAGNOSTIC_COMPLETE,
    JobEvent.ORDER_PARTS: NotificationKind.PARTS_ORDERED,
    JobEvent.DELAY_PARTS: NotificationKind.PARTS_DELAYED,
    JobEvent.RECEIVE_PARTS: NotificationKind.PARTS_DELIVERED,
    JobEvent.START_REPAIR: NotificationKind.REPAIR_IN_PROGRESS,
}

_WORK_STARTED_STATES = frozenset({"repair_in_progress", "repair_completed", "finalized"})
_WORK_COMPLETED_STATES = frozenset({"repair_completed", "finalized"})


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class FinalizeJobItems:
    """Move the listed job items into the ``finalize`` state."""
    job_item_ids: tuple[UUID, ...]


@dataclass(frozen=True)
class CommitInventory:
    """Consume on-hand stock for one inventory-sourced part line."""
    job_item_id: UUID
    estimate_item_id: UUID
    part_number: str
    quantity: Decimal


@dataclass(frozen=True)
class RequestNotification:
    """Ask the dispatcher to send a notification. Fire-and-forget."""
    kind: NotificationKind


Effect = FinalizeJobItems | CommitInventory | RequestNotification


@dataclass(frozen=True)
class TransitionOutcome:
    """New job state and the effects the caller must execute."""
    event: JobEvent
    from_state: LifecycleState
    state: JobState
    effects: tuple[Effect, ...] = ()


# -----------------------------------------------------------------------------
# Transition function
# -----------------------------------------------------------------------------


def parse_event(event: JobEvent | str, current_state: LifecycleState) -> JobEvent:
    if isinstance(event, JobEvent):
        return event
    try:
        return JobEvent(event)
    except ValueError:
        raise InvalidTransitionError(
            current_state.value, str(event), reason=f"unknown event '{event}'",
        ) from None


def allowed_events(state: LifecycleState, mode: WorkflowMode) -> tuple[JobEvent, ...]:
    """Events that may fire from ``state`` in ``mode``, in table order."""
    events = [
        JobEvent(action) for action in JOB_WORKFLOW.actions
        if JOB_WORKFLOW.find(state.value, action) is not None
    ]
    if mode is WorkflowMode.SIMPLIFIED:
        events = [e for e in events if e in SIMPLIFIED_EVENTS]
    return tuple(events)


def commit_effects_for(job: Job, job_item_ids: tuple[UUID, ...]) -> list[CommitInventory]:
    """Inventory commits owed by job items entering ``finalize``."""
    wanted = set(job_item_ids)
    effects: list[CommitInventory] = []
    for item in job.job_items:
        if item.id not in wanted:
            continue
        for line in item.part_lines:
            if line.from_inventory and line.part_number:
                effects.append(CommitInventory(
                    job_item_id=item.id,
                    estimate_item_id=line.id,
                    part_number=line.part_number,
                    quantity=line.quantity,
                ))
    return effects


@traced_engine("lifecycle", inputs=("now", "mode"))
def transition(
    job: Job,
    event: JobEvent | str,
    *,
    now: datetime,
    mode: WorkflowMode,
    config: ShopConfig | None = None,
) -> TransitionOutcome:
    """
    Apply ``event`` to ``job`` and return the resulting state and effects.

    The job itself is not modified.

    Raises:
        InvalidTransitionError: if the event is not allowed.
    """
    current = job.lifecycle_state
    parsed = parse_event(event, current)

    if mode is WorkflowMode.SIMPLIFIED and parsed not in SIMPLIFIED_EVENTS:
        raise InvalidTransitionError(
            current.value, parsed.value,
            reason="only finalize is accepted in simplified mode",
        )

    rule = JOB_WORKFLOW.find(current.value, parsed.value)
    if rule is None:
        raise InvalidTransitionError(current.value, parsed.value)

    target: LifecycleState
    if mode is WorkflowMode.SIMPLIFIED:
        target = InferredState(rule.to_state)
    else:
        target = ExplicitState(rule.to_state)

    approval_status = job.approval_status
    if parsed is JobEvent.DENY_REPAIR:
        approval_status = ApprovalStatus.DEFERRED

    customer_status = customer_status_for(
        target,
        approval_status=approval_status,
        profit_center_name=job.profit_center_name,
        state_closed=job.state_closed,
        prior=job.customer_status,
    )

    state = job.snapshot_state().evolve(
        lifecycle_state=target,
        customer_status=customer_status,
        approval_status=approval_status,
        state_changed_at=now,
    )
    if target.value in _WORK_STARTED_STATES and state.work_started_at is None:
        state = state.evolve(work_started_at=now)
    if target.value in _WORK_COMPLETED_STATES and state.work_completed_at is None:
        state = state.evolve(work_completed_at=now)

    effects: list[Effect] = []
    if parsed in _EVENT_NOTIFICATIONS:
        effects.append(RequestNotification(_EVENT_NOTIFICATIONS[parsed]))

    if parsed is JobEvent.FINALIZE:
        state = state.evolve(finalized_at=now)
        entering = tuple(
            item.id for item in job.job_items
            if item.state not in (JobItemState.DECLINED, JobItemState.FINALIZE)
        )
        if entering:
            effects.append(FinalizeJobItems(entering))
        effects.extend(commit_effects_for(job, entering))
        effects.append(RequestNotification(NotificationKind.REPAIR_COMPLETED))
        if config is not None and config.customer_invoice_enabled:
            effects.append(RequestNotification(NotificationKind.FINALIZED_INVOICE))

    logger.info(
        "job_transition_computed",
        extra={
            "job_id": str(job.id),
            "job_event": parsed.value,
            "from_state": current.value,
            "to_state": target.value,
            "effect_count": len(effects),
        },
    )
    return TransitionOutcome(
        event=parsed,
        from_state=current,
        state=state,
        effects=tuple(effects),
    )
