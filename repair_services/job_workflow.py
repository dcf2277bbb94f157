"""
Job Workflow Service (``repair_services.job_workflow``).

Responsibility
--------------
Orchestrates every change to a repair order by composing the pure engines
(``repair_engines.lifecycle``, ``repair_engines.pricing``,
``repair_engines.status``, ``repair_engines.tax``) with the
``InventoryLedgerService`` and the notification dispatcher. This is the
layer that executes the effect descriptors the lifecycle engine returns.

Architecture
------------
Layer: **Services** -- stateful orchestration wrapper.

1. ``propose_transition`` asks ``transition()`` for the new state and
   effects, applies the state, finalizes job items, commits inventory and
   requests notifications.
2. ``apply_item_mutation`` edits job items and estimate lines, re-prices the
   touched job items, reconciles every line against the inventory ledger,
   checks stock and recomputes the status projection.
3. ``close_job`` finalizes when needed and marks the job closed.

Invariants
----------
- Copy on write: every operation works on a deep copy of the job. The
  caller's object is never modified; a failed operation returns it as is.
- A finalized job rejects item mutations (``JobFinalizedError``) and all
  transitions. Only ``close_job`` may still touch it.
- The workflow mode comes from ``ShopConfig.workflow_mode``, never from
  ambient state.
- Notifications are requested after the job is saved and never fail the
  operation.

Failure Modes
-------------
- Domain errors (``RepairKernelError`` subclasses) are returned in the
  result with ``success=False``, ``error`` set to the error code and
  ``reason`` to a readable message.
- Repository and queue errors other than notification enqueue failures
  propagate to the caller, who owns the transaction.

Usage::

    service = JobWorkflowService(
        config=ShopConfig(shop_id="shop-1"),
        ledger=InventoryLedgerService(inventory),
        inventory=inventory,
        rates=ConfiguredRateProvider([config]),
        notifier=TaskQueueNotifier(InMemoryTaskQueue(), clock),
        clock=clock,
    )
    result = service.propose_transition(job, JobEvent.START_DIAGNOSTIC)
    if result.success:
        job = result.job
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from repair_config.schema import ShopConfig
from repair_engines.ledger import LedgerAdjustment, requested_by_part
from repair_engines.lifecycle import (
    CommitInventory,
    Effect,
    FinalizeJobItems,
    JobEvent,
    RequestNotification,
    TransitionOutcome,
    commit_effects_for,
    transition,
)
from repair_engines.pricing import (
    PricedLine,
    PricingContext,
    PricingResult,
    RateProvider,
    apply_pricing,
    price_job_item,
    resolve_base_item,
)
from repair_engines.status import (
    StatusSnapshot,
    derive_approval_status,
    recompute_status,
)
from repair_engines.tax import JobTotals, compute_job_totals
from repair_kernel.domain.clock import Clock, SystemClock
from repair_kernel.domain.job import (
    EstimateItem,
    ItemApproval,
    ItemType,
    Job,
    JobItem,
    JobItemState,
    LifecycleState,
    PartOrderStatus,
)
from repair_kernel.domain.notification import NotificationKind
from repair_kernel.exceptions import (
    JobFinalizedError,
    RecordNotFoundError,
    RepairKernelError,
)
from repair_kernel.logging_config import LogContext, get_logger
from repair_services.inventory_ledger import InventoryLedgerService
from repair_services.ports import InventoryRepository, JobRepository, NotificationDispatcher

logger = get_logger("services.job_workflow")

CLOSE_EVENT = "close"


# =============================================================================
# Mutation requests
# =============================================================================


@dataclass(frozen=True)
class BaseReference:
    """Identifies the line a fee is computed from, by what the user sees."""
    description: str | None
    item_type: ItemType
    quantity: Decimal


@dataclass(frozen=True)
class EstimateItemSpec:
    """A new estimate line as proposed by the caller."""
    item_type: ItemType
    description: str | None = None
    quantity: Decimal = Decimal("0")
    cost: Decimal | None = None
    price_per_unit: Decimal | None = None
    part_number: str | None = None
    saved_through: str | None = None
    additional: bool = False
    package_add: Decimal = Decimal("0")
    fee_amount: Decimal | None = None
    fee_percentage: Decimal | None = None
    base: BaseReference | None = None
    labor_type: str | None = None
    labor_time: Decimal | None = None
    tax_category: str | None = None
    order_status: PartOrderStatus = PartOrderStatus.UNORDERED

    def build(self, job_item: JobItem) -> EstimateItem:
        base_item_id = None
        if self.base is not None:
            base_item_id = resolve_base_item(
                self.base.description,
                self.base.item_type,
                self.base.quantity,
                job_item.estimate_items,
            )
        return EstimateItem(
            item_type=self.item_type,
            description=self.description,
            quantity=self.quantity,
            cost=self.cost,
            price_per_unit=self.price_per_unit,
            part_number=self.part_number,
            saved_through=self.saved_through,
            additional=self.additional,
            package_add=self.package_add,
            fee_amount=self.fee_amount,
            fee_percentage=self.fee_percentage,
            base_item_id=base_item_id,
            labor_type=self.labor_type,
            labor_time=self.labor_time,
            tax_category=self.tax_category,
            order_status=self.order_status,
            job_item_id=job_item.id,
        )


@dataclass(frozen=True)
class JobItemSpec:
    """A new job item with its initial estimate lines."""
    description: str | None = None
    package_price: Decimal | None = None
    labor_price: Decimal | None = None
    approval_type: ItemApproval = ItemApproval.PENDING
    estimate_items: tuple[EstimateItemSpec, ...] = ()


@dataclass(frozen=True)
class NewEstimateItems:
    """Lines to append to an existing job item."""
    job_item_id: UUID
    estimate_items: tuple[EstimateItemSpec, ...]


@dataclass(frozen=True)
class EstimateItemUpdate:
    """Edit of an existing line. ``None`` leaves a field unchanged."""
    estimate_item_id: UUID
    quantity: Decimal | None = None
    part_number: str | None = None
    clear_part_number: bool = False
    price_per_unit: Decimal | None = None
    cost: Decimal | None = None


@dataclass(frozen=True)
class ItemStateChange:
    job_item_id: UUID
    state: JobItemState


@dataclass(frozen=True)
class OrderStatusChange:
    estimate_item_id: UUID
    order_status: PartOrderStatus


@dataclass(frozen=True)
class ItemChanges:
    """
    One batch of item edits, applied in field order: removals, additions,
    updates, approvals and declines, state changes, then order status.
    """
    remove_job_items: tuple[UUID, ...] = ()
    remove_estimate_items: tuple[UUID, ...] = ()
    add_job_items: tuple[JobItemSpec, ...] = ()
    add_estimate_items: tuple[NewEstimateItems, ...] = ()
    update_estimate_items: tuple[EstimateItemUpdate, ...] = ()
    approve: tuple[UUID, ...] = ()
    decline: tuple[UUID, ...] = ()
    set_states: tuple[ItemStateChange, ...] = ()
    order_status: tuple[OrderStatusChange, ...] = ()

    @property
    def touches_approval(self) -> bool:
        return bool(self.approve or self.decline or self.add_job_items or self.remove_job_items)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a lifecycle transition or a close."""
    success: bool
    job: Job
    event: str
    from_state: LifecycleState
    status: StatusSnapshot | None = None
    ledger_adjustments: tuple[LedgerAdjustment, ...] = ()
    notifications: tuple[NotificationKind, ...] = ()
    error: str | None = None
    reason: str | None = None

    @property
    def to_state(self) -> LifecycleState:
        return self.job.lifecycle_state


@dataclass(frozen=True)
class ItemMutationResult:
    """Outcome of an item mutation or an estimate conversion."""
    success: bool
    job: Job
    pricing: tuple[PricingResult, ...] = ()
    ledger_adjustments: tuple[LedgerAdjustment, ...] = ()
    totals: JobTotals | None = None
    status: StatusSnapshot | None = None
    stock_warnings: tuple[str, ...] = ()
    error: str | None = None
    reason: str | None = None

    @property
    def review_flags(self) -> tuple[PricedLine, ...]:
        return tuple(line for result in self.pricing for line in result.review_flags)


@dataclass
class _EffectReport:
    adjustments: list[LedgerAdjustment] = field(default_factory=list)
    notifications: list[NotificationKind] = field(default_factory=list)


def _reason(exc: RepairKernelError) -> str:
    return getattr(exc, "reason", None) or str(exc)


# =============================================================================
# Service
# =============================================================================


class JobWorkflowService:
    """
    Entry point for every state change on a repair order.

    Contract
    --------
    Every public operation accepts a ``Job`` and returns a typed result
    holding an updated copy. Domain errors never escape; they come back in
    the result.

    Guarantees
    ----------
    - Invalid transitions leave ``lifecycle_state`` and ``state_changed_at``
      unchanged.
    - Inventory reservations follow the line quantities exactly. Each line
      is reconciled against ``total_quantity`` after every mutation.
    - On-hand stock is committed once per part line, when its job item moves
      into ``finalize``.

    Non-goals
    ---------
    - No locking of jobs. One writer per job is assumed.
    - Notification delivery is the task queue's business.

    When a ``JobRepository`` is given the updated job is saved before
    notifications are requested, and the saved copy is returned.
    """

    def __init__(
        self,
        config: ShopConfig,
        ledger: InventoryLedgerService,
        inventory: InventoryRepository,
        rates: RateProvider,
        notifier: NotificationDispatcher,
        clock: Clock | None = None,
        jobs: JobRepository | None = None,
    ):
        self._config = config
        self._ledger = ledger
        self._inventory = inventory
        self._rates = rates
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._jobs = jobs

    @property
    def config(self) -> ShopConfig:
        return self._config

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def propose_transition(self, job: Job, event: JobEvent | str) -> TransitionResult:
        """
        Fire ``event`` on ``job``.

        On success the result holds the transitioned copy with its effects
        applied. On failure it holds ``job`` itself, untouched.
        """
        event_name = event.value if isinstance(event, JobEvent) else str(event)
        with LogContext.for_job(job, event_name):
            try:
                updated = deepcopy(job)
                report = _EffectReport()
                outcome = self._fire(updated, event, report)
                snapshot = self._refresh_status(updated)
                stored = self._save(updated)
                self._notify(stored, report.notifications)
            except RepairKernelError as exc:
                logger.warning(
                    "job_transition_rejected",
                    extra={
                        "from_state": job.lifecycle_state.value,
                        "error_code": exc.code,
                        "reason": _reason(exc),
                    },
                )
                return TransitionResult(
                    success=False,
                    job=job,
                    event=event_name,
                    from_state=job.lifecycle_state,
                    error=exc.code,
                    reason=_reason(exc),
                )

            logger.info(
                "job_transition_applied",
                extra={
                    "from_state": outcome.from_state.value,
                    "to_state": stored.lifecycle_state.value,
                    "customer_status": int(stored.customer_status),
                    "ledger_adjustment_count": len(report.adjustments),
                },
            )
            return TransitionResult(
                success=True,
                job=stored,
                event=outcome.event.value,
                from_state=outcome.from_state,
                status=snapshot,
                ledger_adjustments=tuple(report.adjustments),
                notifications=tuple(report.notifications),
            )

    def close_job(self, job: Job) -> TransitionResult:
        """
        Finalize ``job`` if it is not finalized yet, then mark it closed.

        Closing an already closed job is a no-op that succeeds.
        """
        with LogContext.for_job(job, CLOSE_EVENT):
            if job.state_closed:
                return TransitionResult(
                    success=True,
                    job=job,
                    event=CLOSE_EVENT,
                    from_state=job.lifecycle_state,
                    status=self.recompute_status(job),
                )
            try:
                updated = deepcopy(job)
                report = _EffectReport()
                if not updated.is_finalized:
                    self._fire(updated, JobEvent.FINALIZE, report)
                updated.state_closed = True
                updated.closed_at = self._clock.now()
                report.notifications.append(NotificationKind.JOB_CLOSED)
                snapshot = self._refresh_status(updated)
                stored = self._save(updated)
                self._notify(stored, report.notifications)
            except RepairKernelError as exc:
                logger.warning(
                    "job_close_rejected",
                    extra={
                        "from_state": job.lifecycle_state.value,
                        "error_code": exc.code,
                        "reason": _reason(exc),
                    },
                )
                return TransitionResult(
                    success=False,
                    job=job,
                    event=CLOSE_EVENT,
                    from_state=job.lifecycle_state,
                    error=exc.code,
                    reason=_reason(exc),
                )

            logger.info(
                "job_closed",
                extra={
                    "from_state": job.lifecycle_state.value,
                    "customer_status": int(stored.customer_status),
                },
            )
            return TransitionResult(
                success=True,
                job=stored,
                event=CLOSE_EVENT,
                from_state=job.lifecycle_state,
                status=snapshot,
                ledger_adjustments=tuple(report.adjustments),
                notifications=tuple(report.notifications),
            )

    # =========================================================================
    # Items
    # =========================================================================

    def apply_item_mutation(self, job: Job, changes: ItemChanges) -> ItemMutationResult:
        """Apply ``changes`` to the job items of ``job``."""
        return self._mutate(job, changes, operation="apply_item_mutation")

    def convert_to_repair_order(self, job: Job) -> ItemMutationResult:
        """
        Turn an estimate into a repair order.

        Reservations start here: every part line with a part number is
        reconciled against the ledger.
        """
        return self._mutate(job, ItemChanges(), operation="convert_to_repair_order", convert=True)

    def recompute_status(self, job: Job) -> StatusSnapshot:
        """Status projection for ``job`` in the shop's workflow mode. Pure."""
        return recompute_status(job, mode=self._config.workflow_mode)

    def check_stock(self, job: Job) -> list[str]:
        """Inventory-sourced part numbers that are out of stock. Advisory."""
        return self._ledger.check_availability(job.shop_id, requested_by_part(job))

    # =========================================================================
    # Internals
    # =========================================================================

    def _fire(
        self, job: Job, event: JobEvent | str, report: _EffectReport,
    ) -> TransitionOutcome:
        outcome = transition(
            job,
            event,
            now=self._clock.now(),
            mode=self._config.workflow_mode,
            config=self._config,
        )
        job.apply_state(outcome.state)
        self._execute_effects(job, outcome.effects, report)
        return outcome

    def _execute_effects(
        self,
        job: Job,
        effects: tuple[Effect, ...],
        report: _EffectReport,
    ) -> None:
        for effect in effects:
            match effect:
                case FinalizeJobItems(job_item_ids=ids):
                    for item in job.job_items:
                        if item.id in ids:
                            item.state = JobItemState.FINALIZE
                case CommitInventory():
                    report.adjustments.append(self._ledger.commit_on_finalize(
                        effect.part_number,
                        job.shop_id,
                        effect.quantity,
                        estimate_item_id=effect.estimate_item_id,
                    ))
                case RequestNotification(kind=kind):
                    report.notifications.append(kind)

    def _refresh_status(self, job: Job) -> StatusSnapshot:
        snapshot = self.recompute_status(job)
        if snapshot.lifecycle_state.value != job.lifecycle_state.value:
            job.state_changed_at = self._clock.now()
        job.lifecycle_state = snapshot.lifecycle_state
        job.customer_status = snapshot.customer_status
        return snapshot

    def _save(self, job: Job) -> Job:
        if self._jobs is None:
            return job
        return self._jobs.save(job)

    def _notify(self, job: Job, kinds: list[NotificationKind]) -> None:
        for kind in kinds:
            self._notifier.notify(kind, job)

    def _mutate(
        self,
        job: Job,
        changes: ItemChanges,
        *,
        operation: str,
        convert: bool = False,
    ) -> ItemMutationResult:
        with LogContext.for_job(job, operation):
            try:
                if job.is_finalized:
                    raise JobFinalizedError(str(job.id), operation)
                _validate(job, changes)

                updated = deepcopy(job)
                report = _EffectReport()
                if convert:
                    updated.is_estimate = False
                touched = self._apply_changes(updated, changes, report)

                pricing = []
                for item in updated.job_items:
                    if item.id in touched:
                        result = price_job_item(item, ctx=self._pricing_context(updated, item))
                        apply_pricing(item, result)
                        pricing.append(result)

                for item, line in updated.all_estimate_items():
                    report.adjustments.extend(self._ledger.reconcile_item(updated, item, line))

                if changes.touches_approval:
                    updated.approval_status = derive_approval_status(updated)

                warnings = self.check_stock(updated)
                snapshot = self._refresh_status(updated)
                totals = compute_job_totals(
                    updated,
                    rates=self._config.tax_rates,
                    currency=self._config.currency,
                )
                stored = self._save(updated)
            except RepairKernelError as exc:
                logger.warning(
                    "item_mutation_rejected",
                    extra={
                        "operation": operation,
                        "error_code": exc.code,
                        "reason": _reason(exc),
                    },
                )
                return ItemMutationResult(
                    success=False,
                    job=job,
                    error=exc.code,
                    reason=_reason(exc),
                )

            logger.info(
                "item_mutation_applied",
                extra={
                    "operation": operation,
                    "repriced_job_items": len(pricing),
                    "ledger_adjustment_count": len(report.adjustments),
                    "stock_warning_count": len(warnings),
                    "total": str(totals.total.amount),
                },
            )
            return ItemMutationResult(
                success=True,
                job=stored,
                pricing=tuple(pricing),
                ledger_adjustments=tuple(report.adjustments),
                totals=totals,
                status=snapshot,
                stock_warnings=tuple(warnings),
            )

    def _apply_changes(
        self,
        job: Job,
        changes: ItemChanges,
        report: _EffectReport,
    ) -> set[UUID]:
        """Apply ``changes`` in place and return the ids of job items to re-price."""
        touched: set[UUID] = set()

        for job_item_id in changes.remove_job_items:
            item = job.find_job_item(job_item_id)
            for line in item.estimate_items:
                report.adjustments.extend(self._ledger.release_item(job.shop_id, line))
            job.job_items.remove(item)

        for estimate_item_id in changes.remove_estimate_items:
            located = job.locate_estimate_item(estimate_item_id)
            if located is None:
                continue  # went with its job item
            item, line = located
            report.adjustments.extend(self._ledger.release_item(job.shop_id, line))
            item.estimate_items.remove(line)
            touched.add(item.id)

        for spec in changes.add_job_items:
            item = JobItem(
                description=spec.description,
                package_price=spec.package_price,
                labor_price=spec.labor_price,
                approval_type=spec.approval_type,
                job_id=job.id,
            )
            for line_spec in spec.estimate_items:
                item.estimate_items.append(line_spec.build(item))
            job.job_items.append(item)
            touched.add(item.id)

        for addition in changes.add_estimate_items:
            item = job.find_job_item(addition.job_item_id)
            for line_spec in addition.estimate_items:
                item.estimate_items.append(line_spec.build(item))
            touched.add(item.id)

        for update in changes.update_estimate_items:
            item, line = job.locate_estimate_item(update.estimate_item_id)
            if update.quantity is not None:
                line.quantity = update.quantity
            if update.clear_part_number:
                line.part_number = None
            elif update.part_number is not None:
                line.part_number = update.part_number
            if update.price_per_unit is not None:
                line.price_per_unit = update.price_per_unit
            if update.cost is not None:
                line.cost = update.cost
            touched.add(item.id)

        for job_item_id in changes.approve:
            item = job.find_job_item(job_item_id)
            item.approval_type = ItemApproval.APPROVED
            if item.state is JobItemState.DECLINED:
                item.state = JobItemState.INITIAL

        for job_item_id in changes.decline:
            item = job.find_job_item(job_item_id)
            item.approval_type = ItemApproval.DECLINED
            item.state = JobItemState.DECLINED

        finalizing: list[UUID] = []
        for change in changes.set_states:
            item = job.find_job_item(change.job_item_id)
            if change.state is JobItemState.FINALIZE and item.state is not JobItemState.FINALIZE:
                finalizing.append(item.id)
            item.state = change.state
        for commit in commit_effects_for(job, tuple(finalizing)):
            self._execute_effects(job, (commit,), report)

        for change in changes.order_status:
            _, line = job.locate_estimate_item(change.estimate_item_id)
            line.order_status = change.order_status

        return touched

    def _pricing_context(self, job: Job, job_item: JobItem) -> PricingContext:
        inventory = {}
        part_numbers = {line.part_number for line in job_item.part_lines if line.part_number}
        for part_number in sorted(part_numbers):
            record = self._inventory.get(job.shop_id, part_number)
            if record is not None:
                inventory[part_number] = record
        return PricingContext(
            shop_id=job.shop_id,
            rates=self._rates,
            currency=self._config.currency,
            vehicle_id=job.vehicle_id,
            technician_hourly_rate=job.technician_hourly_rate,
            default_hourly_rate=self._config.default_hourly_rate,
            inventory=inventory,
        )


def _validate(job: Job, changes: ItemChanges) -> None:
    """
    Check every id in ``changes`` before anything is applied.

    Edits may not target a job item or line that the same batch removes.

    Raises:
        RecordNotFoundError: an id does not belong to ``job``.
    """
    removed_items = set(changes.remove_job_items)
    removed_lines = set(changes.remove_estimate_items)

    for job_item_id in changes.remove_job_items:
        item = job.find_job_item(job_item_id)
        if item is None:
            raise RecordNotFoundError("JobItem", str(job_item_id))
        removed_lines.update(line.id for line in item.estimate_items)

    for estimate_item_id in changes.remove_estimate_items:
        if job.locate_estimate_item(estimate_item_id) is None:
            raise RecordNotFoundError("EstimateItem", str(estimate_item_id))

    edited_items = [
        *(a.job_item_id for a in changes.add_estimate_items),
        *changes.approve,
        *changes.decline,
        *(c.job_item_id for c in changes.set_states),
    ]
    for job_item_id in edited_items:
        if job_item_id in removed_items or job.find_job_item(job_item_id) is None:
            raise RecordNotFoundError("JobItem", str(job_item_id))

    edited_lines = [
        *(u.estimate_item_id for u in changes.update_estimate_items),
        *(c.estimate_item_id for c in changes.order_status),
    ]
    for estimate_item_id in edited_lines:
        if estimate_item_id in removed_lines or job.locate_estimate_item(estimate_item_id) is None:
            raise RecordNotFoundError("EstimateItem", str(estimate_item_id))
