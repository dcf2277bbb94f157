"""
Tests for the status projection engine.

Covers:
- Legacy (explicit-mode) status table, first match wins
- Simplified status table and its fallbacks
- Lifecycle inference from job item data
- Approval summary
- Idempotent recompute
"""

import pytest

from repair_engines.status import (
    customer_status_for,
    derive_approval_status,
    infer_lifecycle_state,
    legacy_status,
    recompute_status,
    simplified_status,
)
from repair_kernel.domain.job import (
    ApprovalStatus,
    CustomerStatus,
    ExplicitState,
    InferredState,
    ItemApproval,
    JobItemState,
    PartOrderStatus,
    WorkflowMode,
)
from tests.builders import job_item, make_job, part_line

S = ExplicitState
A = ApprovalStatus


class TestLegacyStatus:
    @pytest.mark.parametrize(
        "state,approval,profit_center,expected",
        [
            (S.REPAIR_COMPLETED, A.NONE, None, CustomerStatus.FINISHED),
            (S.FINALIZED, A.APPROVED, None, CustomerStatus.FINISHED),
            (S.REPAIR_IN_PROGRESS, A.NONE, None, CustomerStatus.IN_PROCESS),
            (S.PARTS_DELAYED, A.NONE, None, CustomerStatus.WAITING_ON_PARTS),
            (S.PARTS_ORDERED, A.DEFERRED, None, CustomerStatus.WAITING_ON_PARTS),
            (S.DIAGNOSTIC_COMPLETE, A.APPROVED, None, CustomerStatus.WAITING_ON_CUSTOMER),
            (S.PARTS_DELIVERED, A.APPROVED, None, CustomerStatus.WAITING_ON_PARTS),
            (S.AWAITING_DIAGNOSTIC, A.MIXED, None, CustomerStatus.WAITING_ON_PARTS),
            (S.AWAITING_DIAGNOSTIC, A.DEFERRED, None, CustomerStatus.FINISHED),
            (S.REPAIR_DENIED, A.NONE, None, CustomerStatus.FINISHED),
            (S.AWAITING_DIAGNOSTIC, A.NONE, "lube", CustomerStatus.IN_PROCESS),
            (S.TECHNICIAN_PERFORMING_DIAGNOSTIC, A.PARTIAL, None, CustomerStatus.DIAGNOSING),
        ],
    )
    def test_table(self, state, approval, profit_center, expected):
        assert legacy_status(state, approval, profit_center) is expected

    def test_legacy_names_parse(self):
        assert ExplicitState.parse("work_completed") is S.REPAIR_COMPLETED
        assert ExplicitState.parse("work_started") is S.REPAIR_IN_PROGRESS
        assert legacy_status(ExplicitState.parse("work_started"), A.NONE) is CustomerStatus.IN_PROCESS


class TestSimplifiedStatus:
    @pytest.mark.parametrize(
        "state,closed,expected",
        [
            (InferredState.FINALIZED, False, CustomerStatus.FINALIZED),
            (InferredState.FINALIZED, True, CustomerStatus.CLOSED),
            (InferredState.REPAIR_COMPLETED, False, CustomerStatus.COMPLETED),
            (S.REPAIR_DENIED, False, CustomerStatus.COMPLETED),
            (InferredState.REPAIR_IN_PROGRESS, False, CustomerStatus.IN_PROCESS),
            (InferredState.PARTS_DELAYED, False, CustomerStatus.WAITING_ON_PARTS),
            (InferredState.PARTS_ORDERED, False, CustomerStatus.WAITING_ON_PARTS),
            (S.DIAGNOSTIC_COMPLETE, False, CustomerStatus.WAITING_ON_CUSTOMER),
        ],
    )
    def test_table(self, state, closed, expected):
        status = simplified_status(state, A.NONE, state_closed=closed, prior=CustomerStatus.DIAGNOSING)
        assert status is expected

    def test_approved_keeps_prior(self):
        status = simplified_status(
            InferredState.AWAITING_DIAGNOSTIC, A.APPROVED,
            state_closed=False, prior=CustomerStatus.ON_HOLD,
        )
        assert status is CustomerStatus.ON_HOLD

    def test_deferred_fallback(self):
        status = simplified_status(
            InferredState.AWAITING_DIAGNOSTIC, A.DEFERRED,
            state_closed=False, prior=CustomerStatus.ON_HOLD,
        )
        assert status is CustomerStatus.FINISHED

    def test_default(self):
        status = simplified_status(
            InferredState.AWAITING_DIAGNOSTIC, A.NONE,
            state_closed=False, prior=CustomerStatus.ON_HOLD,
        )
        assert status is CustomerStatus.DIAGNOSING


class TestCustomerStatusFor:
    def test_dispatches_on_variant(self):
        explicit = customer_status_for(S.FINALIZED, approval_status=A.NONE, state_closed=True)
        inferred = customer_status_for(
            InferredState.FINALIZED, approval_status=A.NONE, state_closed=True,
        )
        assert explicit is CustomerStatus.FINISHED
        assert inferred is CustomerStatus.CLOSED

    def test_labels(self):
        assert CustomerStatus.WAITING_ON_PARTS.label == "Waiting on Parts"
        assert CustomerStatus.ON_HOLD.label == "On-Hold"
        assert int(CustomerStatus.CLOSED) == 10


class TestInference:
    def _item(self, state=JobItemState.INITIAL, approval=ItemApproval.APPROVED, *lines):
        return job_item(*lines, state=state, approval_type=approval)

    def test_unsaved_job_awaits(self):
        job = make_job(self._item(JobItemState.IN_PROGRESS), persisted=False)
        assert infer_lifecycle_state(job) is InferredState.AWAITING_DIAGNOSTIC

    def test_no_items_awaits(self):
        job = make_job(lifecycle_state=InferredState.REPAIR_IN_PROGRESS)
        assert infer_lifecycle_state(job) is InferredState.AWAITING_DIAGNOSTIC

    def test_finalized_sticks(self):
        job = make_job(self._item(JobItemState.IN_PROGRESS), lifecycle_state=InferredState.FINALIZED)
        assert infer_lifecycle_state(job) is InferredState.FINALIZED

    def test_finalized_explicit_state_sticks(self):
        job = make_job(self._item(), lifecycle_state=S.FINALIZED)
        assert infer_lifecycle_state(job) is InferredState.FINALIZED

    def test_finalized_without_items_sticks(self):
        job = make_job(lifecycle_state=InferredState.FINALIZED, persisted=False)
        assert infer_lifecycle_state(job) is InferredState.FINALIZED

    def test_in_progress_item(self):
        job = make_job(self._item(), self._item(JobItemState.IN_PROGRESS))
        assert infer_lifecycle_state(job) is InferredState.REPAIR_IN_PROGRESS

    def test_parts_ordered(self):
        ordered = part_line(order_status=PartOrderStatus.ORDERED)
        received = part_line(order_status=PartOrderStatus.RECEIVED)
        job = make_job(self._item(JobItemState.INITIAL, ItemApproval.APPROVED, ordered, received))
        assert infer_lifecycle_state(job) is InferredState.PARTS_ORDERED

    def test_parts_delayed_when_approved_part_unordered(self):
        ordered = part_line(order_status=PartOrderStatus.ORDERED)
        unordered = part_line("FLT-002")
        job = make_job(
            self._item(JobItemState.INITIAL, ItemApproval.APPROVED, ordered),
            self._item(JobItemState.START_REPAIR, ItemApproval.APPROVED, unordered),
        )
        assert infer_lifecycle_state(job) is InferredState.PARTS_DELAYED

    def test_ordered_parts_on_pending_approval_ignored(self):
        ordered = part_line(order_status=PartOrderStatus.ORDERED)
        job = make_job(
            self._item(JobItemState.INITIAL, ItemApproval.PENDING, ordered),
            lifecycle_state=InferredState.REPAIR_IN_PROGRESS,
        )
        assert infer_lifecycle_state(job) is InferredState.REPAIR_IN_PROGRESS

    def test_all_items_done(self):
        job = make_job(
            self._item(JobItemState.DECLINED, ItemApproval.DECLINED),
            self._item(JobItemState.START_REPAIR),
            self._item(JobItemState.COMPLETE_REPAIR),
        )
        assert infer_lifecycle_state(job) is InferredState.REPAIR_COMPLETED

    def test_stays_awaiting(self):
        job = make_job(self._item(), lifecycle_state=InferredState.AWAITING_DIAGNOSTIC)
        assert infer_lifecycle_state(job) is InferredState.AWAITING_DIAGNOSTIC

    def test_otherwise_in_progress(self):
        job = make_job(self._item(), lifecycle_state=InferredState.REPAIR_COMPLETED)
        assert infer_lifecycle_state(job) is InferredState.REPAIR_IN_PROGRESS


class TestApprovalSummary:
    @pytest.mark.parametrize(
        "decisions,expected",
        [
            ((), A.NONE),
            ((ItemApproval.PENDING,), A.NONE),
            ((ItemApproval.APPROVED, ItemApproval.APPROVED), A.APPROVED),
            ((ItemApproval.DECLINED,), A.DEFERRED),
            ((ItemApproval.APPROVED, ItemApproval.DECLINED), A.MIXED),
            ((ItemApproval.APPROVED, ItemApproval.PENDING), A.PARTIAL),
            ((ItemApproval.DECLINED, ItemApproval.PENDING), A.PARTIAL),
        ],
    )
    def test_summary(self, decisions, expected):
        job = make_job(*(job_item(approval_type=d) for d in decisions))
        assert derive_approval_status(job) is expected


class TestRecompute:
    def test_explicit_mode_keeps_state(self):
        job = make_job(lifecycle_state=S.PARTS_ORDERED)

        snapshot = recompute_status(job, mode=WorkflowMode.EXPLICIT)

        assert snapshot.lifecycle_state is S.PARTS_ORDERED
        assert snapshot.customer_status is CustomerStatus.WAITING_ON_PARTS
        assert snapshot.internal_status is CustomerStatus.WAITING_ON_PARTS

    def test_simplified_mode_infers(self):
        job = make_job(
            job_item(state=JobItemState.COMPLETE_REPAIR),
            lifecycle_state=InferredState.REPAIR_IN_PROGRESS,
        )

        snapshot = recompute_status(job, mode=WorkflowMode.SIMPLIFIED)

        assert snapshot.lifecycle_state is InferredState.REPAIR_COMPLETED
        assert snapshot.customer_status is CustomerStatus.COMPLETED
        assert snapshot.internal_status is CustomerStatus.FINISHED

    @pytest.mark.parametrize("mode", list(WorkflowMode))
    def test_idempotent(self, mode):
        ordered = part_line(order_status=PartOrderStatus.ORDERED)
        job = make_job(
            job_item(ordered),
            lifecycle_state=InferredState.REPAIR_IN_PROGRESS,
            approval_status=A.APPROVED,
        )

        first = recompute_status(job, mode=mode)
        job.lifecycle_state = first.lifecycle_state
        job.customer_status = first.customer_status
        second = recompute_status(job, mode=mode)

        assert second == first

    def test_does_not_modify_job(self):
        job = make_job(job_item(state=JobItemState.COMPLETE_REPAIR))
        recompute_status(job, mode=WorkflowMode.SIMPLIFIED)
        assert job.lifecycle_state is S.AWAITING_DIAGNOSTIC
