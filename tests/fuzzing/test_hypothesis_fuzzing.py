"""
Property-based tests using Hypothesis.

Properties checked:
- Ledger conservation: any sequence of line edits leaves available stock
  reduced by exactly the surviving reflected quantity
- Package allocation: shares always sum to the package remainder
- Aggregate labor shares always sum to the labor price
- Status recompute is idempotent for any job item data
- The transition function never produces a state outside the table
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from repair_engines.lifecycle import JOB_WORKFLOW, JobEvent, transition
from repair_engines.pricing import PricingContext, allocate_package, price_job_item
from repair_engines.status import recompute_status
from repair_kernel.domain.clock import DeterministicClock
from repair_kernel.domain.job import (
    ExplicitState,
    InferredState,
    InventoryRecord,
    ItemApproval,
    JobItemState,
    PartOrderStatus,
    WorkflowMode,
)
from repair_kernel.domain.values import Money, round_half_up
from repair_kernel.exceptions import InvalidTransitionError
from repair_services.inventory_ledger import InventoryLedgerService
from repair_services.repositories import InMemoryInventoryRepository
from tests.builders import SHOP_ID, job_item, labor_line, make_job, part_line

PARTS = ("BRK-001", "FLT-002", "GONE-404")
STOCK = Decimal("100")

quantities = st.decimals(min_value=0, max_value=50, places=2)
amounts = st.decimals(min_value=0, max_value=100000, places=2)
hours = st.decimals(min_value=Decimal("0.1"), max_value=20, places=1)


def _inventory():
    return InMemoryInventoryRepository([
        InventoryRecord(shop_id=SHOP_ID, part_number=p, available_quantity=STOCK, quantity=STOCK)
        for p in PARTS[:2]
    ])


edits = st.lists(
    st.tuples(quantities, st.sampled_from(PARTS + (None,)), st.booleans()),
    min_size=1,
    max_size=12,
)


class TestLedgerConservation:
    @given(edits=edits)
    @settings(max_examples=75, deadline=None)
    def test_available_tracks_final_line(self, edits):
        inventory = _inventory()
        ledger = InventoryLedgerService(inventory)
        line = part_line(quantity="0")
        item = job_item(line)
        job = make_job(item)

        for quantity, part_number, declined in edits:
            line.quantity = quantity
            line.part_number = part_number
            item.state = JobItemState.DECLINED if declined else JobItemState.INITIAL
            ledger.reconcile_item(job, item, line)

        final_quantity, final_part, final_declined = edits[-1]
        for part in PARTS[:2]:
            expected = STOCK
            if part == final_part and not final_declined:
                expected -= final_quantity
            assert inventory.get(SHOP_ID, part).available_quantity == expected

    @given(quantities=st.lists(quantities, min_size=1, max_size=6))
    @settings(max_examples=50, deadline=None)
    def test_release_restores_stock(self, quantities):
        inventory = _inventory()
        ledger = InventoryLedgerService(inventory)
        lines = [part_line("BRK-001", str(q)) for q in quantities]
        item = job_item(*lines)
        job = make_job(item)

        for line in lines:
            ledger.reconcile_item(job, item, line)
        for line in lines:
            ledger.release_item(SHOP_ID, line)

        assert inventory.get(SHOP_ID, "BRK-001").available_quantity == STOCK


class TestPricingProperties:
    @given(
        parts_total=amounts,
        weights=st.lists(st.tuples(amounts, quantities), min_size=1, max_size=8),
    )
    @settings(max_examples=100, deadline=None)
    def test_allocation_sums_to_parts_total(self, parts_total, weights):
        lines = [
            part_line(f"P-{i}", str(quantity), cost=cost)
            for i, (cost, quantity) in enumerate(weights)
        ]
        ctx = PricingContext(shop_id=SHOP_ID, rates=None)

        shares = allocate_package(Money(parts_total), lines, ctx)

        total = sum((s.amount for s in shares), Decimal("0"))
        assert total == round_half_up(parts_total)

    @given(labor_price=amounts, labor_hours=st.lists(hours, min_size=1, max_size=5))
    @settings(max_examples=100, deadline=None)
    def test_labor_shares_sum_to_labor_price(self, labor_price, labor_hours):
        item = job_item(*(labor_line(str(h)) for h in labor_hours), labor_price=labor_price)
        ctx = PricingContext(shop_id=SHOP_ID, rates=None)

        result = price_job_item(item, ctx=ctx)

        total = sum((line.line_total.amount for line in result.lines), Decimal("0"))
        assert total == round_half_up(labor_price)


item_data = st.tuples(
    st.sampled_from(list(JobItemState)),
    st.sampled_from(list(ItemApproval)),
    st.lists(st.sampled_from(list(PartOrderStatus)), max_size=3),
)


class TestStatusProperties:
    @given(
        items=st.lists(item_data, max_size=5),
        state=st.sampled_from(list(InferredState)),
        mode=st.sampled_from(list(WorkflowMode)),
    )
    @settings(max_examples=150, deadline=None)
    def test_recompute_is_idempotent(self, items, state, mode):
        job = make_job(
            *(
                job_item(
                    *(part_line(order_status=status) for status in statuses),
                    state=item_state,
                    approval_type=approval,
                )
                for item_state, approval, statuses in items
            ),
            lifecycle_state=state,
        )

        first = recompute_status(job, mode=mode)
        job.lifecycle_state = first.lifecycle_state
        job.customer_status = first.customer_status

        assert recompute_status(job, mode=mode) == first

    @given(items=st.lists(item_data, max_size=5))
    @settings(max_examples=50, deadline=None)
    def test_finalized_stays_finalized(self, items):
        job = make_job(
            *(job_item(state=s, approval_type=a) for s, a, _ in items),
            lifecycle_state=InferredState.FINALIZED,
        )
        snapshot = recompute_status(job, mode=WorkflowMode.SIMPLIFIED)
        assert snapshot.lifecycle_state is InferredState.FINALIZED


class TestTransitionClosure:
    @given(
        state=st.sampled_from(list(ExplicitState)),
        event=st.sampled_from(list(JobEvent)),
    )
    @settings(max_examples=200, deadline=None)
    def test_result_matches_table(self, state, event):
        job = make_job(lifecycle_state=state)
        rule = JOB_WORKFLOW.find(state.value, event.value)
        now = DeterministicClock().now()

        if rule is None:
            with pytest.raises(InvalidTransitionError):
                transition(job, event, now=now, mode=WorkflowMode.EXPLICIT)
            return

        outcome = transition(job, event, now=now, mode=WorkflowMode.EXPLICIT)
        assert outcome.state.lifecycle_state.value == rule.to_state
        assert state is not ExplicitState.FINALIZED
