"""
Unit tests for the job aggregate, the workflow value objects and the clock.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from repair_kernel.domain.clock import DeterministicClock, SystemClock
from repair_kernel.domain.job import (
    ExplicitState,
    InferredState,
    JobItemState,
    is_finalized,
)
from repair_kernel.domain.workflow import Transition, Workflow
from tests.builders import fee_line, job_item, labor_line, make_job, part_line


class TestLifecycleStates:
    def test_legacy_aliases(self):
        assert ExplicitState.parse("work_completed") is ExplicitState.REPAIR_COMPLETED
        assert ExplicitState.parse("parts_ordered") is ExplicitState.PARTS_ORDERED

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            ExplicitState.parse("teleported")

    def test_inferred_maps_to_explicit(self):
        for state in InferredState:
            assert state.as_explicit().value == state.value

    def test_finalized_either_variant(self):
        assert is_finalized(ExplicitState.FINALIZED)
        assert is_finalized(InferredState.FINALIZED)
        assert not is_finalized(InferredState.REPAIR_COMPLETED)


class TestJobAggregate:
    def test_lookup(self):
        part = part_line()
        item = job_item(part, labor_line(), fee_line())
        job = make_job(item)

        assert job.find_job_item(item.id) is item
        assert job.find_job_item(uuid4()) is None
        assert job.locate_estimate_item(part.id) == (item, part)
        assert job.locate_estimate_item(uuid4()) is None
        assert len(job.all_estimate_items()) == 3

    def test_line_kinds(self):
        item = job_item(part_line(), labor_line(), fee_line())
        assert len(item.part_lines) == 1
        assert len(item.labor_lines) == 1
        assert item.estimate_items[2].is_fee

    def test_inventory_source(self):
        assert part_line().from_inventory
        assert not part_line(saved_through="Vendor").from_inventory

    def test_state_snapshot_round_trip(self):
        job = make_job(lifecycle_state=ExplicitState.PARTS_ORDERED)
        state = job.snapshot_state().evolve(lifecycle_state=ExplicitState.PARTS_DELIVERED)

        job.apply_state(state)

        assert job.lifecycle_state is ExplicitState.PARTS_DELIVERED
        assert job.snapshot_state() == state

    def test_builder_links_children(self):
        line = part_line()
        item = job_item(line, state=JobItemState.IN_PROGRESS)
        job = make_job(item)
        assert item.job_id == job.id
        assert line.job_item_id == item.id


class TestWorkflow:
    def _workflow(self, **overrides):
        kwargs = dict(
            name="door",
            description="A door",
            initial_state="closed",
            states=("closed", "open", "welded"),
            transitions=(
                Transition("closed", "open", "open"),
                Transition("open", "closed", "close"),
                Transition("closed", "welded", "weld"),
            ),
            terminal_states=("welded",),
        )
        kwargs.update(overrides)
        return Workflow(**kwargs)

    def test_find(self):
        workflow = self._workflow()
        assert workflow.find("closed", "open").to_state == "open"
        assert workflow.find("open", "weld") is None

    def test_actions_in_declaration_order(self):
        assert self._workflow().actions == ("open", "close", "weld")

    def test_sources_for(self):
        assert self._workflow().sources_for("close") == frozenset({"open"})

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError):
            self._workflow(initial_state="ajar")

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            self._workflow(transitions=(Transition("closed", "ajar", "nudge"),))

    def test_terminal_state_has_no_exits(self):
        with pytest.raises(ValueError):
            self._workflow(transitions=(Transition("welded", "open", "cut"),))


class TestClock:
    def test_deterministic(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        first = clock.now()
        assert clock.advance() == first + timedelta(seconds=1)
        assert clock.advance(59) == first + timedelta(minutes=1)

    def test_set_time(self):
        clock = DeterministicClock()
        target = datetime(2025, 6, 1, tzinfo=UTC)
        clock.advance(30)
        clock.set_time(target)
        assert clock.now() == target

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None
