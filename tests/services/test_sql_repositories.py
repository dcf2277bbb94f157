"""
Tests for the SQLAlchemy repositories on in-memory SQLite.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from repair_engines.lifecycle import JobEvent
from repair_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from repair_kernel.domain.job import (
    ApprovalStatus,
    CustomerStatus,
    ExplicitState,
    InferredState,
    InventoryRecord,
    ItemApproval,
    PartOrderStatus,
)
from repair_kernel.exceptions import RecordNotFoundError
from repair_services.inventory_ledger import InventoryLedgerService
from repair_services.job_workflow import JobWorkflowService
from repair_services.notifications import InMemoryTaskQueue, TaskQueueNotifier
from repair_services.rates import ConfiguredRateProvider
from repair_services.sql_repositories import SqlInventoryRepository, SqlJobRepository
from tests.builders import SHOP_ID, fee_line, job_item, labor_line, make_job, part_line


@pytest.fixture
def jobs(sqlite_session):
    return SqlJobRepository(sqlite_session)


@pytest.fixture
def sql_inventory(sqlite_session):
    repo = SqlInventoryRepository(sqlite_session)
    repo.save(InventoryRecord(
        shop_id=SHOP_ID,
        part_number="BRK-001",
        available_quantity=Decimal("10"),
        quantity=Decimal("10"),
        cost=Decimal("20.00"),
        part_price=Decimal("45.00"),
    ))
    return repo


class TestSqlJobRepository:
    def test_round_trip(self, jobs):
        stamp = datetime(2024, 3, 1, 9, 30, tzinfo=UTC)
        job = make_job(
            job_item(
                part_line("BRK-001", "2", order_status=PartOrderStatus.ORDERED),
                labor_line("1.5", labor_time=Decimal("1.5")),
                fee_line(fee_percentage=Decimal("10")),
                labor_price=Decimal("150.00"),
            ),
            lifecycle_state=ExplicitState.PARTS_ORDERED,
            customer_status=CustomerStatus.WAITING_ON_PARTS,
            approval_status=ApprovalStatus.APPROVED,
            state_changed_at=stamp,
            vehicle_id="VIN-1",
        )

        jobs.save(job)
        loaded = jobs.get(job.id)

        assert loaded.lifecycle_state is ExplicitState.PARTS_ORDERED
        assert loaded.customer_status is CustomerStatus.WAITING_ON_PARTS
        assert loaded.approval_status is ApprovalStatus.APPROVED
        assert loaded.state_changed_at == stamp
        assert loaded.vehicle_id == "VIN-1"
        assert loaded.persisted
        [item] = loaded.job_items
        assert item.approval_type is ItemApproval.APPROVED
        assert item.labor_price == Decimal("150.00")
        part, labor, fee = item.estimate_items
        assert part.part_number == "BRK-001"
        assert part.quantity == Decimal("2")
        assert part.order_status is PartOrderStatus.ORDERED
        assert labor.labor_time == Decimal("1.5")
        assert fee.fee_percentage == Decimal("10")

    def test_inferred_state_survives(self, jobs):
        job = make_job(lifecycle_state=InferredState.REPAIR_COMPLETED)
        jobs.save(job)
        assert jobs.get(job.id).lifecycle_state is InferredState.REPAIR_COMPLETED

    def test_save_replaces_children(self, jobs):
        job = make_job(job_item(part_line(), labor_line()), job_item(part_line("FLT-002", "1")))
        jobs.save(job)

        job.job_items.pop()
        job.job_items[0].estimate_items.pop()
        job.job_items[0].estimate_items[0].quantity = Decimal("4")
        jobs.save(job)

        [item] = jobs.get(job.id).job_items
        [line] = item.estimate_items
        assert line.quantity == Decimal("4")

    def test_unknown_id(self, jobs):
        with pytest.raises(RecordNotFoundError):
            jobs.get(uuid4())


class TestSqlInventoryRepository:
    def test_get(self, sql_inventory):
        record = sql_inventory.get(SHOP_ID, "BRK-001")
        assert record.available_quantity == Decimal("10")
        assert record.part_price == Decimal("45.00")

    def test_missing(self, sql_inventory):
        assert sql_inventory.get(SHOP_ID, "NOPE") is None
        assert sql_inventory.get_for_update("shop-2", "BRK-001") is None

    def test_save_updates_existing_row(self, sql_inventory):
        record = sql_inventory.get_for_update(SHOP_ID, "BRK-001")
        record.available_quantity = Decimal("6")
        sql_inventory.save(record)

        assert sql_inventory.get(SHOP_ID, "BRK-001").available_quantity == Decimal("6")


class TestWorkflowOnSql:
    def test_reserve_and_finalize(self, sql_inventory, jobs, shop_config, clock):
        service = JobWorkflowService(
            config=shop_config,
            ledger=InventoryLedgerService(sql_inventory),
            inventory=sql_inventory,
            rates=ConfiguredRateProvider([shop_config]),
            notifier=TaskQueueNotifier(InMemoryTaskQueue(), clock),
            clock=clock,
            jobs=jobs,
        )
        estimate = make_job(job_item(part_line("BRK-001", "3")), is_estimate=True)

        converted = service.convert_to_repair_order(estimate)
        finalized = service.propose_transition(converted.job, JobEvent.FINALIZE)

        record = sql_inventory.get(SHOP_ID, "BRK-001")
        assert record.available_quantity == Decimal("7")
        assert record.quantity == Decimal("7")
        stored = jobs.get(estimate.id)
        assert stored.lifecycle_state is ExplicitState.FINALIZED
        assert stored.finalized_at == clock.now()
        assert finalized.job.job_items[0].estimate_items[0].total_quantity == Decimal("3")


@pytest.fixture
def database():
    init_engine_from_url("sqlite://")
    create_tables()
    yield
    drop_tables()
    reset_engine()


class TestSessionScope:
    def _record(self):
        return InventoryRecord(
            shop_id=SHOP_ID,
            part_number="FLT-002",
            available_quantity=Decimal("4"),
            quantity=Decimal("4"),
        )

    def test_commits_on_exit(self, database):
        with session_scope() as session:
            SqlInventoryRepository(session).save(self._record())

        with session_scope() as session:
            stored = SqlInventoryRepository(session).get(SHOP_ID, "FLT-002")
        assert stored.available_quantity == Decimal("4")

    def test_rolls_back_on_error(self, database):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                SqlInventoryRepository(session).save(self._record())
                raise RuntimeError("ledger step failed")

        with session_scope() as session:
            assert SqlInventoryRepository(session).get(SHOP_ID, "FLT-002") is None

    def test_requires_engine(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_session()
