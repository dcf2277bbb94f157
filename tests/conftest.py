"""
Pytest fixtures for the repair workflow test suite.

Provides:
- Structured logging configured once per session, with a log capture fixture
- A deterministic clock
- Shop configuration, inventory and the wired workflow service
- Job builders live in ``tests.builders``

Database tests use in-memory SQLite (see ``sqlite_session``); no server is
needed.
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from repair_config.schema import MarkupTier, ShopConfig
from repair_engines.tax import TaxRates
from repair_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from repair_kernel.domain.clock import DeterministicClock
from repair_kernel.domain.job import InventoryRecord, WorkflowMode
from repair_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from repair_services.inventory_ledger import InventoryLedgerService
from repair_services.job_workflow import JobWorkflowService
from repair_services.notifications import InMemoryTaskQueue, TaskQueueNotifier
from repair_services.rates import ConfiguredRateProvider
from repair_services.repositories import InMemoryInventoryRepository, InMemoryJobRepository

from tests.builders import SHOP_ID


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture repair_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.propose_transition(job, "start_diagnostic")
            logs = captured_logs()
            assert any(r["message"] == "job_transition_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("repair_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and configuration
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def shop_config():
    return ShopConfig(
        shop_id=SHOP_ID,
        default_hourly_rate=Decimal("40.00"),
        labor_rate=Decimal("100.00"),
        markup_tiers=(
            MarkupTier(percent=Decimal("100"), up_to=Decimal("10")),
            MarkupTier(percent=Decimal("50")),
        ),
        tax_rates=TaxRates.from_sales_tax(Decimal("8")),
    )


@pytest.fixture
def simplified_config(shop_config):
    return ShopConfig(
        shop_id=SHOP_ID,
        workflow_mode=WorkflowMode.SIMPLIFIED,
        default_hourly_rate=shop_config.default_hourly_rate,
        labor_rate=shop_config.labor_rate,
        markup_tiers=shop_config.markup_tiers,
        tax_rates=shop_config.tax_rates,
    )


# =============================================================================
# Inventory and services
# =============================================================================


@pytest.fixture
def inventory():
    return InMemoryInventoryRepository([
        InventoryRecord(
            shop_id=SHOP_ID,
            part_number="BRK-001",
            available_quantity=Decimal("10"),
            quantity=Decimal("10"),
            cost=Decimal("20.00"),
            part_price=Decimal("45.00"),
        ),
        InventoryRecord(
            shop_id=SHOP_ID,
            part_number="FLT-002",
            available_quantity=Decimal("5"),
            quantity=Decimal("5"),
            cost=Decimal("4.00"),
            part_price=Decimal("9.50"),
            package_add=Decimal("2.00"),
        ),
    ])


@pytest.fixture
def ledger(inventory):
    return InventoryLedgerService(inventory)


@pytest.fixture
def task_queue():
    return InMemoryTaskQueue()


@pytest.fixture
def job_repository():
    return InMemoryJobRepository()


@pytest.fixture
def make_workflow(inventory, ledger, task_queue, job_repository, clock):
    """Build a ``JobWorkflowService`` for a given shop configuration."""

    def _make(config: ShopConfig, *, persist: bool = True) -> JobWorkflowService:
        return JobWorkflowService(
            config=config,
            ledger=ledger,
            inventory=inventory,
            rates=ConfiguredRateProvider([config]),
            notifier=TaskQueueNotifier(task_queue, clock),
            clock=clock,
            jobs=job_repository if persist else None,
        )

    return _make


@pytest.fixture
def workflow(make_workflow, shop_config):
    return make_workflow(shop_config)


@pytest.fixture
def simplified_workflow(make_workflow, simplified_config):
    return make_workflow(simplified_config)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def sqlite_session():
    """Session on a fresh in-memory SQLite database with all tables created."""
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    yield session
    session.close()
    drop_tables()
    reset_engine()
