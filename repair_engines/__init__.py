"""
Module: repair_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines. The canonical import surface for repair_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import repair_kernel (and sibling engine modules).
    MUST NOT import repair_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``. Timestamps are passed in
      as explicit parameters by the services.
    - Decimal-only arithmetic for quantities and money.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from repair_engines.lifecycle import transition, JobEvent
    from repair_engines.status import recompute_status
    from repair_engines.pricing import price_job_item, PricingContext
    from repair_engines.ledger import plan_reconciliation
    from repair_engines.tax import compute_job_totals, TaxRates
"""

from repair_engines.ledger import (
    LedgerAdjustment,
    LedgerOperation,
    LedgerOutcome,
    ReconciliationPlan,
    ReservationStep,
    apply_commit,
    apply_reservation,
    out_of_stock,
    plan_reconciliation,
    plan_release,
    requested_by_part,
    target_quantity,
)
from repair_engines.lifecycle import (
    JOB_WORKFLOW,
    CommitInventory,
    FinalizeJobItems,
    JobEvent,
    RequestNotification,
    TransitionOutcome,
    allowed_events,
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
    customer_status_for,
    derive_approval_status,
    infer_lifecycle_state,
    legacy_status,
    recompute_status,
    simplified_status,
)
from repair_engines.tax import JobTotals, TaxRates, compute_job_totals
from repair_engines.tracer import traced_engine

__all__ = [
    "JOB_WORKFLOW",
    "CommitInventory",
    "FinalizeJobItems",
    "JobEvent",
    "JobTotals",
    "LedgerAdjustment",
    "LedgerOperation",
    "LedgerOutcome",
    "PricedLine",
    "PricingContext",
    "PricingResult",
    "RateProvider",
    "ReconciliationPlan",
    "RequestNotification",
    "ReservationStep",
    "StatusSnapshot",
    "TaxRates",
    "TransitionOutcome",
    "allowed_events",
    "apply_commit",
    "apply_pricing",
    "apply_reservation",
    "compute_job_totals",
    "customer_status_for",
    "derive_approval_status",
    "infer_lifecycle_state",
    "legacy_status",
    "out_of_stock",
    "plan_reconciliation",
    "plan_release",
    "price_job_item",
    "recompute_status",
    "requested_by_part",
    "resolve_base_item",
    "simplified_status",
    "target_quantity",
    "traced_engine",
    "transition",
]
