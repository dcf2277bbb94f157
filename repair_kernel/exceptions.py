"""
Typed Exception Hierarchy for the Repair Kernel.

Every error has a typed class, a machine-readable ``code`` class attribute,
and structured attributes carrying its context. Callers catch by type and
report by code; they never parse messages.

    RepairKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- JobFinalizedError
    |
    +-- PricingError
    |   +-- PricingAmbiguousError
    |
    +-- LedgerError
    |   +-- LedgerMissError
    |   +-- QuantityConflictError
    |
    +-- ConfigError
    |   +-- InvalidConfigError
    |
    +-- RecordNotFoundError

Category   | Code                | Handling
-----------|---------------------|----------------------------------------------
Workflow   | INVALID_TRANSITION  | Returned to caller, job state unchanged
           | JOB_FINALIZED       | Returned to caller, mutation refused
Pricing    | PRICING_AMBIGUOUS   | Recovered: price 0, line flagged for review
Ledger     | LEDGER_MISS         | Recorded on the adjustment, otherwise ignored
           | QUANTITY_CONFLICT   | Logged as a warning, overcommit still applied
Config     | INVALID_CONFIG      | Raised at load time
Lookup     | RECORD_NOT_FOUND    | Raised by repositories

Public service operations never let these escape; they are carried on
result objects (``success``, ``error``, ``reason``).
"""

from decimal import Decimal


class RepairKernelError(Exception):
    """
    Base exception for all repair kernel errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "REPAIR_KERNEL_ERROR"


# Workflow


class WorkflowError(RepairKernelError):
    """Base exception for lifecycle workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """The event is not allowed from the job's current lifecycle state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, current_state: str, event: str, reason: str | None = None):
        self.current_state = current_state
        self.event = event
        self.reason = reason or f"'{event}' is not allowed from '{current_state}'"
        super().__init__(
            f"Invalid transition: {event} from {current_state} ({self.reason})"
        )


class JobFinalizedError(WorkflowError):
    """The job is finalized and can no longer be modified."""

    code: str = "JOB_FINALIZED"

    def __init__(self, job_id: str, operation: str):
        self.job_id = job_id
        self.operation = operation
        super().__init__(f"Job {job_id} is finalized; {operation} refused")


# Pricing


class PricingError(RepairKernelError):
    """Base exception for pricing errors."""

    code: str = "PRICING_ERROR"


class PricingAmbiguousError(PricingError):
    """
    Not enough data to derive a price for a line.

    Never fatal: the pricing engine recovers by pricing the line at zero
    and flagging it for manual review.
    """

    code: str = "PRICING_AMBIGUOUS"

    def __init__(self, description: str | None, item_type: str, reason: str):
        self.description = description
        self.item_type = item_type
        self.reason = reason
        super().__init__(
            f"Cannot price {item_type} line '{description or ''}': {reason}"
        )


# Ledger


class LedgerError(RepairKernelError):
    """Base exception for inventory ledger conditions."""

    code: str = "LEDGER_ERROR"


class LedgerMissError(LedgerError):
    """The referenced part is not tracked for this shop."""

    code: str = "LEDGER_MISS"

    def __init__(self, shop_id: str, part_number: str):
        self.shop_id = shop_id
        self.part_number = part_number
        super().__init__(f"No inventory record for {part_number} in shop {shop_id}")


class QuantityConflictError(LedgerError):
    """
    A reservation drove ``available_quantity`` below zero.

    Overcommit is allowed; this error is logged, never raised to callers.
    """

    code: str = "QUANTITY_CONFLICT"

    def __init__(self, shop_id: str, part_number: str, available_quantity: Decimal):
        self.shop_id = shop_id
        self.part_number = part_number
        self.available_quantity = available_quantity
        super().__init__(
            f"Part {part_number} in shop {shop_id} overcommitted: "
            f"available {available_quantity}"
        )


# Config


class ConfigError(RepairKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """A configuration value is missing or out of range."""

    code: str = "INVALID_CONFIG"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid config '{field}': {reason}")


# Lookup


class RecordNotFoundError(RepairKernelError):
    """A persisted record could not be loaded."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} not found: {record_id}")
