"""Pure domain types for the repair kernel: values, entities, workflow, clock."""

from repair_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from repair_kernel.domain.job import (
    INVENTORY_SOURCE,
    ApprovalStatus,
    CustomerStatus,
    EstimateItem,
    ExplicitState,
    InferredState,
    InventoryRecord,
    ItemApproval,
    ItemType,
    Job,
    JobItem,
    JobItemState,
    JobState,
    LifecycleState,
    PartOrderStatus,
    WorkflowMode,
)
from repair_kernel.domain.notification import NotificationKind
from repair_kernel.domain.values import Money
from repair_kernel.domain.workflow import Transition, Workflow

__all__ = [
    "INVENTORY_SOURCE",
    "ApprovalStatus",
    "Clock",
    "CustomerStatus",
    "DeterministicClock",
    "EstimateItem",
    "ExplicitState",
    "InferredState",
    "InventoryRecord",
    "ItemApproval",
    "ItemType",
    "Job",
    "JobItem",
    "JobItemState",
    "JobState",
    "LifecycleState",
    "Money",
    "NotificationKind",
    "PartOrderStatus",
    "SystemClock",
    "Transition",
    "Workflow",
    "WorkflowMode",
]
