"""
Module: repair_services
Responsibility:
    Stateful drivers around the pure engines: the inventory ledger service,
    the job workflow service, notification dispatch, rate lookup and the
    repositories that load and store jobs and inventory records.

Architecture position:
    Services -- may import repair_kernel, repair_engines and repair_config.

Usage:
    from repair_services.job_workflow import JobWorkflowService, ItemChanges
    from repair_services.inventory_ledger import InventoryLedgerService
"""

from repair_services.inventory_ledger import InventoryLedgerService
from repair_services.job_workflow import (
    BaseReference,
    EstimateItemSpec,
    EstimateItemUpdate,
    ItemChanges,
    ItemMutationResult,
    ItemStateChange,
    JobItemSpec,
    JobWorkflowService,
    NewEstimateItems,
    OrderStatusChange,
    TransitionResult,
)
from repair_services.notifications import (
    InMemoryTaskQueue,
    NotificationTask,
    TaskQueueNotifier,
)
from repair_services.rates import ConfiguredRateProvider
from repair_services.repositories import InMemoryInventoryRepository, InMemoryJobRepository
from repair_services.sql_repositories import SqlInventoryRepository, SqlJobRepository

__all__ = [
    "BaseReference",
    "ConfiguredRateProvider",
    "EstimateItemSpec",
    "EstimateItemUpdate",
    "InMemoryInventoryRepository",
    "InMemoryJobRepository",
    "InMemoryTaskQueue",
    "InventoryLedgerService",
    "ItemChanges",
    "ItemMutationResult",
    "ItemStateChange",
    "JobItemSpec",
    "JobWorkflowService",
    "NewEstimateItems",
    "NotificationTask",
    "OrderStatusChange",
    "SqlInventoryRepository",
    "SqlJobRepository",
    "TaskQueueNotifier",
    "TransitionResult",
]
