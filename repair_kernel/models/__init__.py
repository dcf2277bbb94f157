"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from repair_kernel.models.inventory import InventoryRecordModel
from repair_kernel.models.job import EstimateItemModel, JobItemModel, JobModel

__all__ = [
    "EstimateItemModel",
    "InventoryRecordModel",
    "JobItemModel",
    "JobModel",
]
