"""Notification kinds requested by the workflow. Delivery happens elsewhere."""

from enum import Enum


class NotificationKind(Enum):
    DIAGNOSTIC_COMPLETE = "diagnostic_complete"
    PARTS_ORDERED = "parts_ordered"
    PARTS_DELAYED = "parts_delayed"
    PARTS_DELIVERED = "parts_delivered"
    REPAIR_IN_PROGRESS = "repair_in_progress"
    REPAIR_COMPLETED = "repair_completed"
    FINALIZED_INVOICE = "finalized_invoice"
    JOB_CLOSED = "job_closed"
