"""
Module: repair_kernel.models.job
Responsibility: SQLAlchemy ORM persistence models for the job aggregate.
    Maps the ``Job`` / ``JobItem`` / ``EstimateItem`` dataclasses of
    ``repair_kernel.domain.job`` to the ``jobs``, ``job_items`` and
    ``estimate_items`` tables.

Architecture position: Kernel > Models. Inherits from Base
    (repair_kernel.db.base). Children are owned by their parent and removed
    with it (delete-orphan cascade).

Invariants enforced:
    - Quantities and money use Decimal (Numeric(18, 4)), never float.
    - Enum fields are stored as String(50) by value.
    - Lifecycle state is stored by name with a flag recording whether it was
      inferred (simplified flow) or explicitly transitioned.

Failure modes:
    - IntegrityError on duplicate ids.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repair_kernel.db.base import Base


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class JobModel(Base):
    """
    ORM model for a repair order.

    Maps to: repair_kernel.domain.job.Job.
    """

    __tablename__ = "jobs"

    __table_args__ = (
        Index("idx_job_shop", "shop_id"),
        Index("idx_job_state", "lifecycle_state"),
    )

    shop_id: Mapped[str] = mapped_column(String(64))
    lifecycle_state: Mapped[str] = mapped_column(String(50))
    state_inferred: Mapped[bool] = mapped_column(Boolean, default=False)
    customer_status: Mapped[int] = mapped_column(Integer, default=1)
    approval_status: Mapped[str] = mapped_column(String(50), default="none")
    is_estimate: Mapped[bool] = mapped_column(Boolean, default=True)
    state_closed: Mapped[bool] = mapped_column(Boolean, default=False)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    state_changed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    work_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    work_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    profit_center_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    technician_hourly_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tax_exempt: Mapped[bool] = mapped_column(Boolean, default=False)

    job_items: Mapped[list["JobItemModel"]] = relationship(
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobItemModel.position",
    )

    def to_dto(self):
        """Convert ORM model to a Job aggregate."""
        from repair_kernel.domain.job import (
            ApprovalStatus,
            CustomerStatus,
            ExplicitState,
            InferredState,
            Job,
        )

        if self.state_inferred:
            state = InferredState(self.lifecycle_state)
        else:
            state = ExplicitState.parse(self.lifecycle_state)

        return Job(
            id=self.id,
            shop_id=self.shop_id,
            lifecycle_state=state,
            customer_status=CustomerStatus(self.customer_status),
            approval_status=ApprovalStatus(self.approval_status),
            is_estimate=self.is_estimate,
            state_closed=self.state_closed,
            closed_at=_aware(self.closed_at),
            finalized_at=_aware(self.finalized_at),
            state_changed_at=_aware(self.state_changed_at),
            work_started_at=_aware(self.work_started_at),
            work_completed_at=_aware(self.work_completed_at),
            profit_center_name=self.profit_center_name,
            technician_hourly_rate=self.technician_hourly_rate,
            vehicle_id=self.vehicle_id,
            tax_exempt=self.tax_exempt,
            persisted=True,
            job_items=[item.to_dto() for item in self.job_items],
        )

    @classmethod
    def from_dto(cls, dto) -> "JobModel":
        """Create ORM model from a Job aggregate."""
        from repair_kernel.domain.job import InferredState

        return cls(
            id=dto.id,
            shop_id=dto.shop_id,
            lifecycle_state=dto.lifecycle_state.value,
            state_inferred=isinstance(dto.lifecycle_state, InferredState),
            customer_status=int(dto.customer_status),
            approval_status=dto.approval_status.value,
            is_estimate=dto.is_estimate,
            state_closed=dto.state_closed,
            closed_at=dto.closed_at,
            finalized_at=dto.finalized_at,
            state_changed_at=dto.state_changed_at,
            work_started_at=dto.work_started_at,
            work_completed_at=dto.work_completed_at,
            profit_center_name=dto.profit_center_name,
            technician_hourly_rate=dto.technician_hourly_rate,
            vehicle_id=dto.vehicle_id,
            tax_exempt=dto.tax_exempt,
            job_items=[
                JobItemModel.from_dto(item, dto.id, position)
                for position, item in enumerate(dto.job_items)
            ],
        )

    def __repr__(self) -> str:
        return f"<JobModel {self.id} state={self.lifecycle_state} status={self.customer_status}>"


class JobItemModel(Base):
    """
    ORM model for a job item.

    Maps to: repair_kernel.domain.job.JobItem.
    """

    __tablename__ = "job_items"

    job_id: Mapped[UUID] = mapped_column(ForeignKey("jobs.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[str] = mapped_column(String(50), default="initial")
    approval_type: Mapped[str] = mapped_column(String(50), default="pending")
    package_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    labor_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    job: Mapped[JobModel] = relationship(back_populates="job_items")
    estimate_items: Mapped[list["EstimateItemModel"]] = relationship(
        back_populates="job_item",
        cascade="all, delete-orphan",
        order_by="EstimateItemModel.position",
    )

    def to_dto(self):
        from repair_kernel.domain.job import ItemApproval, JobItem, JobItemState

        return JobItem(
            id=self.id,
            job_id=self.job_id,
            description=self.description,
            state=JobItemState(self.state),
            approval_type=ItemApproval(self.approval_type),
            package_price=self.package_price,
            labor_price=self.labor_price,
            estimate_items=[line.to_dto() for line in self.estimate_items],
        )

    @classmethod
    def from_dto(cls, dto, job_id: UUID, position: int = 0) -> "JobItemModel":
        return cls(
            id=dto.id,
            job_id=job_id,
            position=position,
            description=dto.description,
            state=dto.state.value,
            approval_type=dto.approval_type.value,
            package_price=dto.package_price,
            labor_price=dto.labor_price,
            estimate_items=[
                EstimateItemModel.from_dto(line, dto.id, line_position)
                for line_position, line in enumerate(dto.estimate_items)
            ],
        )

    def __repr__(self) -> str:
        return f"<JobItemModel {self.id} state={self.state}>"


class EstimateItemModel(Base):
    """
    ORM model for a priced estimate line.

    Maps to: repair_kernel.domain.job.EstimateItem.
    """

    __tablename__ = "estimate_items"

    __table_args__ = (
        Index("idx_estimate_item_part", "part_number"),
    )

    job_item_id: Mapped[UUID] = mapped_column(ForeignKey("job_items.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)
    item_type: Mapped[str] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    price_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    part_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    saved_through: Mapped[str | None] = mapped_column(String(50), nullable=True)
    total_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reserved_part_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    additional: Mapped[bool] = mapped_column(Boolean, default=False)
    package_add: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    fee_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    fee_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    base_item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    labor_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    labor_time: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    order_status: Mapped[str] = mapped_column(String(50), default="unordered")
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False)
    review_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    job_item: Mapped[JobItemModel] = relationship(back_populates="estimate_items")

    def to_dto(self):
        from repair_kernel.domain.job import EstimateItem, ItemType, PartOrderStatus

        return EstimateItem(
            id=self.id,
            job_item_id=self.job_item_id,
            item_type=ItemType(self.item_type),
            description=self.description,
            quantity=self.quantity,
            cost=self.cost,
            price_per_unit=self.price_per_unit,
            unit_price=self.unit_price,
            line_total=self.line_total,
            part_number=self.part_number,
            saved_through=self.saved_through,
            total_quantity=self.total_quantity,
            reserved_part_number=self.reserved_part_number,
            additional=self.additional,
            package_add=self.package_add,
            fee_amount=self.fee_amount,
            fee_percentage=self.fee_percentage,
            base_item_id=self.base_item_id,
            labor_type=self.labor_type,
            labor_time=self.labor_time,
            tax_category=self.tax_category,
            order_status=PartOrderStatus(self.order_status),
            needs_review=self.needs_review,
            review_reason=self.review_reason,
        )

    @classmethod
    def from_dto(cls, dto, job_item_id: UUID, position: int = 0) -> "EstimateItemModel":
        return cls(
            id=dto.id,
            job_item_id=job_item_id,
            position=position,
            item_type=dto.item_type.value,
            description=dto.description,
            quantity=dto.quantity,
            cost=dto.cost,
            price_per_unit=dto.price_per_unit,
            unit_price=dto.unit_price,
            line_total=dto.line_total,
            part_number=dto.part_number,
            saved_through=dto.saved_through,
            total_quantity=dto.total_quantity,
            reserved_part_number=dto.reserved_part_number,
            additional=dto.additional,
            package_add=dto.package_add,
            fee_amount=dto.fee_amount,
            fee_percentage=dto.fee_percentage,
            base_item_id=dto.base_item_id,
            labor_type=dto.labor_type,
            labor_time=dto.labor_time,
            tax_category=dto.tax_category,
            order_status=dto.order_status.value,
            needs_review=dto.needs_review,
            review_reason=dto.review_reason,
        )

    def __repr__(self) -> str:
        return (
            f"<EstimateItemModel {self.id} type={self.item_type} "
            f"qty={self.quantity} part={self.part_number}>"
        )
