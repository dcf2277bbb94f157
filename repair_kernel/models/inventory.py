"""
Module: repair_kernel.models.inventory
Responsibility: SQLAlchemy ORM model for per-shop inventory records, the
    only contended resource in the repair workflow.

Architecture position: Kernel > Models. Inherits from Base.

Invariants enforced:
    - One row per (shop_id, part_number) (unique constraint).
    - Quantities use Decimal (Numeric(18, 4)), never float.

Failure modes:
    - IntegrityError on a duplicate (shop_id, part_number).
"""

from decimal import Decimal

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from repair_kernel.db.base import Base


class InventoryRecordModel(Base):
    """
    ORM model for stock of one part number in one shop.

    Maps to: repair_kernel.domain.job.InventoryRecord.
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("shop_id", "part_number", name="uq_inventory_shop_part"),
    )

    shop_id: Mapped[str] = mapped_column(String(64))
    part_number: Mapped[str] = mapped_column(String(100))
    available_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    part_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    package_add: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    core_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    def to_dto(self):
        from repair_kernel.domain.job import InventoryRecord

        return InventoryRecord(
            id=self.id,
            shop_id=self.shop_id,
            part_number=self.part_number,
            available_quantity=self.available_quantity,
            quantity=self.quantity,
            cost=self.cost,
            part_price=self.part_price,
            package_add=self.package_add,
            core_price=self.core_price,
        )

    @classmethod
    def from_dto(cls, dto) -> "InventoryRecordModel":
        return cls(
            id=dto.id,
            shop_id=dto.shop_id,
            part_number=dto.part_number,
            available_quantity=dto.available_quantity,
            quantity=dto.quantity,
            cost=dto.cost,
            part_price=dto.part_price,
            package_add=dto.package_add,
            core_price=dto.core_price,
        )

    def apply_dto(self, dto) -> None:
        """Copy mutable quantities and prices from the DTO onto this row."""
        self.available_quantity = dto.available_quantity
        self.quantity = dto.quantity
        self.cost = dto.cost
        self.part_price = dto.part_price
        self.package_add = dto.package_add
        self.core_price = dto.core_price

    def __repr__(self) -> str:
        return (
            f"<InventoryRecordModel {self.shop_id}/{self.part_number} "
            f"available={self.available_quantity} on_hand={self.quantity}>"
        )
