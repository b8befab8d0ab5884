"""
Module: inventory_modules.stock_count.orm
Responsibility: SQLAlchemy persistence for physical stock counts.

Architecture position: Modules > Stock Count > ORM.  Inherits from TrackedBase.

Invariants enforced:
    - count_no is unique; one line per product per count.
    - actual_quantity >= 0 once recorded.
    - difference = actual_quantity - system_quantity once both are known.
    - A COMPLETED count and its lines are frozen (immutability listeners).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase


class StockCountModel(TrackedBase):
    """
    ORM model for a physical count at one location.

    Maps to: inventory_modules.stock_count.models.StockCount.
    """

    __tablename__ = "stock_counts"

    __table_args__ = (
        UniqueConstraint("count_no", name="uq_stock_counts_count_no"),
        Index("idx_stock_counts_location", "location_id"),
        Index("idx_stock_counts_status", "status"),
    )

    count_no: Mapped[str] = mapped_column(String(50), nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    count_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="DRAFT")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reconciled: Mapped[bool] = mapped_column(nullable=False, default=False)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["StockCountLineModel"]] = relationship(
        back_populates="count",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StockCountLineModel.line_no",
    )

    def to_dto(self):
        from inventory_modules.stock_count.models import (
            StockCount,
            StockCountStatus,
            StockCountType,
        )

        return StockCount(
            id=self.id,
            count_no=self.count_no,
            location_id=self.location_id,
            count_type=StockCountType(self.count_type),
            status=StockCountStatus(self.status),
            lines=tuple(line.to_dto() for line in self.lines),
            notes=self.notes,
            reconciled=self.reconciled,
            started_at=self.started_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
        )

    def line_for(self, product_id: UUID) -> "StockCountLineModel | None":
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def __repr__(self) -> str:
        return f"<StockCountModel {self.count_no} {self.count_type} status={self.status}>"


class StockCountLineModel(TrackedBase):
    """ORM model for one product on a stock count."""

    __tablename__ = "stock_count_lines"

    __table_args__ = (
        UniqueConstraint("stock_count_id", "product_id", name="uq_stock_count_lines_product"),
        CheckConstraint(
            "actual_quantity IS NULL OR actual_quantity >= 0",
            name="ck_stock_count_lines_actual_non_negative",
        ),
    )

    stock_count_id: Mapped[UUID] = mapped_column(ForeignKey("stock_counts.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(nullable=False)
    system_quantity: Mapped[int | None] = mapped_column(nullable=True)
    actual_quantity: Mapped[int | None] = mapped_column(nullable=True)
    difference: Mapped[int | None] = mapped_column(nullable=True)
    line_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    counted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    movement_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)

    count: Mapped["StockCountModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from inventory_modules.stock_count.models import CountLineStatus, StockCountLine

        return StockCountLine(
            id=self.id,
            stock_count_id=self.stock_count_id,
            product_id=self.product_id,
            system_quantity=self.system_quantity,
            actual_quantity=self.actual_quantity,
            difference=self.difference,
            line_status=CountLineStatus(self.line_status) if self.line_status else None,
            counted_at=self.counted_at,
            movement_entry_id=self.movement_entry_id,
        )

    def __repr__(self) -> str:
        return (
            f"<StockCountLineModel product={self.product_id} "
            f"system={self.system_quantity} actual={self.actual_quantity}>"
        )
