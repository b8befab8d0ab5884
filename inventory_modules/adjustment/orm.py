"""
Module: inventory_modules.adjustment.orm
Responsibility: SQLAlchemy persistence for stock adjustments.

Architecture position: Modules > Adjustment > ORM.  Inherits from TrackedBase.

Invariants enforced:
    - adjustment_no is unique.
    - after_qty = before_qty + applied_delta (check constraint).
    - Rows are immutable from creation (immutability listeners); a
      correction of a correction is a new adjustment.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class StockAdjustmentModel(TrackedBase):
    """
    ORM model for one manual stock correction.

    Maps to: inventory_modules.adjustment.models.StockAdjustment.
    """

    __tablename__ = "stock_adjustments"

    __table_args__ = (
        UniqueConstraint("adjustment_no", name="uq_stock_adjustments_no"),
        CheckConstraint(
            "after_qty = before_qty + applied_delta",
            name="ck_stock_adjustments_snapshot",
        ),
        CheckConstraint("requested_qty >= 0", name="ck_stock_adjustments_requested"),
        Index("idx_stock_adjustments_product_location", "product_id", "location_id"),
    )

    adjustment_no: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[UUID] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    adjustment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    requested_qty: Mapped[int] = mapped_column(nullable=False)
    applied_delta: Mapped[int] = mapped_column(nullable=False)
    before_qty: Mapped[int] = mapped_column(nullable=False)
    after_qty: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    movement_entry_id: Mapped[UUID] = mapped_column(nullable=False)
    adjusted_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from inventory_modules.adjustment.models import AdjustmentType, StockAdjustment

        return StockAdjustment(
            id=self.id,
            adjustment_no=self.adjustment_no,
            product_id=self.product_id,
            location_id=self.location_id,
            adjustment_type=AdjustmentType(self.adjustment_type),
            requested_qty=self.requested_qty,
            applied_delta=self.applied_delta,
            before_qty=self.before_qty,
            after_qty=self.after_qty,
            reason=self.reason,
            movement_entry_id=self.movement_entry_id,
            adjusted_at=self.adjusted_at,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<StockAdjustmentModel {self.adjustment_no} {self.adjustment_type} "
            f"{self.before_qty}->{self.after_qty}>"
        )
