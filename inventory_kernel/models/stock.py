"""
Module: inventory_kernel.models.stock
Responsibility: ORM models for the per-(product, location) stock record and the
    per-product stock policy that governs it.
Architecture position: Kernel > Models.  Imports from db/ and domain/ only.

Invariants enforced:
    - One StockRecord per (product_id, location_id) (unique constraint).
    - available_qty is never stored; it is a hybrid expression over quantity
      and reserved_qty and therefore cannot go stale relative to either.
    - reserved_qty >= 0 (check constraint).
    - ``version`` is SQLAlchemy's version_id_col: an UPDATE that finds the
      row at a different version raises StaleDataError, which the
      InventoryMutator surfaces as OptimisticLockError.
    - Only InventoryMutator writes quantity, reserved_qty, ledger_seq or
      last_counted_at.

Audit relevance:
    ledger_seq is the number of MovementEntry rows appended for this record;
    the reconciliation service checks that the chain is contiguous up to it.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase
from inventory_kernel.domain.dtos import StockLevel


class StockRecord(TrackedBase):
    """
    Current quantity cache for one product at one location.

    The movement ledger is the history; this row is the cached sum of it.
    """

    __tablename__ = "stock_records"

    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        CheckConstraint("reserved_qty >= 0", name="ck_stock_reserved_non_negative"),
        Index("idx_stock_location", "location_id"),
        Index("idx_stock_product", "product_id"),
    )

    product_id: Mapped[UUID] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)

    # On-hand quantity
    quantity: Mapped[int] = mapped_column(nullable=False, default=0)
    reserved_qty: Mapped[int] = mapped_column(nullable=False, default=0)

    # Number of ledger entries appended for this record
    ledger_seq: Mapped[int] = mapped_column(nullable=False, default=0)

    last_counted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def available_qty(self) -> int:
        return self.quantity - self.reserved_qty

    def to_level(self) -> StockLevel:
        return StockLevel(
            product_id=self.product_id,
            location_id=self.location_id,
            quantity=self.quantity,
            reserved_qty=self.reserved_qty,
            available_qty=self.quantity - self.reserved_qty,
            version=self.version or 0,
            last_counted_at=self.last_counted_at,
        )

    def __repr__(self) -> str:
        return (
            f"<StockRecord product={self.product_id} location={self.location_id} "
            f"qty={self.quantity} reserved={self.reserved_qty}>"
        )


class ProductStockPolicy(TrackedBase):
    """
    Per-product stock rules.

    Products themselves live outside the kernel; this row only carries the
    flags the stock ledger needs.  A product without a policy row uses the
    configured defaults.
    """

    __tablename__ = "product_stock_policies"

    __table_args__ = (
        UniqueConstraint("product_id", name="uq_stock_policy_product"),
    )

    product_id: Mapped[UUID] = mapped_column(nullable=False)

    # Override for the negative-stock guard
    allow_negative_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Replenishment thresholds
    safety_stock: Mapped[int] = mapped_column(nullable=False, default=0)
    reorder_point: Mapped[int] = mapped_column(nullable=False, default=0)
    reorder_qty: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ProductStockPolicy product={self.product_id} "
            f"allow_negative={self.allow_negative_stock}>"
        )
