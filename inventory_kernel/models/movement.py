"""
Module: inventory_kernel.models.movement
Responsibility: ORM model for the append-only movement ledger.
Architecture position: Kernel > Models.

Invariants enforced:
    - after_qty = before_qty + quantity (check constraint, and re-checked by
      the DTO on read).
    - (stock_record_id, entry_seq) is unique: the chain for one record has
      exactly one entry at each position.  A writer that skipped the row lock
      collides here instead of forking the chain.
    - Rows are immutable from creation (ORM listeners in db/immutability.py).

Audit relevance:
    Ordered by entry_seq, the entries for a StockRecord sum to its quantity.
    created_by_id is the actor; reference_type/reference_id name the
    causing document.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString
from inventory_kernel.domain.dtos import MovementEntry
from inventory_kernel.domain.values import MovementType, ReferenceType


class MovementEntryModel(TrackedBase):
    """One signed quantity delta with its before/after snapshot."""

    __tablename__ = "movement_entries"

    __table_args__ = (
        UniqueConstraint("stock_record_id", "entry_seq", name="uq_movement_record_seq"),
        CheckConstraint("after_qty = before_qty + quantity", name="ck_movement_arithmetic"),
        Index("idx_movement_product_location", "product_id", "location_id"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
        Index("idx_movement_occurred_at", "occurred_at"),
    )

    stock_record_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_records.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Signed delta and on-hand snapshots
    quantity: Mapped[int] = mapped_column(nullable=False)
    before_qty: Mapped[int] = mapped_column(nullable=False)
    after_qty: Mapped[int] = mapped_column(nullable=False)

    # Position in the record's chain, 1-based
    entry_seq: Mapped[int] = mapped_column(nullable=False)

    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[UUID] = mapped_column(nullable=False)
    reference_no: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> MovementEntry:
        return MovementEntry(
            id=self.id,
            product_id=self.product_id,
            location_id=self.location_id,
            movement_type=MovementType(self.movement_type),
            quantity=self.quantity,
            before_qty=self.before_qty,
            after_qty=self.after_qty,
            entry_seq=self.entry_seq,
            reference_type=ReferenceType(self.reference_type),
            reference_id=self.reference_id,
            reference_no=self.reference_no,
            reason=self.reason,
            notes=self.notes,
            occurred_at=self.occurred_at,
            actor_id=self.created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<MovementEntryModel #{self.entry_seq} {self.movement_type} "
            f"{self.quantity:+d} ({self.before_qty}->{self.after_qty})>"
        )
