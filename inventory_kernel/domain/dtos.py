"""
Kernel DTOs (``inventory_kernel.domain.dtos``).

Frozen snapshots handed out by the kernel.  They carry no database identity
beyond ids and no I/O; callers never get a live StockRecord row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from inventory_kernel.domain.values import MovementType, ReferenceType


@dataclass(frozen=True)
class StockLevel:
    """
    Point-in-time quantities for one (product, location).

    ``available_qty`` is always on_hand minus reserved; construction with an
    inconsistent value raises ``ValueError``.
    """
    product_id: UUID
    location_id: UUID
    quantity: int
    reserved_qty: int
    available_qty: int
    version: int = 0
    last_counted_at: datetime | None = None

    def __post_init__(self):
        if self.reserved_qty < 0:
            raise ValueError("reserved_qty cannot be negative")
        if self.available_qty != self.quantity - self.reserved_qty:
            raise ValueError(
                f"available_qty ({self.available_qty}) != quantity "
                f"({self.quantity}) - reserved_qty ({self.reserved_qty})"
            )

    @classmethod
    def empty(cls, product_id: UUID, location_id: UUID) -> StockLevel:
        return cls(product_id, location_id, 0, 0, 0)


@dataclass(frozen=True)
class MovementEntry:
    """One immutable ledger line: ``after_qty == before_qty + quantity``."""
    id: UUID
    product_id: UUID
    location_id: UUID
    movement_type: MovementType
    quantity: int
    before_qty: int
    after_qty: int
    entry_seq: int
    reference_type: ReferenceType
    reference_id: UUID
    reference_no: str | None
    reason: str | None
    notes: str | None
    occurred_at: datetime
    actor_id: UUID

    def __post_init__(self):
        if self.after_qty != self.before_qty + self.quantity:
            raise ValueError(
                f"after_qty ({self.after_qty}) != before_qty ({self.before_qty}) "
                f"+ quantity ({self.quantity})"
            )
