"""
Stock Adjustment Domain Models (``inventory_modules.adjustment.models``).

Frozen value objects for one-shot manual corrections.  No I/O.

``requested_qty`` is what the operator typed; ``applied_delta`` is the
change that actually reached stock.  They differ only when a SUBTRACT or
DAMAGE was clamped at zero.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class AdjustmentType(Enum):
    ADD = "ADD"
    SUBTRACT = "SUBTRACT"
    DAMAGE = "DAMAGE"
    SET = "SET"

    @property
    def is_outbound(self) -> bool:
        return self in (AdjustmentType.SUBTRACT, AdjustmentType.DAMAGE)


@dataclass(frozen=True)
class StockAdjustment:
    id: UUID
    adjustment_no: str
    product_id: UUID
    location_id: UUID
    adjustment_type: AdjustmentType
    requested_qty: int
    applied_delta: int
    before_qty: int
    after_qty: int
    reason: str
    movement_entry_id: UUID
    adjusted_at: datetime
    notes: str | None = None

    @property
    def requested_delta(self) -> int:
        if self.adjustment_type is AdjustmentType.ADD:
            return self.requested_qty
        if self.adjustment_type is AdjustmentType.SET:
            return self.requested_qty - self.before_qty
        return -self.requested_qty

    @property
    def clamped(self) -> bool:
        return self.applied_delta != self.requested_delta
