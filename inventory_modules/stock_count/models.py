"""
Stock Count Domain Models (``inventory_modules.stock_count.models``).

Responsibility
--------------
Frozen value objects for physical counts and the pure classification of a
counted difference.

Invariants
----------
- ``difference = actual_quantity - system_quantity``.
- ``difference == 0`` -> MATCH, ``> 0`` -> SURPLUS, ``< 0`` -> SHORTAGE.
- ``system_quantity`` is None until the count begins; ``actual_quantity``
  is None until the line is counted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class StockCountType(Enum):
    FULL = "FULL"
    CYCLE = "CYCLE"
    SPOT = "SPOT"


class StockCountStatus(Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CountLineStatus(Enum):
    MATCH = "MATCH"
    SURPLUS = "SURPLUS"
    SHORTAGE = "SHORTAGE"


def classify_difference(difference: int) -> CountLineStatus:
    if difference == 0:
        return CountLineStatus.MATCH
    if difference > 0:
        return CountLineStatus.SURPLUS
    return CountLineStatus.SHORTAGE


@dataclass(frozen=True)
class StockCountLine:
    id: UUID
    stock_count_id: UUID
    product_id: UUID
    system_quantity: int | None = None
    actual_quantity: int | None = None
    difference: int | None = None
    line_status: CountLineStatus | None = None
    counted_at: datetime | None = None
    movement_entry_id: UUID | None = None

    @property
    def is_counted(self) -> bool:
        return self.actual_quantity is not None


@dataclass(frozen=True)
class StockCountSummary:
    line_count: int
    counted: int
    matched: int
    surplus: int
    shortage: int
    net_difference: int

    @property
    def uncounted(self) -> int:
        return self.line_count - self.counted


@dataclass(frozen=True)
class StockCount:
    id: UUID
    count_no: str
    location_id: UUID
    count_type: StockCountType
    status: StockCountStatus
    lines: tuple[StockCountLine, ...] = field(default_factory=tuple)
    notes: str | None = None
    reconciled: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    def line_for(self, product_id: UUID) -> StockCountLine | None:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    @property
    def summary(self) -> StockCountSummary:
        counted = [ln for ln in self.lines if ln.is_counted]
        return StockCountSummary(
            line_count=len(self.lines),
            counted=len(counted),
            matched=sum(1 for ln in counted if ln.line_status is CountLineStatus.MATCH),
            surplus=sum(1 for ln in counted if ln.line_status is CountLineStatus.SURPLUS),
            shortage=sum(1 for ln in counted if ln.line_status is CountLineStatus.SHORTAGE),
            net_difference=sum(ln.difference or 0 for ln in counted),
        )
