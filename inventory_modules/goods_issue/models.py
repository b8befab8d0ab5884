"""
Goods Issue Domain Models (``inventory_modules.goods_issue.models``).

Frozen value objects for outbound stock documents.  No I/O.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from inventory_kernel.domain.values import require_positive_int
from inventory_kernel.exceptions import ValidationError

MAX_NOTES_LENGTH = 500


class GoodsIssueType(Enum):
    SALES = "SALES"
    DAMAGE = "DAMAGE"
    OTHER = "OTHER"


class GoodsIssueStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


def validate_notes(field_name: str, notes: str | None) -> None:
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(
            field_name, f"must be at most {MAX_NOTES_LENGTH} characters ({len(notes)} given)",
        )


@dataclass(frozen=True)
class GoodsIssueLineSpec:
    """One product to take out of the warehouse."""
    product_id: UUID
    quantity: int
    notes: str | None = None

    def validate(self) -> None:
        require_positive_int("quantity", self.quantity)
        validate_notes("line.notes", self.notes)


@dataclass(frozen=True)
class GoodsIssueLine:
    id: UUID
    goods_issue_id: UUID
    product_id: UUID
    quantity: int
    notes: str | None = None
    movement_entry_id: UUID | None = None


@dataclass(frozen=True)
class GoodsIssue:
    id: UUID
    issue_no: str
    warehouse_id: UUID
    issue_type: GoodsIssueType
    status: GoodsIssueStatus
    issue_date: date
    lines: tuple[GoodsIssueLine, ...] = field(default_factory=tuple)
    reference_type: str | None = None
    reference_id: str | None = None
    notes: str | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)
