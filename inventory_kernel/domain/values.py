"""
Stock value objects (``inventory_kernel.domain.values``).

Pure enums and references shared by the kernel and every workflow module.
ZERO I/O.

Sign convention for ``MovementType``:

    IN        delta >= 0   (receipts)
    OUT       delta <= 0   (goods issues)
    ADJUST    either sign  (adjustments, count true-ups)
    TRANSFER  either sign  (paired -qty at source, +qty at destination)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import ValidationError


class MovementType(Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"
    TRANSFER = "TRANSFER"


class ReferenceType(Enum):
    """The kind of document that caused a movement."""
    PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
    GOODS_ISSUE = "GOODS_ISSUE"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    STOCK_COUNT = "STOCK_COUNT"
    TRANSFER = "TRANSFER"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class MovementReference:
    """Points a ledger entry back at its causing document."""
    reference_type: ReferenceType
    reference_id: UUID
    reference_no: str | None = None

    @classmethod
    def manual(cls, reference_id: UUID, reference_no: str | None = None) -> MovementReference:
        return cls(ReferenceType.MANUAL, reference_id, reference_no)


def validate_delta_sign(movement_type: MovementType, delta: int) -> None:
    """Reject deltas whose sign contradicts the movement type."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta", f"must be an integer, got {delta!r}")
    if movement_type is MovementType.IN and delta < 0:
        raise ValidationError("delta", f"IN movement cannot be negative ({delta})")
    if movement_type is MovementType.OUT and delta > 0:
        raise ValidationError("delta", f"OUT movement cannot be positive ({delta})")


def require_positive_int(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(field, f"must be a positive integer, got {value!r}")
    return value


def require_non_negative_int(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(field, f"must be a non-negative integer, got {value!r}")
    return value
