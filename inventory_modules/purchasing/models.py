"""
Purchasing Domain Models (``inventory_modules.purchasing.models``).

Responsibility
--------------
Frozen value objects for purchase orders and the receipts booked against
them, plus the input specs callers pass to the workflow.

Architecture
------------
Layer: **Modules** -- pure data.  No database identity beyond ids and no I/O.

Invariants
----------
- ``PurchaseOrderLine.received_qty`` never exceeds ``ordered_qty``.
- ``ReceiptLineSpec``: ``accepted_qty + rejected_qty == received_qty``
  (checked by ``validate()``, raising ``ValidationError``).
- Money fields are ``Decimal``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.domain.values import require_non_negative_int, require_positive_int
from inventory_kernel.exceptions import ValidationError


class PurchaseOrderStatus(Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ORDERED = "ORDERED"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ReceiptStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


# -----------------------------------------------------------------------------
# Input specs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PurchaseOrderLineSpec:
    """One requested order line."""
    product_id: UUID
    ordered_qty: int
    unit_price: Decimal = Decimal("0")

    def validate(self) -> None:
        require_positive_int("ordered_qty", self.ordered_qty)
        if not isinstance(self.unit_price, Decimal):
            raise ValidationError("unit_price", "must be a Decimal")
        if self.unit_price < 0:
            raise ValidationError("unit_price", f"cannot be negative ({self.unit_price})")


@dataclass(frozen=True)
class ReceiptLineSpec:
    """What the dock counted for one product."""
    product_id: UUID
    received_qty: int
    accepted_qty: int
    rejected_qty: int = 0

    def validate(self) -> None:
        require_non_negative_int("received_qty", self.received_qty)
        require_non_negative_int("accepted_qty", self.accepted_qty)
        require_non_negative_int("rejected_qty", self.rejected_qty)
        if self.accepted_qty + self.rejected_qty != self.received_qty:
            raise ValidationError(
                "received_qty",
                f"accepted ({self.accepted_qty}) + rejected ({self.rejected_qty}) "
                f"must equal received ({self.received_qty}) for product {self.product_id}",
            )


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PurchaseOrderLine:
    id: UUID
    purchase_order_id: UUID
    line_no: int
    product_id: UUID
    ordered_qty: int
    received_qty: int
    unit_price: Decimal
    line_total: Decimal

    @property
    def outstanding_qty(self) -> int:
        return self.ordered_qty - self.received_qty

    @property
    def is_fully_received(self) -> bool:
        return self.received_qty == self.ordered_qty


@dataclass(frozen=True)
class PurchaseOrder:
    id: UUID
    order_no: str
    supplier_id: UUID
    status: PurchaseOrderStatus
    order_date: date
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    lines: tuple[PurchaseOrderLine, ...] = field(default_factory=tuple)
    expected_date: date | None = None
    notes: str | None = None
    approved_at: datetime | None = None
    approved_by_id: UUID | None = None
    ordered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    def line_for(self, product_id: UUID) -> PurchaseOrderLine | None:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None


@dataclass(frozen=True)
class PurchaseReceiptLine:
    id: UUID
    receipt_id: UUID
    purchase_order_line_id: UUID
    product_id: UUID
    expected_qty: int
    received_qty: int
    accepted_qty: int
    rejected_qty: int


@dataclass(frozen=True)
class PurchaseReceipt:
    id: UUID
    receipt_no: str
    purchase_order_id: UUID
    location_id: UUID
    status: ReceiptStatus
    payload_hash: str
    lines: tuple[PurchaseReceiptLine, ...] = field(default_factory=tuple)
    notes: str | None = None
    completed_at: datetime | None = None

    @property
    def total_accepted(self) -> int:
        return sum(line.accepted_qty for line in self.lines)

    @property
    def total_rejected(self) -> int:
        return sum(line.rejected_qty for line in self.lines)
