"""
Module: inventory_modules.purchasing.orm
Responsibility: SQLAlchemy persistence for purchase orders, their lines,
    and the receipts booked against them.

Architecture position: Modules > Purchasing > ORM.  Inherits from TrackedBase.
    Suppliers, products and locations are external entities referenced by
    UUID with no foreign key.

Invariants enforced:
    - order_no and receipt_no are unique.
    - One order line per product per order (receiving matches by product).
    - 0 <= received_qty <= ordered_qty on order lines (check constraint).
    - accepted_qty + rejected_qty = received_qty on receipt lines.
    - A PurchaseReceipt's primary key is the caller's receipt id, which is
      also the idempotency key for receiving.

Audit relevance:
    Receipt lines explain every IN movement whose reference is the receipt.
    Completed receipts are frozen by the immutability listeners.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase


# =============================================================================
# PurchaseOrderModel
# =============================================================================

class PurchaseOrderModel(TrackedBase):
    """
    ORM model for purchase orders.

    Maps to: inventory_modules.purchasing.models.PurchaseOrder.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("order_no", name="uq_purchase_orders_order_no"),
        Index("idx_purchase_orders_supplier", "supplier_id"),
        Index("idx_purchase_orders_status", "status"),
    )

    order_no: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="DRAFT")

    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    ordered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_no",
    )

    receipts: Mapped[list["PurchaseReceiptModel"]] = relationship(
        back_populates="order",
        lazy="selectin",
        order_by="PurchaseReceiptModel.receipt_no",
    )

    def to_dto(self):
        """Convert ORM model to frozen PurchaseOrder DTO."""
        from inventory_modules.purchasing.models import PurchaseOrder, PurchaseOrderStatus

        return PurchaseOrder(
            id=self.id,
            order_no=self.order_no,
            supplier_id=self.supplier_id,
            status=PurchaseOrderStatus(self.status),
            order_date=self.order_date,
            currency=self.currency,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            lines=tuple(line.to_dto() for line in self.lines),
            expected_date=self.expected_date,
            notes=self.notes,
            approved_at=self.approved_at,
            approved_by_id=self.approved_by_id,
            ordered_at=self.ordered_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
        )

    def line_for(self, product_id: UUID) -> "PurchaseOrderLineModel | None":
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_no} status={self.status}>"


# =============================================================================
# PurchaseOrderLineModel
# =============================================================================

class PurchaseOrderLineModel(TrackedBase):
    """ORM model for one product line on a purchase order."""

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "product_id", name="uq_po_lines_order_product"),
        CheckConstraint("received_qty >= 0", name="ck_po_lines_received_non_negative"),
        CheckConstraint("received_qty <= ordered_qty", name="ck_po_lines_no_over_receipt"),
        Index("idx_po_lines_product", "product_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(nullable=False)
    ordered_qty: Mapped[int] = mapped_column(nullable=False)
    received_qty: Mapped[int] = mapped_column(nullable=False, default=0)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped["PurchaseOrderModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from inventory_modules.purchasing.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            line_no=self.line_no,
            product_id=self.product_id,
            ordered_qty=self.ordered_qty,
            received_qty=self.received_qty,
            unit_price=self.unit_price,
            line_total=self.line_total,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderLineModel #{self.line_no} product={self.product_id} "
            f"{self.received_qty}/{self.ordered_qty}>"
        )


# =============================================================================
# PurchaseReceiptModel
# =============================================================================

class PurchaseReceiptModel(TrackedBase):
    """
    ORM model for one inbound delivery against a purchase order.

    ``payload_hash`` is the canonical hash of the receiving request; a replay
    with the same id must match it.
    """

    __tablename__ = "purchase_receipts"

    __table_args__ = (
        UniqueConstraint("receipt_no", name="uq_purchase_receipts_receipt_no"),
        Index("idx_purchase_receipts_order", "purchase_order_id"),
        Index("idx_purchase_receipts_status", "status"),
    )

    receipt_no: Mapped[str] = mapped_column(String(50), nullable=False)
    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    order: Mapped["PurchaseOrderModel"] = relationship(back_populates="receipts")

    lines: Mapped[list["PurchaseReceiptLineModel"]] = relationship(
        back_populates="receipt",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.purchasing.models import PurchaseReceipt, ReceiptStatus

        return PurchaseReceipt(
            id=self.id,
            receipt_no=self.receipt_no,
            purchase_order_id=self.purchase_order_id,
            location_id=self.location_id,
            status=ReceiptStatus(self.status),
            payload_hash=self.payload_hash,
            lines=tuple(
                line.to_dto()
                for line in sorted(self.lines, key=lambda ln: str(ln.product_id))
            ),
            notes=self.notes,
            completed_at=self.completed_at,
        )

    def __repr__(self) -> str:
        return f"<PurchaseReceiptModel {self.receipt_no} status={self.status}>"


# =============================================================================
# PurchaseReceiptLineModel
# =============================================================================

class PurchaseReceiptLineModel(TrackedBase):
    """ORM model for what the dock counted for one product on a receipt."""

    __tablename__ = "purchase_receipt_lines"

    __table_args__ = (
        UniqueConstraint("receipt_id", "product_id", name="uq_receipt_lines_receipt_product"),
        CheckConstraint(
            "accepted_qty + rejected_qty = received_qty",
            name="ck_receipt_lines_split",
        ),
        Index("idx_receipt_lines_po_line", "purchase_order_line_id"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_receipts.id"), nullable=False,
    )
    purchase_order_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_order_lines.id"), nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(nullable=False)
    expected_qty: Mapped[int] = mapped_column(nullable=False)
    received_qty: Mapped[int] = mapped_column(nullable=False)
    accepted_qty: Mapped[int] = mapped_column(nullable=False)
    rejected_qty: Mapped[int] = mapped_column(nullable=False, default=0)

    receipt: Mapped["PurchaseReceiptModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from inventory_modules.purchasing.models import PurchaseReceiptLine

        return PurchaseReceiptLine(
            id=self.id,
            receipt_id=self.receipt_id,
            purchase_order_line_id=self.purchase_order_line_id,
            product_id=self.product_id,
            expected_qty=self.expected_qty,
            received_qty=self.received_qty,
            accepted_qty=self.accepted_qty,
            rejected_qty=self.rejected_qty,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseReceiptLineModel product={self.product_id} "
            f"received={self.received_qty} accepted={self.accepted_qty}>"
        )
