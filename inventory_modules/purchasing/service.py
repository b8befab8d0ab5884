"""
Purchase Order Workflow (``inventory_modules.purchasing.service``).

Responsibility
--------------
Drives a purchase order through DRAFT -> PENDING -> APPROVED -> ORDERED ->
PARTIAL / COMPLETED, or to CANCELLED.  Owns order creation, line edits,
money totals and deletion; delegates receiving to ``ReceivingProcessor``.

Architecture position
---------------------
**Modules layer**.  ``PurchaseOrderWorkflow`` is the sole public entry point
for order lifecycle operations.  Every public method owns its transaction
(``commit`` on success, ``rollback`` and re-raise on failure).

Invariants enforced
-------------------
* Every state change is looked up in ``PURCHASE_ORDER_WORKFLOW`` first.
* Line items are editable only in DRAFT.
* Deletion only in DRAFT or CANCELLED, and only with no receipts.
* ``subtotal = sum(ordered_qty * unit_price)``, ``tax = subtotal * rate``,
  ``total = subtotal + tax``; each rounded half-up to 2 places.

Failure modes
-------------
* ``InvalidStateError`` for an action the current state does not allow.
* ``ValidationError`` for malformed lines.
* ``PurchaseOrderNotFoundError`` for unknown ids.

Usage::

    workflow = PurchaseOrderWorkflow(session, clock=clock)
    order = workflow.create_order(supplier_id, [PurchaseOrderLineSpec(p, 10, Decimal("2.50"))], actor_id)
    workflow.submit(order.id, actor_id)
    workflow.approve(order.id, approver_id)
    workflow.mark_ordered(order.id, actor_id)
    workflow.receive(uuid4(), order.id, location_id, [ReceiptLineSpec(p, 6, 6)], actor_id)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_config.bridges import build_document_numberer
from inventory_config.schema import InventorySettings
from inventory_kernel.db.types import round_money
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import (
    InvalidStateError,
    PurchaseOrderNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.document_numbering import DocumentNumberer, DocumentType
from inventory_modules.purchasing.models import (
    PurchaseOrder,
    PurchaseOrderLineSpec,
    PurchaseOrderStatus,
    PurchaseReceipt,
    ReceiptLineSpec,
)
from inventory_modules.purchasing.orm import PurchaseOrderLineModel, PurchaseOrderModel
from inventory_modules.purchasing.receiving import ReceivingProcessor
from inventory_modules.purchasing.workflows import (
    DELETABLE_STATES,
    EDITABLE_STATES,
    PURCHASE_ORDER_WORKFLOW,
)

logger = get_logger("modules.purchasing.service")

_DEFAULT_TAX_RATE = Decimal("0.05")


class PurchaseOrderWorkflow:
    """
    Purchase order lifecycle.

    Contract
    --------
    * Creation and edits return the ``PurchaseOrder`` DTO.
    * Transitions return the DTO in its new state.

    Non-goals
    ---------
    * Supplier validation and approval authority checks live outside.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
        numberer: DocumentNumberer | None = None,
        receiving: ReceivingProcessor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._numberer = numberer or build_document_numberer(session, settings, self._clock)
        self._receiving = receiving or ReceivingProcessor(
            session, clock=self._clock, settings=settings, numberer=self._numberer,
        )
        if settings is not None:
            self._tax_rate = settings.purchasing.tax_rate
            self._currency = settings.purchasing.currency
        else:
            self._tax_rate = _DEFAULT_TAX_RATE
            self._currency = "USD"

    # =========================================================================
    # Creation and edits
    # =========================================================================

    def create_order(
        self,
        supplier_id: UUID,
        lines: Sequence[PurchaseOrderLineSpec],
        actor_id: UUID,
        expected_date: date | None = None,
        notes: str | None = None,
        order_date: date | None = None,
    ) -> PurchaseOrder:
        """
        Create a DRAFT order with a fresh order number.

        Preconditions:
            - At least one line; ordered_qty >= 1; unit_price >= 0; no
              product twice.
        Postconditions:
            - Order in DRAFT with computed totals, committed.
        """
        try:
            self._validate_lines(lines)
            order = PurchaseOrderModel(
                order_no=self._numberer.next_number(DocumentType.PURCHASE_ORDER),
                supplier_id=supplier_id,
                status=PURCHASE_ORDER_WORKFLOW.initial_state,
                order_date=order_date or self._clock.now().date(),
                expected_date=expected_date,
                currency=self._currency,
                notes=notes,
                created_by_id=actor_id,
            )
            self._set_lines(order, lines, actor_id)
            self._session.add(order)
            self._session.flush()

            logger.info(
                "purchase_order_created",
                extra={
                    "purchase_order_id": str(order.id),
                    "order_no": order.order_no,
                    "supplier_id": str(supplier_id),
                    "line_count": len(order.lines),
                    "total_amount": str(order.total_amount),
                },
            )
            dto = order.to_dto()
            self._session.commit()
            return dto

        except Exception:
            self._session.rollback()
            raise

    def update_order(
        self,
        order_id: UUID,
        actor_id: UUID,
        lines: Sequence[PurchaseOrderLineSpec] | None = None,
        supplier_id: UUID | None = None,
        expected_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Replace header fields and/or all lines.  DRAFT only."""
        try:
            order = self._load(order_id, for_update=True)
            if order.status not in EDITABLE_STATES:
                raise InvalidStateError(
                    entity_type="PurchaseOrder",
                    entity_id=str(order.id),
                    current_state=order.status,
                    action="update",
                )

            if supplier_id is not None:
                order.supplier_id = supplier_id
            if expected_date is not None:
                order.expected_date = expected_date
            if notes is not None:
                order.notes = notes
            if lines is not None:
                self._validate_lines(lines)
                order.lines.clear()
                # Old rows must be gone before the (order, product) key is reused
                self._session.flush()
                self._set_lines(order, lines, actor_id)
            order.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "purchase_order_updated",
                extra={
                    "purchase_order_id": str(order.id),
                    "order_no": order.order_no,
                    "lines_replaced": lines is not None,
                    "total_amount": str(order.total_amount),
                },
            )
            dto = order.to_dto()
            self._session.commit()
            return dto

        except Exception:
            self._session.rollback()
            raise

    def delete_order(self, order_id: UUID, actor_id: UUID) -> None:
        """Delete a DRAFT or CANCELLED order that has never been received against."""
        try:
            order = self._load(order_id, for_update=True)
            if order.status not in DELETABLE_STATES or order.receipts:
                raise InvalidStateError(
                    entity_type="PurchaseOrder",
                    entity_id=str(order.id),
                    current_state=order.status,
                    action="delete",
                )
            order_no = order.order_no
            self._session.delete(order)
            self._session.flush()

            logger.info(
                "purchase_order_deleted",
                extra={
                    "purchase_order_id": str(order_id),
                    "order_no": order_no,
                    "actor_id": str(actor_id),
                },
            )
            self._session.commit()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Transitions
    # =========================================================================

    def submit(self, order_id: UUID, actor_id: UUID) -> PurchaseOrder:
        return self._transition(order_id, "submit", actor_id)

    def reject(self, order_id: UUID, actor_id: UUID) -> PurchaseOrder:
        """Send a PENDING order back to DRAFT for edits."""
        return self._transition(order_id, "reject", actor_id)

    def approve(self, order_id: UUID, actor_id: UUID) -> PurchaseOrder:
        """PENDING -> APPROVED, recording who approved and when."""
        return self._transition(order_id, "approve", actor_id)

    def mark_ordered(self, order_id: UUID, actor_id: UUID) -> PurchaseOrder:
        return self._transition(order_id, "mark_ordered", actor_id)

    def cancel(self, order_id: UUID, actor_id: UUID) -> PurchaseOrder:
        """Cancel from any non-terminal state.  Received stock stays received."""
        return self._transition(order_id, "cancel", actor_id)

    # =========================================================================
    # Receiving and reads
    # =========================================================================

    def receive(
        self,
        receipt_id: UUID,
        order_id: UUID,
        location_id: UUID,
        lines: Sequence[ReceiptLineSpec],
        actor_id: UUID,
        notes: str | None = None,
    ) -> PurchaseReceipt:
        return self._receiving.receive(
            receipt_id, order_id, location_id, lines, actor_id, notes=notes,
        )

    def get_order(self, order_id: UUID) -> PurchaseOrder:
        return self._load(order_id).to_dto()

    def list_orders(
        self,
        supplier_id: UUID | None = None,
        status: PurchaseOrderStatus | None = None,
    ) -> list[PurchaseOrder]:
        stmt = select(PurchaseOrderModel)
        if supplier_id is not None:
            stmt = stmt.where(PurchaseOrderModel.supplier_id == supplier_id)
        if status is not None:
            stmt = stmt.where(PurchaseOrderModel.status == status.value)
        stmt = stmt.order_by(PurchaseOrderModel.order_no)
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, order_id: UUID, for_update: bool = False) -> PurchaseOrderModel:
        stmt = select(PurchaseOrderModel).where(PurchaseOrderModel.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        order = self._session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise PurchaseOrderNotFoundError(str(order_id))
        return order

    def _transition(self, order_id: UUID, action: str, actor_id: UUID) -> PurchaseOrder:
        with LogContext.bind(
            actor_id=actor_id, document_type="purchase_order", document_id=order_id,
        ):
            try:
                order = self._load(order_id, for_update=True)
                transition = PURCHASE_ORDER_WORKFLOW.require(
                    "PurchaseOrder", order.id, order.status, action,
                )
                previous = order.status
                now = self._clock.now()

                order.status = transition.to_state
                order.updated_by_id = actor_id
                if action == "approve":
                    order.approved_at = now
                    order.approved_by_id = actor_id
                elif action == "mark_ordered":
                    order.ordered_at = now
                elif action == "cancel":
                    order.cancelled_at = now
                elif action == "reject":
                    order.approved_at = None
                    order.approved_by_id = None
                self._session.flush()

                logger.info(
                    "purchase_order_status_changed",
                    extra={
                        "purchase_order_id": str(order.id),
                        "order_no": order.order_no,
                        "from_status": previous,
                        "to_status": order.status,
                        "action": action,
                    },
                )
                dto = order.to_dto()
                self._session.commit()
                return dto

            except Exception:
                self._session.rollback()
                raise

    def _validate_lines(self, lines: Sequence[PurchaseOrderLineSpec]) -> None:
        if not lines:
            raise ValidationError("lines", "a purchase order needs at least one line")
        seen: set[UUID] = set()
        for line in lines:
            line.validate()
            if line.product_id in seen:
                raise ValidationError(
                    "product_id", f"product {line.product_id} appears twice on one order",
                )
            seen.add(line.product_id)

    def _set_lines(
        self,
        order: PurchaseOrderModel,
        lines: Sequence[PurchaseOrderLineSpec],
        actor_id: UUID,
    ) -> None:
        subtotal = Decimal("0")
        for line_no, spec in enumerate(lines, start=1):
            line_total = round_money(spec.unit_price * spec.ordered_qty)
            subtotal += line_total
            order.lines.append(
                PurchaseOrderLineModel(
                    line_no=line_no,
                    product_id=spec.product_id,
                    ordered_qty=spec.ordered_qty,
                    received_qty=0,
                    unit_price=spec.unit_price,
                    line_total=line_total,
                    created_by_id=actor_id,
                )
            )

        subtotal = round_money(subtotal)
        tax_amount = round_money(subtotal * self._tax_rate)
        order.subtotal = subtotal
        order.tax_amount = tax_amount
        order.total_amount = round_money(subtotal + tax_amount)
