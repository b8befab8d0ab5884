"""
Receiving Processor (``inventory_modules.purchasing.receiving``).

Responsibility
--------------
Books inbound deliveries against purchase orders.  Each receipt splits the
counted quantity into accepted and rejected, feeds only the accepted
quantity into the InventoryMutator as an IN movement, advances the order
lines' received_qty, and re-derives the order state.

Architecture position
---------------------
**Modules layer**.  ``ReceivingProcessor`` owns the transaction of every
public method (``commit`` on success, ``rollback`` and re-raise on failure).
``PurchaseOrderWorkflow.receive`` delegates here.

Invariants enforced
-------------------
* accepted + rejected == received per line, checked before persistence.
* received <= ordered - already received per line (``OverReceiptError``),
  checked when the receipt is recorded and again when it is applied.
* All lines of a receipt land in one transaction; any failure rolls back
  every ledger entry already appended for it.
* Idempotency: the caller's receipt id is the key.  A replay with the same
  payload never applies stock twice; a different payload under the same id
  raises ``ReceiptPayloadMismatchError``.

Failure modes
-------------
* ``ValidationError``: malformed lines, product not on the order.
* ``OverReceiptError``: quantity beyond the outstanding order quantity.
* ``InvalidStateError``: order not ORDERED/PARTIAL.
* ``PurchaseOrderNotFoundError`` / ``PurchaseReceiptNotFoundError``.

Audit relevance
---------------
``receipt_created``, ``receipt_completed``, ``receipt_replayed`` and
``over_receipt_rejected`` events carry the order, receipt and quantities.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_config.bridges import build_document_numberer, build_inventory_mutator
from inventory_config.schema import InventorySettings
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import MovementReference, MovementType, ReferenceType
from inventory_kernel.exceptions import (
    InvalidStateError,
    OverReceiptError,
    PurchaseOrderNotFoundError,
    PurchaseReceiptNotFoundError,
    ReceiptPayloadMismatchError,
    ValidationError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.document_numbering import DocumentNumberer, DocumentType
from inventory_kernel.services.inventory_mutator import InventoryMutator
from inventory_kernel.utils.idempotency import receipt_payload_hash
from inventory_modules.purchasing.models import PurchaseReceipt, ReceiptLineSpec
from inventory_modules.purchasing.orm import (
    PurchaseOrderLineModel,
    PurchaseOrderModel,
    PurchaseReceiptLineModel,
    PurchaseReceiptModel,
)
from inventory_modules.purchasing.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    RECEIPT_WORKFLOW,
    RECEIVABLE_STATES,
    derive_receiving_state,
)

logger = get_logger("modules.purchasing.receiving")


class ReceivingProcessor:
    """
    Processes partial and full receipts against purchase orders.

    Contract
    --------
    ``receive(receipt_id, purchase_order_id, location_id, lines, actor_id)
    -> PurchaseReceipt`` records and applies a receipt in one transaction.
    ``create_receipt`` / ``complete_receipt`` split the same work in two.

    Guarantees
    ----------
    * Rejected quantity never reaches stock.
    * Replaying a receipt id never changes received_qty a second time.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
        mutator: InventoryMutator | None = None,
        numberer: DocumentNumberer | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._mutator = mutator or build_inventory_mutator(session, settings, self._clock)
        self._numberer = numberer or build_document_numberer(session, settings, self._clock)

    # =========================================================================
    # Public operations
    # =========================================================================

    def receive(
        self,
        receipt_id: UUID,
        purchase_order_id: UUID,
        location_id: UUID,
        lines: Sequence[ReceiptLineSpec],
        actor_id: UUID,
        notes: str | None = None,
    ) -> PurchaseReceipt:
        """
        Record and apply one delivery.

        Preconditions:
            - The order is ORDERED or PARTIAL.
            - Each line: accepted + rejected == received, received within the
              outstanding quantity of its order line.
        Postconditions:
            - One IN movement per line with accepted_qty > 0, referencing the
              receipt; order lines and order state updated; committed.
            - Replay of a completed receipt id returns it unchanged.
        Raises:
            ValidationError, OverReceiptError, InvalidStateError,
            ReceiptPayloadMismatchError, InsufficientStockError (never for IN,
            listed for completeness of the mutator contract)
        """
        with LogContext.bind(
            actor_id=actor_id, document_type="purchase_receipt", document_id=receipt_id,
        ):
            try:
                self._validate_lines(lines)
                payload_hash = receipt_payload_hash(purchase_order_id, location_id, lines)

                receipt = self._find_receipt(receipt_id, for_update=True)
                if receipt is not None:
                    self._check_replay(receipt, payload_hash)
                    if receipt.status == "COMPLETED":
                        logger.info(
                            "receipt_replayed",
                            extra={
                                "receipt_id": str(receipt_id),
                                "receipt_no": receipt.receipt_no,
                            },
                        )
                        dto = receipt.to_dto()
                        self._session.commit()
                        return dto
                else:
                    receipt = self._record(
                        receipt_id, purchase_order_id, location_id, lines,
                        payload_hash, actor_id, notes,
                    )

                self._apply(receipt, actor_id)
                dto = receipt.to_dto()
                self._session.commit()
                return dto

            except Exception:
                self._session.rollback()
                raise

    def create_receipt(
        self,
        receipt_id: UUID,
        purchase_order_id: UUID,
        location_id: UUID,
        lines: Sequence[ReceiptLineSpec],
        actor_id: UUID,
        notes: str | None = None,
    ) -> PurchaseReceipt:
        """
        Record a PENDING receipt without touching stock.

        ``expected_qty`` on each line is the outstanding order quantity at
        the time of recording.  Re-creating an existing id with the same
        payload returns the existing receipt.
        """
        with LogContext.bind(
            actor_id=actor_id, document_type="purchase_receipt", document_id=receipt_id,
        ):
            try:
                self._validate_lines(lines)
                payload_hash = receipt_payload_hash(purchase_order_id, location_id, lines)

                receipt = self._find_receipt(receipt_id)
                if receipt is not None:
                    self._check_replay(receipt, payload_hash)
                else:
                    receipt = self._record(
                        receipt_id, purchase_order_id, location_id, lines,
                        payload_hash, actor_id, notes,
                    )
                dto = receipt.to_dto()
                self._session.commit()
                return dto

            except Exception:
                self._session.rollback()
                raise

    def complete_receipt(self, receipt_id: UUID, actor_id: UUID) -> PurchaseReceipt:
        """
        Apply a PENDING receipt to stock.

        A receipt that is already COMPLETED is returned as-is; nothing is
        applied twice.
        """
        with LogContext.bind(
            actor_id=actor_id, document_type="purchase_receipt", document_id=receipt_id,
        ):
            try:
                receipt = self._find_receipt(receipt_id, for_update=True)
                if receipt is None:
                    raise PurchaseReceiptNotFoundError(str(receipt_id))

                if receipt.status == "COMPLETED":
                    logger.info(
                        "receipt_replayed",
                        extra={"receipt_id": str(receipt_id), "receipt_no": receipt.receipt_no},
                    )
                else:
                    self._apply(receipt, actor_id)

                dto = receipt.to_dto()
                self._session.commit()
                return dto

            except Exception:
                self._session.rollback()
                raise

    def get_receipt(self, receipt_id: UUID) -> PurchaseReceipt:
        receipt = self._find_receipt(receipt_id)
        if receipt is None:
            raise PurchaseReceiptNotFoundError(str(receipt_id))
        return receipt.to_dto()

    def list_receipts(self, purchase_order_id: UUID) -> list[PurchaseReceipt]:
        receipts = self._session.execute(
            select(PurchaseReceiptModel)
            .where(PurchaseReceiptModel.purchase_order_id == purchase_order_id)
            .order_by(PurchaseReceiptModel.receipt_no)
        ).scalars().all()
        return [r.to_dto() for r in receipts]

    # =========================================================================
    # Internals (flush only)
    # =========================================================================

    def _validate_lines(self, lines: Sequence[ReceiptLineSpec]) -> None:
        if not lines:
            raise ValidationError("lines", "a receipt needs at least one line")
        seen: set[UUID] = set()
        for line in lines:
            line.validate()
            if line.product_id in seen:
                raise ValidationError(
                    "product_id", f"product {line.product_id} appears twice on one receipt",
                )
            seen.add(line.product_id)

    def _check_replay(self, receipt: PurchaseReceiptModel, payload_hash: str) -> None:
        if receipt.payload_hash != payload_hash:
            logger.warning(
                "receipt_payload_mismatch",
                extra={
                    "receipt_id": str(receipt.id),
                    "expected_hash": receipt.payload_hash,
                    "received_hash": payload_hash,
                },
            )
            raise ReceiptPayloadMismatchError(
                receipt_id=str(receipt.id),
                expected_hash=receipt.payload_hash,
                received_hash=payload_hash,
            )

    def _find_receipt(
        self,
        receipt_id: UUID,
        for_update: bool = False,
    ) -> PurchaseReceiptModel | None:
        stmt = select(PurchaseReceiptModel).where(PurchaseReceiptModel.id == receipt_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _lock_order(self, purchase_order_id: UUID) -> PurchaseOrderModel:
        order = self._session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.id == purchase_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise PurchaseOrderNotFoundError(str(purchase_order_id))
        if order.status not in RECEIVABLE_STATES:
            raise InvalidStateError(
                entity_type="PurchaseOrder",
                entity_id=str(order.id),
                current_state=order.status,
                action="receive",
            )
        return order

    def _check_outstanding(
        self,
        order: PurchaseOrderModel,
        po_line: PurchaseOrderLineModel,
        received_qty: int,
    ) -> None:
        outstanding = po_line.ordered_qty - po_line.received_qty
        if received_qty > outstanding:
            logger.warning(
                "over_receipt_rejected",
                extra={
                    "purchase_order_id": str(order.id),
                    "order_no": order.order_no,
                    "product_id": str(po_line.product_id),
                    "ordered_qty": po_line.ordered_qty,
                    "already_received_qty": po_line.received_qty,
                    "requested_qty": received_qty,
                },
            )
            raise OverReceiptError(
                purchase_order_id=str(order.id),
                product_id=str(po_line.product_id),
                ordered_qty=po_line.ordered_qty,
                already_received_qty=po_line.received_qty,
                requested_qty=received_qty,
            )

    def _record(
        self,
        receipt_id: UUID,
        purchase_order_id: UUID,
        location_id: UUID,
        lines: Sequence[ReceiptLineSpec],
        payload_hash: str,
        actor_id: UUID,
        notes: str | None,
    ) -> PurchaseReceiptModel:
        order = self._lock_order(purchase_order_id)

        line_models = []
        for line in lines:
            po_line = order.line_for(line.product_id)
            if po_line is None:
                raise ValidationError(
                    "product_id",
                    f"product {line.product_id} is not on purchase order {order.order_no}",
                )
            self._check_outstanding(order, po_line, line.received_qty)
            line_models.append(
                PurchaseReceiptLineModel(
                    purchase_order_line_id=po_line.id,
                    product_id=line.product_id,
                    expected_qty=po_line.ordered_qty - po_line.received_qty,
                    received_qty=line.received_qty,
                    accepted_qty=line.accepted_qty,
                    rejected_qty=line.rejected_qty,
                    created_by_id=actor_id,
                )
            )

        receipt = PurchaseReceiptModel(
            id=receipt_id,
            receipt_no=self._numberer.next_number(DocumentType.PURCHASE_RECEIPT),
            purchase_order_id=order.id,
            location_id=location_id,
            status=RECEIPT_WORKFLOW.initial_state,
            payload_hash=payload_hash,
            notes=notes,
            lines=line_models,
            created_by_id=actor_id,
        )
        self._session.add(receipt)
        self._session.flush()

        logger.info(
            "receipt_created",
            extra={
                "receipt_id": str(receipt.id),
                "receipt_no": receipt.receipt_no,
                "purchase_order_id": str(order.id),
                "order_no": order.order_no,
                "line_count": len(line_models),
            },
        )
        return receipt

    def _apply(self, receipt: PurchaseReceiptModel, actor_id: UUID) -> None:
        RECEIPT_WORKFLOW.require("PurchaseReceipt", receipt.id, receipt.status, "complete")
        order = self._lock_order(receipt.purchase_order_id)
        po_lines = {line.id: line for line in order.lines}

        # Another receipt may have completed since this one was recorded
        for line in receipt.lines:
            self._check_outstanding(order, po_lines[line.purchase_order_line_id], line.received_qty)

        to_apply = sorted(
            (line for line in receipt.lines if line.accepted_qty > 0),
            key=lambda ln: str(ln.product_id),
        )
        self._mutator.lock_records(
            (line.product_id, receipt.location_id) for line in to_apply
        )

        reference = MovementReference(
            ReferenceType.PURCHASE_RECEIPT, receipt.id, receipt.receipt_no,
        )
        for line in to_apply:
            self._mutator.apply_delta(
                product_id=line.product_id,
                location_id=receipt.location_id,
                delta=line.accepted_qty,
                movement_type=MovementType.IN,
                reference=reference,
                actor_id=actor_id,
                reason=f"Received against {order.order_no}",
            )
            po_line = po_lines[line.purchase_order_line_id]
            po_line.received_qty += line.accepted_qty
            po_line.updated_by_id = actor_id

        self._session.flush()

        receipt.status = "COMPLETED"
        receipt.completed_at = self._clock.now()
        receipt.updated_by_id = actor_id

        self._advance_order(order, actor_id)
        self._session.flush()

        logger.info(
            "receipt_completed",
            extra={
                "receipt_id": str(receipt.id),
                "receipt_no": receipt.receipt_no,
                "purchase_order_id": str(order.id),
                "order_status": order.status,
                "accepted_qty": sum(ln.accepted_qty for ln in receipt.lines),
                "rejected_qty": sum(ln.rejected_qty for ln in receipt.lines),
                "movement_count": len(to_apply),
            },
        )

    def _advance_order(self, order: PurchaseOrderModel, actor_id: UUID) -> None:
        target = derive_receiving_state(
            order.status,
            ((line.received_qty, line.ordered_qty) for line in order.lines),
        )
        if target == order.status and target == "ORDERED":
            return

        PURCHASE_ORDER_WORKFLOW.require(
            "PurchaseOrder", order.id, order.status, "receive", to_state=target,
        )
        previous = order.status
        order.status = target
        order.updated_by_id = actor_id
        if target == "COMPLETED":
            order.completed_at = self._clock.now()

        if previous != target:
            logger.info(
                "purchase_order_status_changed",
                extra={
                    "purchase_order_id": str(order.id),
                    "order_no": order.order_no,
                    "from_status": previous,
                    "to_status": target,
                    "action": "receive",
                },
            )
