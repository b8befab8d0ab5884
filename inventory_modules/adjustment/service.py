"""
Stock Adjustment Processor (``inventory_modules.adjustment.service``).

Responsibility
--------------
Manual corrections: ADD, SUBTRACT, DAMAGE and SET.  Computes the delta to
apply from the locked current quantity, sends it through the
InventoryMutator as an ADJUST movement, and records the adjustment with its
before/after snapshot.

Architecture position
---------------------
**Modules layer**.  ``StockAdjustmentProcessor`` owns the transaction.

Invariants enforced
-------------------
* ``quantity`` is a positive int for ADD/SUBTRACT/DAMAGE, a non-negative int
  (the target on-hand) for SET.  Zero or negative input is a
  ``ValidationError``, never a no-op.
* With clamping on (default), SUBTRACT/DAMAGE floor at zero:
  ``after = max(0, before - quantity)``, and the ledger records the actual
  delta applied, not the requested one.  A record already at or below zero
  gets a zero delta.
* With clamping off, an over-subtraction raises ``InsufficientStockError``.
* ``reason`` is required.

Audit relevance
---------------
``stock_adjusted`` carries requested and applied quantities;
``adjustment_clamped`` is a WARNING so silent clamping stays visible.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_config.bridges import build_document_numberer, build_inventory_mutator
from inventory_config.schema import InventorySettings
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import (
    MovementReference,
    MovementType,
    ReferenceType,
    require_non_negative_int,
    require_positive_int,
)
from inventory_kernel.exceptions import StockAdjustmentNotFoundError, ValidationError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.document_numbering import DocumentNumberer, DocumentType
from inventory_kernel.services.inventory_mutator import InventoryMutator
from inventory_modules.adjustment.models import AdjustmentType, StockAdjustment
from inventory_modules.adjustment.orm import StockAdjustmentModel

logger = get_logger("modules.adjustment.service")


class StockAdjustmentProcessor:
    """Manual stock corrections, one ledger entry each."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
        mutator: InventoryMutator | None = None,
        numberer: DocumentNumberer | None = None,
        clamp_adjustments: bool | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._mutator = mutator or build_inventory_mutator(session, settings, self._clock)
        self._numberer = numberer or build_document_numberer(session, settings, self._clock)
        if clamp_adjustments is None:
            clamp_adjustments = settings.inventory.clamp_adjustments if settings is not None else True
        self._clamp = clamp_adjustments
        self._stock = StockSelector(session)

    def adjust(
        self,
        product_id: UUID,
        location_id: UUID,
        adjustment_type: AdjustmentType,
        quantity: int,
        reason: str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StockAdjustment:
        """
        Apply one manual correction.

        Preconditions:
            - ``quantity`` positive (non-negative for SET); ``reason`` non-blank.
        Postconditions:
            - One ADJUST movement whose delta equals ``applied_delta``;
              one StockAdjustment row; committed.
        Raises:
            ValidationError, InsufficientStockError (clamping off)
        """
        try:
            if not isinstance(adjustment_type, AdjustmentType):
                raise ValidationError(
                    "adjustment_type", f"unknown adjustment type {adjustment_type!r}",
                )
            if adjustment_type is AdjustmentType.SET:
                require_non_negative_int("quantity", quantity)
            else:
                require_positive_int("quantity", quantity)
            if reason is None or not reason.strip():
                raise ValidationError("reason", "an adjustment needs a reason")

            adjustment_id = uuid4()
            with LogContext.bind(
                actor_id=actor_id, document_type="stock_adjustment", document_id=adjustment_id,
            ):
                self._mutator.lock_records([(product_id, location_id)])
                before = self._stock.get_level(product_id, location_id).quantity
                delta = self._delta_for(adjustment_type, quantity, before)

                if adjustment_type.is_outbound and delta != -quantity:
                    logger.warning(
                        "adjustment_clamped",
                        extra={
                            "product_id": str(product_id),
                            "location_id": str(location_id),
                            "adjustment_type": adjustment_type.value,
                            "before_qty": before,
                            "requested_qty": quantity,
                            "applied_delta": delta,
                        },
                    )

                adjustment_no = self._numberer.next_number(DocumentType.STOCK_ADJUSTMENT)
                entry = self._mutator.apply_delta(
                    product_id=product_id,
                    location_id=location_id,
                    delta=delta,
                    movement_type=MovementType.ADJUST,
                    reference=MovementReference(
                        ReferenceType.STOCK_ADJUSTMENT, adjustment_id, adjustment_no,
                    ),
                    actor_id=actor_id,
                    reason=reason,
                    notes=notes,
                )

                model = StockAdjustmentModel(
                    id=adjustment_id,
                    adjustment_no=adjustment_no,
                    product_id=product_id,
                    location_id=location_id,
                    adjustment_type=adjustment_type.value,
                    requested_qty=quantity,
                    applied_delta=entry.quantity,
                    before_qty=entry.before_qty,
                    after_qty=entry.after_qty,
                    reason=reason,
                    notes=notes,
                    movement_entry_id=entry.id,
                    adjusted_at=entry.occurred_at,
                    created_by_id=actor_id,
                )
                self._session.add(model)
                self._session.flush()

                logger.info(
                    "stock_adjusted",
                    extra={
                        "adjustment_id": str(adjustment_id),
                        "adjustment_no": adjustment_no,
                        "adjustment_type": adjustment_type.value,
                        "requested_qty": quantity,
                        "applied_delta": entry.quantity,
                        "before_qty": entry.before_qty,
                        "after_qty": entry.after_qty,
                    },
                )
                dto = model.to_dto()
            self._session.commit()
            return dto

        except Exception:
            self._session.rollback()
            raise

    def get_adjustment(self, adjustment_id: UUID) -> StockAdjustment:
        model = self._session.get(StockAdjustmentModel, adjustment_id)
        if model is None:
            raise StockAdjustmentNotFoundError(str(adjustment_id))
        return model.to_dto()

    def list_adjustments(
        self,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
    ) -> list[StockAdjustment]:
        stmt = select(StockAdjustmentModel)
        if product_id is not None:
            stmt = stmt.where(StockAdjustmentModel.product_id == product_id)
        if location_id is not None:
            stmt = stmt.where(StockAdjustmentModel.location_id == location_id)
        stmt = stmt.order_by(StockAdjustmentModel.adjustment_no)
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def _delta_for(self, adjustment_type: AdjustmentType, quantity: int, before: int) -> int:
        if adjustment_type is AdjustmentType.ADD:
            return quantity
        if adjustment_type is AdjustmentType.SET:
            return quantity - before
        if not self._clamp:
            return -quantity
        return -min(quantity, max(before, 0))
