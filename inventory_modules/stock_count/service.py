"""
Stock Count Reconciler (``inventory_modules.stock_count.service``).

Responsibility
--------------
Runs physical counts: freezes the system quantity per product when the
count begins, classifies each counted difference (MATCH / SURPLUS /
SHORTAGE), and on explicit completion with ``reconcile=True`` trues up each
differing record with one ADJUST movement.

Architecture position
---------------------
**Modules layer**.  ``StockCountReconciler`` owns the transaction of every
public method.

Invariants enforced
-------------------
* System quantities are frozen at ``begin_count`` / ``start_count``, never
  at creation and never later.
* Nothing touches stock before ``complete_count(..., reconcile=True)``.
* The true-up applies the frozen difference; if live stock moved during the
  count a ``count_drift_detected`` warning names both quantities.
* All true-ups of one count land in one transaction or none do.

Failure modes
-------------
* ``ValidationError``: bad product list, negative actual, uncounted lines.
* ``InvalidStateError``: action not allowed in the count's state.
* ``InsufficientStockError``: a shortage true-up would take drifted live
  stock below zero; the whole completion is rolled back.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

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
)
from inventory_kernel.exceptions import InvalidStateError, StockCountNotFoundError, ValidationError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.document_numbering import DocumentNumberer, DocumentType
from inventory_kernel.services.inventory_mutator import InventoryMutator
from inventory_modules.stock_count.models import (
    CountLineStatus,
    StockCount,
    StockCountLine,
    StockCountStatus,
    StockCountType,
    classify_difference,
)
from inventory_modules.stock_count.orm import StockCountLineModel, StockCountModel
from inventory_modules.stock_count.workflows import COUNTING_STATES, STOCK_COUNT_WORKFLOW

logger = get_logger("modules.stock_count.service")


class StockCountReconciler:
    """
    Physical stock counts.

    Contract
    --------
    ``start_count(location_id, count_type, actor_id, product_ids=None)``
    freezes system quantities.  ``record_actual(count_id, product_id,
    actual_quantity, actor_id)`` classifies the difference.
    ``complete_count(count_id, actor_id, reconcile=True)`` closes the count.
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
        self._stock = StockSelector(session)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_count(
        self,
        location_id: UUID,
        count_type: StockCountType,
        actor_id: UUID,
        product_ids: Sequence[UUID] | None = None,
        notes: str | None = None,
    ) -> StockCount:
        """
        Create a DRAFT count with one line per product to count.

        FULL covers every stock record at the location; CYCLE and SPOT count
        the listed products.  No quantity is frozen yet.
        """
        try:
            count = self._create(location_id, count_type, actor_id, product_ids, notes)
            dto = count.to_dto()
            self._session.commit()
            return dto
        except Exception:
            self._session.rollback()
            raise

    def begin_count(self, count_id: UUID, actor_id: UUID) -> StockCount:
        """DRAFT -> IN_PROGRESS, freezing each line's system quantity."""
        with LogContext.bind(actor_id=actor_id, document_type="stock_count", document_id=count_id):
            try:
                count = self._load(count_id, for_update=True)
                self._begin(count, actor_id)
                dto = count.to_dto()
                self._session.commit()
                return dto
            except Exception:
                self._session.rollback()
                raise

    def start_count(
        self,
        location_id: UUID,
        count_type: StockCountType,
        actor_id: UUID,
        product_ids: Sequence[UUID] | None = None,
        notes: str | None = None,
    ) -> StockCount:
        """Create and begin a count in one transaction."""
        try:
            count = self._create(location_id, count_type, actor_id, product_ids, notes)
            self._begin(count, actor_id)
            dto = count.to_dto()
            self._session.commit()
            return dto
        except Exception:
            self._session.rollback()
            raise

    def record_actual(
        self,
        count_id: UUID,
        product_id: UUID,
        actual_quantity: int,
        actor_id: UUID,
    ) -> StockCountLine:
        """
        Enter the physically counted quantity for one product.

        Re-recording a line overwrites the previous entry.

        Raises:
            ValidationError: negative actual, product not on the count.
            InvalidStateError: count not IN_PROGRESS.
        """
        with LogContext.bind(actor_id=actor_id, document_type="stock_count", document_id=count_id):
            try:
                require_non_negative_int("actual_quantity", actual_quantity)
                count = self._load(count_id, for_update=True)
                if count.status not in COUNTING_STATES:
                    raise InvalidStateError(
                        entity_type="StockCount",
                        entity_id=str(count.id),
                        current_state=count.status,
                        action="record_actual",
                    )
                line = count.line_for(product_id)
                if line is None:
                    raise ValidationError(
                        "product_id", f"product {product_id} is not on count {count.count_no}",
                    )

                difference = actual_quantity - line.system_quantity
                line.actual_quantity = actual_quantity
                line.difference = difference
                line.line_status = classify_difference(difference).value
                line.counted_at = self._clock.now()
                line.updated_by_id = actor_id
                self._session.flush()

                logger.info(
                    "count_actual_recorded",
                    extra={
                        "stock_count_id": str(count.id),
                        "product_id": str(product_id),
                        "system_quantity": line.system_quantity,
                        "actual_quantity": actual_quantity,
                        "difference": difference,
                        "line_status": line.line_status,
                    },
                )
                dto = line.to_dto()
                self._session.commit()
                return dto
            except Exception:
                self._session.rollback()
                raise

    def complete_count(
        self,
        count_id: UUID,
        actor_id: UUID,
        reconcile: bool = True,
    ) -> StockCount:
        """
        Close an IN_PROGRESS count.

        Preconditions:
            - Every line has an actual quantity.
        Postconditions:
            - reconcile=True: one ADJUST movement of ``difference`` per
              non-MATCH line, last_counted_at stamped on every counted record.
            - reconcile=False: no stock impact; the count is a record only.
            - Count COMPLETED and frozen; committed.
        """
        with LogContext.bind(actor_id=actor_id, document_type="stock_count", document_id=count_id):
            try:
                count = self._load(count_id, for_update=True)
                STOCK_COUNT_WORKFLOW.require("StockCount", count.id, count.status, "complete")

                uncounted = [ln for ln in count.lines if ln.actual_quantity is None]
                if uncounted:
                    raise ValidationError(
                        "actual_quantity",
                        f"{len(uncounted)} line(s) on count {count.count_no} not counted yet",
                    )

                adjusted = 0
                if reconcile:
                    adjusted = self._reconcile(count, actor_id)

                # Lines flush while the count is still IN_PROGRESS
                self._session.flush()

                count.status = "COMPLETED"
                count.reconciled = reconcile
                count.completed_at = self._clock.now()
                count.updated_by_id = actor_id
                self._session.flush()

                dto = count.to_dto()
                summary = dto.summary
                logger.info(
                    "stock_count_completed",
                    extra={
                        "stock_count_id": str(count.id),
                        "count_no": count.count_no,
                        "reconciled": reconcile,
                        "adjusted_lines": adjusted,
                        "matched": summary.matched,
                        "surplus": summary.surplus,
                        "shortage": summary.shortage,
                        "net_difference": summary.net_difference,
                    },
                )
                self._session.commit()
                return dto
            except Exception:
                self._session.rollback()
                raise

    def cancel_count(self, count_id: UUID, actor_id: UUID) -> StockCount:
        with LogContext.bind(actor_id=actor_id, document_type="stock_count", document_id=count_id):
            try:
                count = self._load(count_id, for_update=True)
                STOCK_COUNT_WORKFLOW.require("StockCount", count.id, count.status, "cancel")
                count.status = "CANCELLED"
                count.cancelled_at = self._clock.now()
                count.updated_by_id = actor_id
                self._session.flush()

                logger.info(
                    "stock_count_cancelled",
                    extra={"stock_count_id": str(count.id), "count_no": count.count_no},
                )
                dto = count.to_dto()
                self._session.commit()
                return dto
            except Exception:
                self._session.rollback()
                raise

    def get_count(self, count_id: UUID) -> StockCount:
        return self._load(count_id).to_dto()

    def list_counts(
        self,
        location_id: UUID | None = None,
        status: StockCountStatus | None = None,
    ) -> list[StockCount]:
        stmt = select(StockCountModel)
        if location_id is not None:
            stmt = stmt.where(StockCountModel.location_id == location_id)
        if status is not None:
            stmt = stmt.where(StockCountModel.status == status.value)
        stmt = stmt.order_by(StockCountModel.count_no)
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    # =========================================================================
    # Internals (flush only)
    # =========================================================================

    def _load(self, count_id: UUID, for_update: bool = False) -> StockCountModel:
        stmt = select(StockCountModel).where(StockCountModel.id == count_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        count = self._session.execute(stmt).scalar_one_or_none()
        if count is None:
            raise StockCountNotFoundError(str(count_id))
        return count

    def _products_to_count(
        self,
        location_id: UUID,
        count_type: StockCountType,
        product_ids: Sequence[UUID] | None,
    ) -> list[UUID]:
        if count_type is StockCountType.FULL:
            if product_ids:
                raise ValidationError(
                    "product_ids", "a FULL count covers every record at the location",
                )
            products = [level.product_id for level in self._stock.list_for_location(location_id)]
            if not products:
                raise ValidationError(
                    "location_id", f"no stock records to count at {location_id}",
                )
            return products

        if not product_ids:
            raise ValidationError(
                "product_ids", f"a {count_type.value} count needs a list of products",
            )
        if len(set(product_ids)) != len(product_ids):
            raise ValidationError("product_ids", "a product appears twice in the count list")
        return list(product_ids)

    def _create(
        self,
        location_id: UUID,
        count_type: StockCountType,
        actor_id: UUID,
        product_ids: Sequence[UUID] | None,
        notes: str | None,
    ) -> StockCountModel:
        if not isinstance(count_type, StockCountType):
            raise ValidationError("count_type", f"unknown count type {count_type!r}")
        products = self._products_to_count(location_id, count_type, product_ids)

        count = StockCountModel(
            count_no=self._numberer.next_number(DocumentType.STOCK_COUNT),
            location_id=location_id,
            count_type=count_type.value,
            status=STOCK_COUNT_WORKFLOW.initial_state,
            notes=notes,
            reconciled=False,
            created_by_id=actor_id,
            lines=[
                StockCountLineModel(line_no=n, product_id=p, created_by_id=actor_id)
                for n, p in enumerate(products, start=1)
            ],
        )
        self._session.add(count)
        self._session.flush()

        logger.info(
            "stock_count_created",
            extra={
                "stock_count_id": str(count.id),
                "count_no": count.count_no,
                "count_type": count.count_type,
                "location_id": str(location_id),
                "line_count": len(products),
            },
        )
        return count

    def _begin(self, count: StockCountModel, actor_id: UUID) -> None:
        STOCK_COUNT_WORKFLOW.require("StockCount", count.id, count.status, "begin")

        self._mutator.lock_records((line.product_id, count.location_id) for line in count.lines)
        for line in count.lines:
            line.system_quantity = self._stock.get_level(line.product_id, count.location_id).quantity
            line.updated_by_id = actor_id

        count.status = "IN_PROGRESS"
        count.started_at = self._clock.now()
        count.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "stock_count_started",
            extra={
                "stock_count_id": str(count.id),
                "count_no": count.count_no,
                "frozen_total": sum(ln.system_quantity for ln in count.lines),
            },
        )

    def _reconcile(self, count: StockCountModel, actor_id: UUID) -> int:
        lines = sorted(count.lines, key=lambda ln: str(ln.product_id))
        self._mutator.lock_records((line.product_id, count.location_id) for line in lines)

        reference = MovementReference(ReferenceType.STOCK_COUNT, count.id, count.count_no)
        adjusted = 0
        for line in lines:
            if line.line_status != CountLineStatus.MATCH.value:
                live = self._stock.get_level(line.product_id, count.location_id).quantity
                if live != line.system_quantity:
                    logger.warning(
                        "count_drift_detected",
                        extra={
                            "stock_count_id": str(count.id),
                            "product_id": str(line.product_id),
                            "system_quantity": line.system_quantity,
                            "live_quantity": live,
                            "difference": line.difference,
                        },
                    )
                entry = self._mutator.apply_delta(
                    product_id=line.product_id,
                    location_id=count.location_id,
                    delta=line.difference,
                    movement_type=MovementType.ADJUST,
                    reference=reference,
                    actor_id=actor_id,
                    reason=f"Stock count {count.count_no}",
                )
                line.movement_entry_id = entry.id
                line.updated_by_id = actor_id
                adjusted += 1
            self._mutator.mark_counted(line.product_id, count.location_id, actor_id)
        return adjusted
