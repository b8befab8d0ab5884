"""
InventoryMutator -- the single writer of stock quantities.

Responsibility:
    Every change to a StockRecord's on-hand quantity goes through
    ``apply_delta`` (or ``transfer``, which is two deltas), and every such
    change appends exactly one MovementEntry carrying the before/after
    snapshot.  Reservations (``reserve`` / ``release``) touch reserved_qty
    only and write no ledger entry.

Architecture position:
    Kernel > Services.  Called by every workflow module.  Flushes only; the
    module service owns commit/rollback.

Invariants enforced:
    - Ledger/cache reconciliation: the record update and the ledger append
      happen inside one SAVEPOINT.  Either both land or neither does.
    - Negative-stock guard: an outbound delta that would leave on-hand below
      zero is rejected with InsufficientStockError unless the product's
      policy allows negative stock.  Nothing is written on rejection.
    - Serialization per (product, location): the record is read with
      SELECT ... FOR UPDATE and re-read with populate_existing; the
      version_id_col check catches any writer that bypassed the lock.
    - Chain position: entry_seq is the record's ledger_seq after increment,
      unique per record.
    - available_qty is derived, so it is always consistent with the quantity
      and reserved_qty just written.

Failure modes:
    - ValidationError: delta sign contradicts the movement type, non-int delta.
    - InsufficientStockError: negative-stock guard or over-reservation.
    - OptimisticLockError: concurrent update detected at flush.
    - IntegrityError on concurrent first creation of a record is absorbed by
      a savepoint retry.

Audit relevance:
    Each applied delta is logged as ``stock_delta_applied`` with the
    quantities and the causing document; rejections as
    ``insufficient_stock_rejected``.
    The optional movement sink is handed each entry only after the outermost
    commit; entries from rolled-back work never reach it.
"""

from __future__ import annotations

from typing import Callable, Iterable
from uuid import UUID

from sqlalchemy import and_, event, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import MovementEntry, StockLevel
from inventory_kernel.domain.values import (
    MovementReference,
    MovementType,
    require_positive_int,
    validate_delta_sign,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    OptimisticLockError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import MovementEntryModel
from inventory_kernel.models.stock import ProductStockPolicy, StockRecord
from inventory_kernel.services.base import BaseService

logger = get_logger("services.inventory_mutator")

MovementSink = Callable[[MovementEntry], None]


class InventoryMutator(BaseService):
    """
    Applies signed quantity deltas to stock records and records them.

    Contract:
        ``apply_delta(product_id, location_id, delta, movement_type,
        reference, actor_id) -> MovementEntry``.  A missing record is treated
        as zero and created on first mutation.

    Guarantees:
        - One MovementEntry per applied delta, ``after = before + delta``.
        - Never commits.  Never retries.

    Non-goals:
        - Clamping.  Callers that want a floor (adjustments) compute the
          clamped delta themselves and pass the actual change.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        allow_negative_default: bool = False,
        movement_sink: MovementSink | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._allow_negative_default = allow_negative_default
        self._movement_sink = movement_sink

    # =========================================================================
    # Ledger writes
    # =========================================================================

    def apply_delta(
        self,
        product_id: UUID,
        location_id: UUID,
        delta: int,
        movement_type: MovementType,
        reference: MovementReference,
        actor_id: UUID,
        reason: str | None = None,
        notes: str | None = None,
    ) -> MovementEntry:
        """
        Apply one signed delta and append its ledger entry.

        Preconditions:
            - ``delta`` is an int whose sign matches ``movement_type``.
        Postconditions:
            - On success the record's quantity moved by exactly ``delta`` and
              one MovementEntry with matching snapshots exists.
            - On any failure neither the record nor the ledger changed.

        Raises:
            ValidationError, InsufficientStockError, OptimisticLockError
        """
        validate_delta_sign(movement_type, delta)

        try:
            with self.session.begin_nested():
                record = self._lock_record(product_id, location_id, actor_id)
                model = self._append(
                    record, delta, movement_type, reference, actor_id, reason, notes,
                )
        except StaleDataError as exc:
            raise OptimisticLockError(
                "StockRecord", f"{product_id}@{location_id}",
            ) from exc

        entry = model.to_dto()
        self._publish(entry)
        return entry

    def transfer(
        self,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: int,
        reference: MovementReference,
        actor_id: UUID,
        reason: str | None = None,
        notes: str | None = None,
    ) -> tuple[MovementEntry, MovementEntry]:
        """
        Move stock between locations as two TRANSFER entries sharing one
        reference: ``-quantity`` at the source, ``+quantity`` at the
        destination.  Both or neither.
        """
        require_positive_int("quantity", quantity)
        if from_location_id == to_location_id:
            raise ValidationError(
                "to_location_id", "transfer source and destination must differ",
            )

        try:
            with self.session.begin_nested():
                # Lock in location order so opposing transfers cannot deadlock
                records = {}
                for loc in sorted((from_location_id, to_location_id), key=str):
                    records[loc] = self._lock_record(product_id, loc, actor_id)
                out_model = self._append(
                    records[from_location_id], -quantity, MovementType.TRANSFER,
                    reference, actor_id, reason, notes,
                )
                in_model = self._append(
                    records[to_location_id], quantity, MovementType.TRANSFER,
                    reference, actor_id, reason, notes,
                )
        except StaleDataError as exc:
            raise OptimisticLockError(
                "StockRecord", f"{product_id}@{from_location_id}",
            ) from exc

        out_entry, in_entry = out_model.to_dto(), in_model.to_dto()
        logger.info(
            "stock_transferred",
            extra={
                "product_id": str(product_id),
                "from_location_id": str(from_location_id),
                "to_location_id": str(to_location_id),
                "quantity": quantity,
                "reference_id": str(reference.reference_id),
            },
        )
        self._publish(out_entry)
        self._publish(in_entry)
        return out_entry, in_entry

    # =========================================================================
    # Reservations (no ledger entry)
    # =========================================================================

    def reserve(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        actor_id: UUID,
    ) -> StockLevel:
        """Earmark ``quantity`` of available stock.  No ledger entry."""
        require_positive_int("quantity", quantity)

        with self.session.begin_nested():
            record = self._lock_record(product_id, location_id, actor_id)
            available = record.quantity - record.reserved_qty
            if quantity > available:
                logger.warning(
                    "reservation_rejected",
                    extra={
                        "product_id": str(product_id),
                        "location_id": str(location_id),
                        "available_qty": available,
                        "requested_qty": quantity,
                    },
                )
                raise InsufficientStockError(
                    product_id=str(product_id),
                    location_id=str(location_id),
                    on_hand=record.quantity,
                    requested_delta=-quantity,
                    reserved=record.reserved_qty,
                )
            record.reserved_qty += quantity
            record.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "stock_reserved",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": quantity,
                "reserved_qty": record.reserved_qty,
            },
        )
        return record.to_level()

    def release(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        actor_id: UUID,
    ) -> StockLevel:
        """Give back a reservation.  Releasing more than reserved is invalid."""
        require_positive_int("quantity", quantity)

        with self.session.begin_nested():
            record = self._lock_record(product_id, location_id, actor_id)
            if quantity > record.reserved_qty:
                raise ValidationError(
                    "quantity",
                    f"cannot release {quantity}, only {record.reserved_qty} reserved",
                )
            record.reserved_qty -= quantity
            record.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "stock_released",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": quantity,
                "reserved_qty": record.reserved_qty,
            },
        )
        return record.to_level()

    def mark_counted(
        self,
        product_id: UUID,
        location_id: UUID,
        actor_id: UUID,
    ) -> None:
        """Stamp last_counted_at after a physical count."""
        with self.session.begin_nested():
            record = self._lock_record(product_id, location_id, actor_id)
            record.last_counted_at = self._clock.now()
            record.updated_by_id = actor_id
            self.session.flush()

    # =========================================================================
    # Locking
    # =========================================================================

    def lock_records(self, keys: Iterable[tuple[UUID, UUID]]) -> None:
        """
        Lock the existing records for several (product, location) pairs in
        one deterministic order.

        Multi-line documents call this before applying any line so that two
        documents touching the same products never wait on each other in
        opposite order.  Missing records are created later, on first delta.
        """
        pairs = sorted(set(keys), key=lambda k: (str(k[0]), str(k[1])))
        if not pairs:
            return
        conditions = [
            and_(StockRecord.product_id == p, StockRecord.location_id == loc)
            for p, loc in pairs
        ]
        self.session.execute(
            select(StockRecord)
            .where(or_(*conditions))
            .order_by(StockRecord.product_id, StockRecord.location_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()

    def _lock_record(
        self,
        product_id: UUID,
        location_id: UUID,
        actor_id: UUID,
    ) -> StockRecord:
        stmt = (
            select(StockRecord)
            .where(
                StockRecord.product_id == product_id,
                StockRecord.location_id == location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        record = self.session.execute(stmt).scalar_one_or_none()
        if record is not None:
            return record

        # First movement for this pair; another writer may be creating it too
        savepoint = self.session.begin_nested()
        try:
            record = StockRecord(
                product_id=product_id,
                location_id=location_id,
                quantity=0,
                reserved_qty=0,
                ledger_seq=0,
                created_by_id=actor_id,
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "stock_record_created",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            return record
        except IntegrityError:
            logger.debug(
                "stock_record_create_race_retry",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            savepoint.rollback()
            return self.session.execute(stmt).scalar_one()

    # =========================================================================
    # Internals
    # =========================================================================

    def _allows_negative(self, product_id: UUID) -> bool:
        allowed = self.session.execute(
            select(ProductStockPolicy.allow_negative_stock)
            .where(ProductStockPolicy.product_id == product_id)
        ).scalar_one_or_none()
        if allowed is None:
            return self._allow_negative_default
        return bool(allowed)

    def _append(
        self,
        record: StockRecord,
        delta: int,
        movement_type: MovementType,
        reference: MovementReference,
        actor_id: UUID,
        reason: str | None,
        notes: str | None,
    ) -> MovementEntryModel:
        before_qty = record.quantity
        new_qty = before_qty + delta

        # INVARIANT: negative-stock guard, checked before any write
        if delta < 0 and new_qty < 0 and not self._allows_negative(record.product_id):
            logger.warning(
                "insufficient_stock_rejected",
                extra={
                    "product_id": str(record.product_id),
                    "location_id": str(record.location_id),
                    "on_hand": before_qty,
                    "reserved_qty": record.reserved_qty,
                    "requested_delta": delta,
                    "movement_type": movement_type.value,
                    "reference_type": reference.reference_type.value,
                    "reference_id": str(reference.reference_id),
                },
            )
            raise InsufficientStockError(
                product_id=str(record.product_id),
                location_id=str(record.location_id),
                on_hand=before_qty,
                requested_delta=delta,
                reserved=record.reserved_qty,
            )

        record.quantity = new_qty
        record.ledger_seq += 1
        record.updated_by_id = actor_id

        reserve_ceiling = max(new_qty, 0)
        if record.reserved_qty > reserve_ceiling:
            logger.warning(
                "reservation_trimmed",
                extra={
                    "product_id": str(record.product_id),
                    "location_id": str(record.location_id),
                    "reserved_before": record.reserved_qty,
                    "reserved_after": reserve_ceiling,
                },
            )
            record.reserved_qty = reserve_ceiling

        model = MovementEntryModel(
            stock_record_id=record.id,
            product_id=record.product_id,
            location_id=record.location_id,
            movement_type=movement_type.value,
            quantity=delta,
            before_qty=before_qty,
            after_qty=new_qty,
            entry_seq=record.ledger_seq,
            reference_type=reference.reference_type.value,
            reference_id=reference.reference_id,
            reference_no=reference.reference_no,
            reason=reason,
            notes=notes,
            occurred_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "stock_delta_applied",
            extra={
                "product_id": str(record.product_id),
                "location_id": str(record.location_id),
                "movement_type": movement_type.value,
                "delta": delta,
                "before_qty": before_qty,
                "after_qty": new_qty,
                "entry_seq": record.ledger_seq,
                "reference_type": reference.reference_type.value,
                "reference_id": str(reference.reference_id),
            },
        )
        return model

    def _publish(self, entry: MovementEntry) -> None:
        if self._movement_sink is not None:
            _pending_movements(self.session).append(
                (_current_transaction(self.session), self._movement_sink, entry)
            )


# =============================================================================
# Movement sink delivery
# =============================================================================
#
# Entries are buffered on the session with the transaction that wrote them.
# The outermost commit delivers them in write order; a rollback drops the
# entries written inside the rolled-back transaction or any of its savepoints.

_PENDING_KEY = "inventory_pending_movements"


def _current_transaction(session: Session):
    return session.get_nested_transaction() or session.get_transaction()


def _pending_movements(session: Session) -> list:
    pending = session.info.get(_PENDING_KEY)
    if pending is None:
        pending = session.info[_PENDING_KEY] = []
        event.listen(session, "after_commit", _deliver_pending)
        event.listen(session, "after_soft_rollback", _discard_pending)
        event.listen(session, "after_transaction_end", _clear_on_root_end)
    return pending


def _written_inside(transaction, rolled_back) -> bool:
    while transaction is not None:
        if transaction is rolled_back:
            return True
        transaction = transaction.parent
    return False


def _deliver_pending(session: Session) -> None:
    # Savepoint releases fire after_commit too; only the outermost commit counts
    if session.in_nested_transaction():
        return
    pending = session.info.get(_PENDING_KEY)
    if not pending:
        return
    batch = list(pending)
    pending.clear()
    for _, sink, entry in batch:
        try:
            sink(entry)
        except Exception:
            logger.exception(
                "movement_sink_failed",
                extra={"movement_entry_id": str(entry.id)},
            )
            raise


def _discard_pending(session: Session, previous_transaction) -> None:
    pending = session.info.get(_PENDING_KEY)
    if not pending:
        return
    kept = [item for item in pending if not _written_inside(item[0], previous_transaction)]
    dropped = len(pending) - len(kept)
    pending[:] = kept
    if dropped:
        logger.debug("movement_sink_entries_discarded", extra={"discarded": dropped})


def _clear_on_root_end(session: Session, transaction) -> None:
    # A root transaction closed without commit leaves nothing deliverable
    if transaction.parent is None:
        pending = session.info.get(_PENDING_KEY)
        if pending:
            pending.clear()
