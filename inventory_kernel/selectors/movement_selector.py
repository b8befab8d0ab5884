"""
MovementSelector -- read-only queries over the movement ledger.

The ledger is queryable by product, location, causing document, movement
type and time range.  ``chain`` returns one record's entries in entry_seq
order, the order in which they sum to the cached quantity.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import MovementEntry
from inventory_kernel.domain.values import MovementType, ReferenceType
from inventory_kernel.models.movement import MovementEntryModel
from inventory_kernel.selectors.base import BaseSelector


class MovementSelector(BaseSelector):
    """Queries over MovementEntryModel."""

    def query(
        self,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
        reference_id: UUID | None = None,
        reference_type: ReferenceType | None = None,
        movement_type: MovementType | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[MovementEntry]:
        """
        Filtered ledger read.  ``since`` is inclusive, ``until`` exclusive.
        Ordered by occurred_at, then product/location, then entry_seq.
        """
        stmt = select(MovementEntryModel)
        if product_id is not None:
            stmt = stmt.where(MovementEntryModel.product_id == product_id)
        if location_id is not None:
            stmt = stmt.where(MovementEntryModel.location_id == location_id)
        if reference_id is not None:
            stmt = stmt.where(MovementEntryModel.reference_id == reference_id)
        if reference_type is not None:
            stmt = stmt.where(MovementEntryModel.reference_type == reference_type.value)
        if movement_type is not None:
            stmt = stmt.where(MovementEntryModel.movement_type == movement_type.value)
        if since is not None:
            stmt = stmt.where(MovementEntryModel.occurred_at >= since)
        if until is not None:
            stmt = stmt.where(MovementEntryModel.occurred_at < until)

        stmt = stmt.order_by(
            MovementEntryModel.occurred_at,
            MovementEntryModel.product_id,
            MovementEntryModel.location_id,
            MovementEntryModel.entry_seq,
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def chain(self, product_id: UUID, location_id: UUID) -> list[MovementEntry]:
        """All entries for one stock record, oldest first."""
        rows = self.session.execute(
            select(MovementEntryModel)
            .where(
                MovementEntryModel.product_id == product_id,
                MovementEntryModel.location_id == location_id,
            )
            .order_by(MovementEntryModel.entry_seq)
        ).scalars().all()
        return [m.to_dto() for m in rows]

    def for_reference(self, reference_id: UUID) -> list[MovementEntry]:
        """Every entry caused by one document."""
        return self.query(reference_id=reference_id)
