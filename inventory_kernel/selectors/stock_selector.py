"""
StockSelector -- read-only access to current stock levels.

Returns StockLevel DTOs; a (product, location) with no record reads as an
all-zero level rather than an error.
"""

from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import StockLevel
from inventory_kernel.models.stock import ProductStockPolicy, StockRecord
from inventory_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector):
    """Queries over StockRecord."""

    def get_level(self, product_id: UUID, location_id: UUID) -> StockLevel:
        record = self.session.execute(
            select(StockRecord).where(
                StockRecord.product_id == product_id,
                StockRecord.location_id == location_id,
            )
        ).scalar_one_or_none()
        if record is None:
            return StockLevel.empty(product_id, location_id)
        return record.to_level()

    def list_for_location(self, location_id: UUID) -> list[StockLevel]:
        records = self.session.execute(
            select(StockRecord)
            .where(StockRecord.location_id == location_id)
            .order_by(StockRecord.product_id)
        ).scalars().all()
        return [r.to_level() for r in records]

    def list_for_product(self, product_id: UUID) -> list[StockLevel]:
        records = self.session.execute(
            select(StockRecord)
            .where(StockRecord.product_id == product_id)
            .order_by(StockRecord.location_id)
        ).scalars().all()
        return [r.to_level() for r in records]

    def total_on_hand(self, product_id: UUID) -> int:
        """On-hand quantity summed over every location."""
        return sum(level.quantity for level in self.list_for_product(product_id))

    def allows_negative(self, product_id: UUID) -> bool | None:
        """The product's override flag, or None when no policy row exists."""
        return self.session.execute(
            select(ProductStockPolicy.allow_negative_stock)
            .where(ProductStockPolicy.product_id == product_id)
        ).scalar_one_or_none()
