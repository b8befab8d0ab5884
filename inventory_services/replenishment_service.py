"""
ReplenishmentService -- low-stock alerts and purchase suggestions.

Architecture: inventory_services -- read-only over kernel stock records
and product stock policies.

Rules:
    low stock:    quantity <= safety_stock (0 when the product has no policy)
    suggestion:   reorder_point > 0 and available <= reorder_point
    urgency:      CRITICAL  available <= 0
                  HIGH      available <= safety_stock
                  NORMAL    otherwise
    suggested:    reorder_qty when set, else safety_stock * 2 - available,
                  never below 1
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.stock import ProductStockPolicy, StockRecord

logger = get_logger("services.replenishment")


class Urgency(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    NORMAL = "NORMAL"


_URGENCY_RANK = {Urgency.CRITICAL: 0, Urgency.HIGH: 1, Urgency.NORMAL: 2}


@dataclass(frozen=True)
class LowStockAlert:
    product_id: UUID
    location_id: UUID
    quantity: int
    safety_stock: int

    @property
    def shortfall(self) -> int:
        return self.safety_stock - self.quantity


@dataclass(frozen=True)
class PurchaseSuggestion:
    product_id: UUID
    location_id: UUID
    quantity: int
    available_qty: int
    safety_stock: int
    reorder_point: int
    suggested_qty: int
    urgency: Urgency


def classify_urgency(available: int, safety_stock: int) -> Urgency:
    if available <= 0:
        return Urgency.CRITICAL
    if available <= safety_stock:
        return Urgency.HIGH
    return Urgency.NORMAL


def suggested_quantity(available: int, safety_stock: int, reorder_qty: int | None) -> int:
    if reorder_qty:
        return max(reorder_qty, 1)
    return max(safety_stock * 2 - available, 1)


class ReplenishmentService:
    """Read-only replenishment views over current stock."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def low_stock(self, location_id: UUID | None = None) -> list[LowStockAlert]:
        stmt = (
            select(StockRecord, ProductStockPolicy.safety_stock)
            .outerjoin(ProductStockPolicy, ProductStockPolicy.product_id == StockRecord.product_id)
            .order_by(StockRecord.location_id, StockRecord.product_id)
        )
        if location_id is not None:
            stmt = stmt.where(StockRecord.location_id == location_id)

        alerts = []
        for record, safety_stock in self._session.execute(stmt).all():
            threshold = safety_stock or 0
            if record.quantity <= threshold:
                alerts.append(
                    LowStockAlert(
                        product_id=record.product_id,
                        location_id=record.location_id,
                        quantity=record.quantity,
                        safety_stock=threshold,
                    )
                )

        logger.info(
            "low_stock_scanned",
            extra={
                "location_id": str(location_id) if location_id else None,
                "alert_count": len(alerts),
            },
        )
        return alerts

    def purchase_suggestions(self, location_id: UUID | None = None) -> list[PurchaseSuggestion]:
        stmt = (
            select(StockRecord, ProductStockPolicy)
            .join(ProductStockPolicy, ProductStockPolicy.product_id == StockRecord.product_id)
            .where(ProductStockPolicy.reorder_point > 0)
        )
        if location_id is not None:
            stmt = stmt.where(StockRecord.location_id == location_id)

        suggestions = []
        for record, policy in self._session.execute(stmt).all():
            available = record.quantity - record.reserved_qty
            if available > policy.reorder_point:
                continue
            suggestions.append(
                PurchaseSuggestion(
                    product_id=record.product_id,
                    location_id=record.location_id,
                    quantity=record.quantity,
                    available_qty=available,
                    safety_stock=policy.safety_stock,
                    reorder_point=policy.reorder_point,
                    suggested_qty=suggested_quantity(
                        available, policy.safety_stock, policy.reorder_qty,
                    ),
                    urgency=classify_urgency(available, policy.safety_stock),
                )
            )

        suggestions.sort(key=lambda s: (_URGENCY_RANK[s.urgency], s.available_qty, str(s.product_id)))
        logger.info(
            "purchase_suggestions_built",
            extra={
                "location_id": str(location_id) if location_id else None,
                "critical": sum(1 for s in suggestions if s.urgency is Urgency.CRITICAL),
                "high": sum(1 for s in suggestions if s.urgency is Urgency.HIGH),
                "normal": sum(1 for s in suggestions if s.urgency is Urgency.NORMAL),
            },
        )
        return suggestions
