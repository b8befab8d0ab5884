"""Kernel ORM models: stock records, the movement ledger, policies, counters."""

from inventory_kernel.models.movement import MovementEntryModel
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.models.stock import ProductStockPolicy, StockRecord

__all__ = [
    "StockRecord",
    "ProductStockPolicy",
    "MovementEntryModel",
    "SequenceCounter",
]
