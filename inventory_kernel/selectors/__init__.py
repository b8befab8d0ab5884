"""Read-only selectors over the stock ledger."""

from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.stock_selector import StockSelector

__all__ = ["StockSelector", "MovementSelector"]
