"""
Stock Count Module (``inventory_modules.stock_count``).

Physical counts that freeze system quantities, classify counted
differences, and optionally true up stock on completion.
"""

from inventory_modules.stock_count.models import (
    CountLineStatus,
    StockCount,
    StockCountLine,
    StockCountStatus,
    StockCountSummary,
    StockCountType,
    classify_difference,
)
from inventory_modules.stock_count.workflows import STOCK_COUNT_WORKFLOW

__all__ = [
    "CountLineStatus",
    "StockCount",
    "StockCountLine",
    "StockCountStatus",
    "StockCountSummary",
    "StockCountType",
    "classify_difference",
    "STOCK_COUNT_WORKFLOW",
]
