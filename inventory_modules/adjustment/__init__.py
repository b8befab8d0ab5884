"""
Stock Adjustment Module (``inventory_modules.adjustment``).

One-shot manual corrections (ADD, SUBTRACT, DAMAGE, SET).  Each adjustment
produces exactly one ADJUST movement and an immutable adjustment record.
"""

from inventory_modules.adjustment.models import AdjustmentType, StockAdjustment

__all__ = [
    "AdjustmentType",
    "StockAdjustment",
]
