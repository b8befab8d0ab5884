"""
Module ORM Registry (``inventory_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy model is imported so that
``Base.metadata`` holds its table before ``create_tables()`` runs, and
declare which module models the immutability listeners protect.

Architecture position
---------------------
**Modules layer** -- utility.  The kernel reaches it only through inline
imports in ``create_tables()`` and ``register_immutability_listeners()``.
"""

from __future__ import annotations


def import_all_orm_models() -> None:
    """Import kernel models and every ``inventory_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import inventory_kernel.models  # noqa: F401
    # fmt: off
    import inventory_modules.adjustment.orm  # noqa: F401
    import inventory_modules.goods_issue.orm  # noqa: F401
    import inventory_modules.purchasing.orm  # noqa: F401
    import inventory_modules.stock_count.orm  # noqa: F401
    # fmt: on


def module_immutability_rules() -> list:
    """Immutability rules for module documents (see ``inventory_kernel.db.immutability``)."""
    from inventory_kernel.db.immutability import ImmutabilityRule
    from inventory_modules.adjustment.orm import StockAdjustmentModel
    from inventory_modules.goods_issue.orm import GoodsIssueLineModel, GoodsIssueModel
    from inventory_modules.purchasing.orm import PurchaseReceiptLineModel, PurchaseReceiptModel
    from inventory_modules.stock_count.orm import StockCountLineModel, StockCountModel

    completed = ("COMPLETED",)
    return [
        ImmutabilityRule(StockAdjustmentModel, "StockAdjustment"),
        ImmutabilityRule(
            GoodsIssueModel, "GoodsIssue",
            status_attr="status", frozen_states=completed,
        ),
        ImmutabilityRule(
            GoodsIssueLineModel, "GoodsIssueLine",
            frozen_states=completed,
            parent_model=GoodsIssueModel, parent_fk_attr="goods_issue_id",
        ),
        ImmutabilityRule(
            PurchaseReceiptModel, "PurchaseReceipt",
            status_attr="status", frozen_states=completed,
        ),
        ImmutabilityRule(
            PurchaseReceiptLineModel, "PurchaseReceiptLine",
            frozen_states=completed,
            parent_model=PurchaseReceiptModel, parent_fk_attr="receipt_id",
        ),
        ImmutabilityRule(
            StockCountModel, "StockCount",
            status_attr="status", frozen_states=completed,
        ),
        ImmutabilityRule(
            StockCountLineModel, "StockCountLine",
            frozen_states=completed,
            parent_model=StockCountModel, parent_fk_attr="stock_count_id",
        ),
    ]
