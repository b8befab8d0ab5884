"""
Goods Issue Module (``inventory_modules.goods_issue``).

Outbound stock documents (sales, damage, other).  A PENDING issue is either
completed, deducting every line in one transaction, or cancelled with no
stock impact.
"""

from inventory_modules.goods_issue.models import (
    GoodsIssue,
    GoodsIssueLine,
    GoodsIssueLineSpec,
    GoodsIssueStatus,
    GoodsIssueType,
)
from inventory_modules.goods_issue.workflows import GOODS_ISSUE_WORKFLOW

__all__ = [
    "GoodsIssue",
    "GoodsIssueLine",
    "GoodsIssueLineSpec",
    "GoodsIssueStatus",
    "GoodsIssueType",
    "GOODS_ISSUE_WORKFLOW",
]
