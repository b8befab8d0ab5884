"""
Inventory Services.

Read-only cross-cutting services over the kernel:
- LedgerReconciliationService: proves stock records equal their ledger chains
- ReplenishmentService: low-stock alerts and purchase suggestions
"""

from inventory_services.ledger_reconciliation_service import (
    FindingKind,
    LedgerReconciliationService,
    ReconciliationFinding,
    ReconciliationResult,
)
from inventory_services.replenishment_service import (
    LowStockAlert,
    PurchaseSuggestion,
    ReplenishmentService,
    Urgency,
)

__all__ = [
    "FindingKind",
    "LedgerReconciliationService",
    "ReconciliationFinding",
    "ReconciliationResult",
    "LowStockAlert",
    "PurchaseSuggestion",
    "ReplenishmentService",
    "Urgency",
]
