"""
Purchasing Module (``inventory_modules.purchasing``).

Responsibility
--------------
Procure-to-stock: purchase orders from draft to completion and the partial
receipts that bring accepted quantity into stock.

Architecture position
---------------------
**Modules layer** -- frozen DTOs, ORM models, workflow tables, and two
service facades (``PurchaseOrderWorkflow``, ``ReceivingProcessor``) that
write stock only through the kernel ``InventoryMutator``.

Invariants enforced
-------------------
* received_qty on an order line is monotonic and never exceeds ordered_qty.
* Receiving is idempotent per receipt id.
* Order state after receiving is derived from its lines, never set by hand.
"""

from inventory_modules.purchasing.models import (
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderLineSpec,
    PurchaseOrderStatus,
    PurchaseReceipt,
    PurchaseReceiptLine,
    ReceiptLineSpec,
    ReceiptStatus,
)
from inventory_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW, RECEIPT_WORKFLOW

__all__ = [
    "PurchaseOrder",
    "PurchaseOrderLine",
    "PurchaseOrderLineSpec",
    "PurchaseOrderStatus",
    "PurchaseReceipt",
    "PurchaseReceiptLine",
    "ReceiptLineSpec",
    "ReceiptStatus",
    "PURCHASE_ORDER_WORKFLOW",
    "RECEIPT_WORKFLOW",
]
