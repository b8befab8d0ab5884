"""
Inventory Modules.

Workflow layers over the Inventory Kernel.  Each module contains:
- Domain models (frozen DTOs and enums)
- ORM models (persistence, ``to_dto``)
- Workflows (transition tables)
- A service that owns its transaction and writes stock only through
  the kernel ``InventoryMutator``

Modules:
- purchasing: purchase orders and partial receiving
- goods_issue: outbound stock for sales, damage, other
- adjustment: manual corrections
- stock_count: physical counts and reconciliation
"""
