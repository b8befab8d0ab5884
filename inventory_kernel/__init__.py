"""
Inventory Kernel

The stock ledger core:
- A single writer (InventoryMutator) for per-location stock records
- An append-only movement ledger reconciled with the cached quantity
- Row-level locking for concurrent writers
- Typed errors carrying the quantities involved
"""

__version__ = "0.1.0"
