"""Kernel write services.  All flush-only; callers own the transaction."""

from inventory_kernel.services.document_numbering import (
    DocumentNumberer,
    DocumentType,
    NumberingRule,
    SequenceDocumentNumberer,
)
from inventory_kernel.services.inventory_mutator import InventoryMutator
from inventory_kernel.services.sequence_service import SequenceService

__all__ = [
    "InventoryMutator",
    "SequenceService",
    "DocumentNumberer",
    "DocumentType",
    "NumberingRule",
    "SequenceDocumentNumberer",
]
