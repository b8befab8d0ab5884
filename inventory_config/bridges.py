"""
Config -> Kernel Bridges.

The kernel never imports ``inventory_config``.  These functions turn
settings into the plain values and objects kernel services accept.

Usage:
    settings = get_active_config()
    mutator = build_inventory_mutator(session, settings, clock)
    numberer = build_document_numberer(session, settings, clock)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from inventory_config.schema import InventorySettings
from inventory_kernel.domain.clock import Clock
from inventory_kernel.services.document_numbering import (
    NumberingRule,
    SequenceDocumentNumberer,
)
from inventory_kernel.services.inventory_mutator import InventoryMutator, MovementSink


def build_numbering_rules(settings: InventorySettings) -> dict[str, NumberingRule]:
    return {
        document_type: NumberingRule(
            prefix=rule.prefix,
            width=rule.width,
            date_segment=rule.date_segment,
            separator=rule.separator,
        )
        for document_type, rule in settings.numbering.rules.items()
    }


def build_document_numberer(
    session: Session,
    settings: InventorySettings | None = None,
    clock: Clock | None = None,
) -> SequenceDocumentNumberer:
    rules = build_numbering_rules(settings) if settings is not None else None
    return SequenceDocumentNumberer(session, rules=rules, clock=clock)


def build_inventory_mutator(
    session: Session,
    settings: InventorySettings | None = None,
    clock: Clock | None = None,
    movement_sink: MovementSink | None = None,
) -> InventoryMutator:
    allow_negative = (
        settings.inventory.allow_negative_stock_default if settings is not None else False
    )
    return InventoryMutator(
        session,
        clock=clock,
        allow_negative_default=allow_negative,
        movement_sink=movement_sink,
    )
