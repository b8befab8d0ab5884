"""
Document numbering collaborator.

Workflows need a human-readable number per created document; they do not
care how it is produced.  ``DocumentNumberer`` is that seam.  The default
``SequenceDocumentNumberer`` formats values from ``SequenceService`` with a
per-document-type rule:

    purchase_order    PO000001
    purchase_receipt  PR000001
    goods_issue       GI-20240101-0001   (counter restarts each day)
    stock_adjustment  ADJ000001
    stock_count       SC000001

Any object with a matching ``next_number`` can be injected instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.sequence_service import SequenceService

logger = get_logger("services.document_numbering")


class DocumentType:
    PURCHASE_ORDER = "purchase_order"
    PURCHASE_RECEIPT = "purchase_receipt"
    GOODS_ISSUE = "goods_issue"
    STOCK_ADJUSTMENT = "stock_adjustment"
    STOCK_COUNT = "stock_count"


@dataclass(frozen=True)
class NumberingRule:
    """How one document type's numbers look."""
    prefix: str
    width: int = 6
    date_segment: bool = False
    separator: str = ""

    def format(self, value: int, day_stamp: str | None = None) -> str:
        parts = [self.prefix]
        if self.date_segment and day_stamp:
            parts.append(day_stamp)
        parts.append(str(value).zfill(self.width))
        return self.separator.join(parts)


DEFAULT_NUMBERING_RULES: Mapping[str, NumberingRule] = {
    DocumentType.PURCHASE_ORDER: NumberingRule("PO"),
    DocumentType.PURCHASE_RECEIPT: NumberingRule("PR"),
    DocumentType.GOODS_ISSUE: NumberingRule("GI", width=4, date_segment=True, separator="-"),
    DocumentType.STOCK_ADJUSTMENT: NumberingRule("ADJ"),
    DocumentType.STOCK_COUNT: NumberingRule("SC"),
}


class DocumentNumberer(Protocol):
    def next_number(self, document_type: str) -> str: ...


class SequenceDocumentNumberer:
    """
    Numbers documents from locked counter rows, inside the caller's
    transaction.  A rolled-back document gives its number back.
    """

    def __init__(
        self,
        session: Session,
        rules: Mapping[str, NumberingRule] | None = None,
        clock: Clock | None = None,
    ):
        self._sequences = SequenceService(session)
        self._rules = dict(DEFAULT_NUMBERING_RULES)
        if rules:
            self._rules.update(rules)
        self._clock = clock or SystemClock()

    def next_number(self, document_type: str) -> str:
        rule = self._rules.get(document_type)
        if rule is None:
            rule = NumberingRule(document_type.upper()[:3])

        day_stamp = None
        sequence_name = document_type
        if rule.date_segment:
            day_stamp = self._clock.now().strftime("%Y%m%d")
            sequence_name = f"{document_type}:{day_stamp}"

        number = rule.format(self._sequences.next_value(sequence_name), day_stamp)
        logger.debug(
            "document_number_assigned",
            extra={"document_type": document_type, "document_no": number},
        )
        return number
