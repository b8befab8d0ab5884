"""
LedgerReconciliationService -- audits the movement ledger against the
stock-record cache.

Architecture: inventory_services -- read-only.  Imports kernel models and
selectors only.

Checks, per stock record:
    QUANTITY_MISMATCH  sum of entry deltas != record.quantity
    SNAPSHOT_MISMATCH  an entry with after_qty != before_qty + quantity
    CHAIN_BREAK        an entry whose before_qty != previous entry's
                       after_qty (the first entry must start at 0)
    SEQUENCE_GAP       entry_seq values not 1..n, or record.ledger_seq != n

A clean ledger produces no findings.  Findings are logged at ERROR; the
service never repairs anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.stock import StockRecord
from inventory_kernel.selectors.movement_selector import MovementSelector

logger = get_logger("services.ledger_reconciliation")


class FindingKind(Enum):
    QUANTITY_MISMATCH = "QUANTITY_MISMATCH"
    SNAPSHOT_MISMATCH = "SNAPSHOT_MISMATCH"
    CHAIN_BREAK = "CHAIN_BREAK"
    SEQUENCE_GAP = "SEQUENCE_GAP"


@dataclass(frozen=True)
class ReconciliationFinding:
    kind: FindingKind
    product_id: UUID
    location_id: UUID
    detail: str
    entry_seq: int | None = None


@dataclass(frozen=True)
class ReconciliationResult:
    checked_at: datetime
    records_checked: int
    entries_checked: int
    findings: tuple[ReconciliationFinding, ...] = field(default_factory=tuple)

    @property
    def is_reconciled(self) -> bool:
        return not self.findings

    def findings_of(self, kind: FindingKind) -> tuple[ReconciliationFinding, ...]:
        return tuple(f for f in self.findings if f.kind is kind)


class LedgerReconciliationService:
    """Verifies that every stock record is reproduced by its ledger chain.

    Contract:
        - ``verify_record`` / ``verify_location`` / ``verify_all`` return a
          ``ReconciliationResult``; they never raise on a mismatch.

    Non-goals:
        - Does NOT modify records or entries.
    """

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._movements = MovementSelector(session)

    def verify_record(self, product_id: UUID, location_id: UUID) -> ReconciliationResult:
        records = self._session.execute(
            select(StockRecord).where(
                StockRecord.product_id == product_id,
                StockRecord.location_id == location_id,
            )
        ).scalars().all()
        return self._verify(records)

    def verify_location(self, location_id: UUID) -> ReconciliationResult:
        records = self._session.execute(
            select(StockRecord)
            .where(StockRecord.location_id == location_id)
            .order_by(StockRecord.product_id)
        ).scalars().all()
        return self._verify(records)

    def verify_all(self) -> ReconciliationResult:
        records = self._session.execute(
            select(StockRecord).order_by(StockRecord.location_id, StockRecord.product_id)
        ).scalars().all()
        return self._verify(records)

    def _verify(self, records) -> ReconciliationResult:
        findings: list[ReconciliationFinding] = []
        entries_checked = 0
        for record in records:
            record_findings, count = self._check_record(record)
            findings.extend(record_findings)
            entries_checked += count

        result = ReconciliationResult(
            checked_at=self._clock.now(),
            records_checked=len(records),
            entries_checked=entries_checked,
            findings=tuple(findings),
        )

        for finding in result.findings:
            logger.error(
                "ledger_reconciliation_finding",
                extra={
                    "kind": finding.kind.value,
                    "product_id": str(finding.product_id),
                    "location_id": str(finding.location_id),
                    "entry_seq": finding.entry_seq,
                    "detail": finding.detail,
                },
            )
        logger.info(
            "ledger_reconciliation_completed",
            extra={
                "records_checked": result.records_checked,
                "entries_checked": result.entries_checked,
                "finding_count": len(result.findings),
            },
        )
        return result

    def _check_record(self, record: StockRecord) -> tuple[list[ReconciliationFinding], int]:
        chain = self._movements.chain(record.product_id, record.location_id)
        findings: list[ReconciliationFinding] = []

        def finding(kind: FindingKind, detail: str, entry_seq: int | None = None) -> None:
            findings.append(
                ReconciliationFinding(
                    kind=kind,
                    product_id=record.product_id,
                    location_id=record.location_id,
                    detail=detail,
                    entry_seq=entry_seq,
                )
            )

        previous_after = 0
        for expected_seq, entry in enumerate(chain, start=1):
            if entry.entry_seq != expected_seq:
                finding(
                    FindingKind.SEQUENCE_GAP,
                    f"expected entry_seq {expected_seq}, found {entry.entry_seq}",
                    entry.entry_seq,
                )
            if entry.after_qty != entry.before_qty + entry.quantity:
                finding(
                    FindingKind.SNAPSHOT_MISMATCH,
                    f"{entry.before_qty} + {entry.quantity} != {entry.after_qty}",
                    entry.entry_seq,
                )
            if entry.before_qty != previous_after:
                finding(
                    FindingKind.CHAIN_BREAK,
                    f"before_qty {entry.before_qty} does not continue from {previous_after}",
                    entry.entry_seq,
                )
            previous_after = entry.after_qty

        if record.ledger_seq != len(chain):
            finding(
                FindingKind.SEQUENCE_GAP,
                f"record ledger_seq {record.ledger_seq} but {len(chain)} entries",
            )

        ledger_sum = sum(entry.quantity for entry in chain)
        if ledger_sum != record.quantity:
            finding(
                FindingKind.QUANTITY_MISMATCH,
                f"ledger sums to {ledger_sum}, record holds {record.quantity}",
            )

        return findings, len(chain)
