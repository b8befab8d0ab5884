"""
Goods Issue Workflow Service (``inventory_modules.goods_issue.service``).

Responsibility
--------------
Creates outbound stock documents and completes them by deducting every line
through the InventoryMutator, or cancels them without stock impact.

Architecture position
---------------------
**Modules layer**.  ``GoodsIssueWorkflow`` owns the transaction of each
public method (``commit`` on success, ``rollback`` and re-raise on failure).

Invariants enforced
-------------------
* Completion is all-or-nothing across the whole issue: if any line would
  breach the negative-stock guard, no line's deduction survives.
* Only PENDING issues complete or cancel (``InvalidStateError`` otherwise).
* A COMPLETED issue is frozen by the immutability listeners.

Failure modes
-------------
* ``InsufficientStockError`` from the mutator, with the quantities of the
  offending line.
* ``ValidationError`` for empty issues, non-positive quantities, notes over
  500 characters.
* ``GoodsIssueNotFoundError`` for unknown ids.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_config.bridges import build_document_numberer, build_inventory_mutator
from inventory_config.schema import InventorySettings
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import MovementReference, MovementType, ReferenceType
from inventory_kernel.exceptions import GoodsIssueNotFoundError, InsufficientStockError, ValidationError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.document_numbering import DocumentNumberer, DocumentType
from inventory_kernel.services.inventory_mutator import InventoryMutator
from inventory_modules.goods_issue.models import (
    GoodsIssue,
    GoodsIssueLineSpec,
    GoodsIssueStatus,
    GoodsIssueType,
    validate_notes,
)
from inventory_modules.goods_issue.orm import GoodsIssueLineModel, GoodsIssueModel
from inventory_modules.goods_issue.workflows import GOODS_ISSUE_WORKFLOW

logger = get_logger("modules.goods_issue.service")


class GoodsIssueWorkflow:
    """
    Outbound stock documents.

    Contract
    --------
    ``complete_issue(issue_id, actor_id) -> GoodsIssue``: one OUT movement
    per line, referencing the issue, or none at all.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
        mutator: InventoryMutator | None = None,
        numberer: DocumentNumberer | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._mutator = mutator or build_inventory_mutator(session, settings, self._clock)
        self._numberer = numberer or build_document_numberer(session, settings, self._clock)

    def create_issue(
        self,
        warehouse_id: UUID,
        issue_type: GoodsIssueType,
        lines: Sequence[GoodsIssueLineSpec],
        actor_id: UUID,
        issue_date: date | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> GoodsIssue:
        """
        Record a PENDING goods issue.  No stock moves yet.

        Preconditions:
            - At least one line, each with quantity >= 1.
            - Notes at most 500 characters.
        """
        try:
            if not isinstance(issue_type, GoodsIssueType):
                raise ValidationError("issue_type", f"unknown goods issue type {issue_type!r}")
            if not lines:
                raise ValidationError("lines", "a goods issue needs at least one line")
            for line in lines:
                line.validate()
            validate_notes("notes", notes)

            issue = GoodsIssueModel(
                issue_no=self._numberer.next_number(DocumentType.GOODS_ISSUE),
                warehouse_id=warehouse_id,
                issue_type=issue_type.value,
                status=GOODS_ISSUE_WORKFLOW.initial_state,
                issue_date=issue_date or self._clock.now().date(),
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
                created_by_id=actor_id,
                lines=[
                    GoodsIssueLineModel(
                        line_no=line_no,
                        product_id=line.product_id,
                        quantity=line.quantity,
                        notes=line.notes,
                        created_by_id=actor_id,
                    )
                    for line_no, line in enumerate(lines, start=1)
                ],
            )
            self._session.add(issue)
            self._session.flush()

            logger.info(
                "goods_issue_created",
                extra={
                    "goods_issue_id": str(issue.id),
                    "issue_no": issue.issue_no,
                    "issue_type": issue.issue_type,
                    "warehouse_id": str(warehouse_id),
                    "line_count": len(issue.lines),
                },
            )
            dto = issue.to_dto()
            self._session.commit()
            return dto

        except Exception:
            self._session.rollback()
            raise

    def complete_issue(self, issue_id: UUID, actor_id: UUID) -> GoodsIssue:
        """
        Deduct every line and mark the issue COMPLETED.

        Postconditions:
            - On success: one OUT movement per line, issue COMPLETED, committed.
            - On failure: no movement from this issue is visible, issue still
              PENDING.
        Raises:
            InvalidStateError, InsufficientStockError, GoodsIssueNotFoundError
        """
        with LogContext.bind(actor_id=actor_id, document_type="goods_issue", document_id=issue_id):
            try:
                issue = self._load(issue_id, for_update=True)
                GOODS_ISSUE_WORKFLOW.require("GoodsIssue", issue.id, issue.status, "complete")

                ordered_lines = sorted(issue.lines, key=lambda ln: (str(ln.product_id), ln.line_no))
                self._mutator.lock_records(
                    (line.product_id, issue.warehouse_id) for line in ordered_lines
                )

                reference = MovementReference(ReferenceType.GOODS_ISSUE, issue.id, issue.issue_no)
                try:
                    for line in ordered_lines:
                        entry = self._mutator.apply_delta(
                            product_id=line.product_id,
                            location_id=issue.warehouse_id,
                            delta=-line.quantity,
                            movement_type=MovementType.OUT,
                            reference=reference,
                            actor_id=actor_id,
                            reason=f"Goods issue {issue.issue_no}",
                            notes=line.notes,
                        )
                        line.movement_entry_id = entry.id
                        line.updated_by_id = actor_id
                except InsufficientStockError as exc:
                    logger.warning(
                        "goods_issue_completion_rejected",
                        extra={
                            "goods_issue_id": str(issue.id),
                            "issue_no": issue.issue_no,
                            "product_id": exc.product_id,
                            "on_hand": exc.on_hand,
                            "requested_delta": exc.requested_delta,
                        },
                    )
                    raise

                # Lines flush while the issue is still PENDING
                self._session.flush()

                issue.status = "COMPLETED"
                issue.completed_at = self._clock.now()
                issue.updated_by_id = actor_id
                self._session.flush()

                logger.info(
                    "goods_issue_completed",
                    extra={
                        "goods_issue_id": str(issue.id),
                        "issue_no": issue.issue_no,
                        "line_count": len(ordered_lines),
                        "total_quantity": sum(ln.quantity for ln in ordered_lines),
                    },
                )
                dto = issue.to_dto()
                self._session.commit()
                return dto

            except Exception:
                self._session.rollback()
                raise

    def cancel_issue(self, issue_id: UUID, actor_id: UUID) -> GoodsIssue:
        """Cancel a PENDING issue.  No stock impact."""
        with LogContext.bind(actor_id=actor_id, document_type="goods_issue", document_id=issue_id):
            try:
                issue = self._load(issue_id, for_update=True)
                GOODS_ISSUE_WORKFLOW.require("GoodsIssue", issue.id, issue.status, "cancel")
                issue.status = "CANCELLED"
                issue.cancelled_at = self._clock.now()
                issue.updated_by_id = actor_id
                self._session.flush()

                logger.info(
                    "goods_issue_cancelled",
                    extra={"goods_issue_id": str(issue.id), "issue_no": issue.issue_no},
                )
                dto = issue.to_dto()
                self._session.commit()
                return dto

            except Exception:
                self._session.rollback()
                raise

    def get_issue(self, issue_id: UUID) -> GoodsIssue:
        return self._load(issue_id).to_dto()

    def list_issues(
        self,
        warehouse_id: UUID | None = None,
        status: GoodsIssueStatus | None = None,
    ) -> list[GoodsIssue]:
        stmt = select(GoodsIssueModel)
        if warehouse_id is not None:
            stmt = stmt.where(GoodsIssueModel.warehouse_id == warehouse_id)
        if status is not None:
            stmt = stmt.where(GoodsIssueModel.status == status.value)
        stmt = stmt.order_by(GoodsIssueModel.issue_no)
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def _load(self, issue_id: UUID, for_update: bool = False) -> GoodsIssueModel:
        stmt = select(GoodsIssueModel).where(GoodsIssueModel.id == issue_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        issue = self._session.execute(stmt).scalar_one_or_none()
        if issue is None:
            raise GoodsIssueNotFoundError(str(issue_id))
        return issue
