"""
Module: inventory_modules.goods_issue.orm
Responsibility: SQLAlchemy persistence for goods issues and their lines.

Architecture position: Modules > Goods Issue > ORM.  Inherits from TrackedBase.

Invariants enforced:
    - issue_no is unique.
    - quantity > 0 on every line (check constraint).
    - A COMPLETED issue and its lines are frozen (immutability listeners).

Audit relevance:
    Each completed line points at the OUT movement it produced through
    movement_entry_id.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase


class GoodsIssueModel(TrackedBase):
    """
    ORM model for an outbound stock document.

    Maps to: inventory_modules.goods_issue.models.GoodsIssue.
    """

    __tablename__ = "goods_issues"

    __table_args__ = (
        UniqueConstraint("issue_no", name="uq_goods_issues_issue_no"),
        Index("idx_goods_issues_warehouse", "warehouse_id"),
        Index("idx_goods_issues_status", "status"),
    )

    issue_no: Mapped[str] = mapped_column(String(50), nullable=False)
    warehouse_id: Mapped[UUID] = mapped_column(nullable=False)
    issue_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["GoodsIssueLineModel"]] = relationship(
        back_populates="issue",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="GoodsIssueLineModel.line_no",
    )

    def to_dto(self):
        from inventory_modules.goods_issue.models import (
            GoodsIssue,
            GoodsIssueStatus,
            GoodsIssueType,
        )

        return GoodsIssue(
            id=self.id,
            issue_no=self.issue_no,
            warehouse_id=self.warehouse_id,
            issue_type=GoodsIssueType(self.issue_type),
            status=GoodsIssueStatus(self.status),
            issue_date=self.issue_date,
            lines=tuple(line.to_dto() for line in self.lines),
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            notes=self.notes,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
        )

    def __repr__(self) -> str:
        return f"<GoodsIssueModel {self.issue_no} {self.issue_type} status={self.status}>"


class GoodsIssueLineModel(TrackedBase):
    """ORM model for one product line on a goods issue."""

    __tablename__ = "goods_issue_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_goods_issue_lines_positive_qty"),
        Index("idx_goods_issue_lines_issue", "goods_issue_id"),
        Index("idx_goods_issue_lines_product", "product_id"),
    )

    goods_issue_id: Mapped[UUID] = mapped_column(ForeignKey("goods_issues.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    movement_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)

    issue: Mapped["GoodsIssueModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from inventory_modules.goods_issue.models import GoodsIssueLine

        return GoodsIssueLine(
            id=self.id,
            goods_issue_id=self.goods_issue_id,
            product_id=self.product_id,
            quantity=self.quantity,
            notes=self.notes,
            movement_entry_id=self.movement_entry_id,
        )

    def __repr__(self) -> str:
        return f"<GoodsIssueLineModel product={self.product_id} qty={self.quantity}>"
