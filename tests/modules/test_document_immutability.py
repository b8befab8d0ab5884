"""
Document immutability tests.

The ORM listeners refuse UPDATE/DELETE on movement entries and stock
adjustments from creation, and on goods issues, receipts and stock counts
(with their lines) once COMPLETED.  These tests bypass the services and
edit the rows directly.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.models.movement import MovementEntryModel
from inventory_modules.adjustment.models import AdjustmentType
from inventory_modules.adjustment.orm import StockAdjustmentModel
from inventory_modules.goods_issue.models import GoodsIssueLineSpec, GoodsIssueType
from inventory_modules.goods_issue.orm import GoodsIssueModel
from inventory_modules.purchasing import ReceiptLineSpec
from inventory_modules.purchasing.orm import PurchaseReceiptModel
from inventory_modules.stock_count.models import StockCountType
from inventory_modules.stock_count.orm import StockCountModel


class TestMovementLedgerImmutability:

    def test_entry_update_rejected(
        self, session, seed_stock, movement_selector, product_id, location_id,
    ):
        seed_stock(product_id, location_id, 10)
        entry = movement_selector.chain(product_id, location_id)[0]
        row = session.get(MovementEntryModel, entry.id)

        row.quantity = 11
        row.after_qty = 11

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "MovementEntry"

    def test_entry_delete_rejected(
        self, session, seed_stock, movement_selector, product_id, location_id,
    ):
        seed_stock(product_id, location_id, 10)
        entry = movement_selector.chain(product_id, location_id)[0]

        session.delete(session.get(MovementEntryModel, entry.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(
        self, session, seed_stock, movement_selector, product_id, location_id, captured_logs,
    ):
        seed_stock(product_id, location_id, 10)
        entry = movement_selector.chain(product_id, location_id)[0]
        session.get(MovementEntryModel, entry.id).notes = "edited"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_type"] == "MovementEntry"
        assert blocked[0]["operation"] == "UPDATE"


class TestAdjustmentImmutability:

    def test_adjustment_update_rejected(
        self, session, adjustments, product_id, location_id, test_actor_id,
    ):
        adj = adjustments.adjust(product_id, location_id, AdjustmentType.ADD, 2, "Found", test_actor_id)

        session.get(StockAdjustmentModel, adj.id).reason = "Rewritten"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestGoodsIssueImmutability:

    def _issue(self, goods_issues, product_id, location_id, actor_id):
        return goods_issues.create_issue(
            location_id, GoodsIssueType.SALES,
            [GoodsIssueLineSpec(product_id=product_id, quantity=2)],
            actor_id,
        )

    def test_pending_issue_is_editable(
        self, session, goods_issues, product_id, location_id, test_actor_id,
    ):
        issue = self._issue(goods_issues, product_id, location_id, test_actor_id)

        row = session.get(GoodsIssueModel, issue.id)
        row.notes = "Customer called"
        row.lines[0].quantity = 3
        session.flush()

        assert goods_issues.get_issue(issue.id).total_quantity == 3

    def test_completed_issue_update_rejected(
        self, session, goods_issues, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 5)
        issue = self._issue(goods_issues, product_id, location_id, test_actor_id)
        goods_issues.complete_issue(issue.id, test_actor_id)

        session.get(GoodsIssueModel, issue.id).notes = "after the fact"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_completed_issue_line_update_rejected(
        self, session, goods_issues, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 5)
        issue = self._issue(goods_issues, product_id, location_id, test_actor_id)
        goods_issues.complete_issue(issue.id, test_actor_id)

        session.get(GoodsIssueModel, issue.id).lines[0].quantity = 1

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "GoodsIssueLine"

    def test_completed_issue_delete_rejected(
        self, session, goods_issues, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 5)
        issue = self._issue(goods_issues, product_id, location_id, test_actor_id)
        goods_issues.complete_issue(issue.id, test_actor_id)

        session.delete(session.get(GoodsIssueModel, issue.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestReceiptImmutability:

    def test_completed_receipt_update_rejected(
        self, session, ordered_po, purchase_orders, location_id, test_actor_id,
    ):
        p = uuid4()
        po = ordered_po([(p, 5)])
        receipt = purchase_orders.receive(
            uuid4(), po.id, location_id,
            [ReceiptLineSpec(product_id=p, received_qty=5, accepted_qty=5)],
            test_actor_id,
        )

        session.get(PurchaseReceiptModel, receipt.id).notes = "relabelled"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestStockCountImmutability:

    def test_completed_count_line_update_rejected(
        self, session, stock_counts, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 4)
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        stock_counts.record_actual(count.id, product_id, 4, test_actor_id)
        stock_counts.complete_count(count.id, test_actor_id)

        session.get(StockCountModel, count.id).lines[0].actual_quantity = 9

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockCountLine"
