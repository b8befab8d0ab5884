"""
Tests for StockCountReconciler.

Validates:
- Starting a count freezes system quantities
- Recording actuals classifies MATCH / SURPLUS / SHORTAGE
- Completion with reconcile adjusts stock by each difference
- Completion without reconcile is a record only
- Lifecycle and validation rules
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from inventory_kernel.domain.values import MovementReference, MovementType, ReferenceType
from inventory_kernel.exceptions import (
    InvalidStateError,
    StockCountNotFoundError,
    ValidationError,
)
from inventory_modules.stock_count.models import (
    CountLineStatus,
    StockCountStatus,
    StockCountType,
)


class TestStartCount:

    def test_freezes_system_quantity(
        self, stock_counts, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 100)

        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )

        assert count.count_no == "SC000001"
        assert count.status is StockCountStatus.IN_PROGRESS
        assert count.started_at is not None
        line = count.line_for(product_id)
        assert line.system_quantity == 100
        assert line.actual_quantity is None
        assert count.summary.uncounted == 1

    def test_full_count_covers_location(
        self, stock_counts, seed_stock, location_id, test_actor_id,
    ):
        p1, p2 = uuid4(), uuid4()
        seed_stock(p1, location_id, 5)
        seed_stock(p2, location_id, 7)
        seed_stock(uuid4(), uuid4(), 9)

        count = stock_counts.start_count(location_id, StockCountType.FULL, test_actor_id)

        assert {ln.product_id for ln in count.lines} == {p1, p2}

    def test_full_count_rejects_product_list(
        self, stock_counts, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 5)
        with pytest.raises(ValidationError):
            stock_counts.start_count(
                location_id, StockCountType.FULL, test_actor_id, product_ids=[product_id],
            )

    def test_full_count_of_empty_location_rejected(self, stock_counts, location_id, test_actor_id):
        with pytest.raises(ValidationError):
            stock_counts.start_count(location_id, StockCountType.FULL, test_actor_id)

    def test_cycle_count_needs_products(self, stock_counts, location_id, test_actor_id):
        with pytest.raises(ValidationError):
            stock_counts.start_count(location_id, StockCountType.CYCLE, test_actor_id)

    def test_duplicate_products_rejected(self, stock_counts, product_id, location_id, test_actor_id):
        with pytest.raises(ValidationError):
            stock_counts.start_count(
                location_id, StockCountType.CYCLE, test_actor_id,
                product_ids=[product_id, product_id],
            )

    def test_uncounted_product_freezes_at_zero(
        self, stock_counts, product_id, location_id, test_actor_id,
    ):
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        assert count.line_for(product_id).system_quantity == 0

    def test_create_then_begin(self, stock_counts, seed_stock, product_id, location_id, test_actor_id):
        seed_stock(product_id, location_id, 12)

        draft = stock_counts.create_count(
            location_id, StockCountType.CYCLE, test_actor_id, product_ids=[product_id],
        )
        assert draft.status is StockCountStatus.DRAFT
        assert draft.line_for(product_id).system_quantity is None

        seed_stock(product_id, location_id, 3)
        begun = stock_counts.begin_count(draft.id, test_actor_id)

        assert begun.line_for(product_id).system_quantity == 15


class TestRecordActual:

    @pytest.mark.parametrize(
        "actual,status,difference",
        [
            (100, CountLineStatus.MATCH, 0),
            (104, CountLineStatus.SURPLUS, 4),
            (80, CountLineStatus.SHORTAGE, -20),
        ],
    )
    def test_classifies_difference(
        self, stock_counts, seed_stock, product_id, location_id, test_actor_id,
        actual, status, difference,
    ):
        seed_stock(product_id, location_id, 100)
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )

        line = stock_counts.record_actual(count.id, product_id, actual, test_actor_id)

        assert line.actual_quantity == actual
        assert line.difference == difference
        assert line.line_status is status
        assert line.counted_at is not None

    def test_rerecording_overwrites(
        self, stock_counts, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 10)
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        stock_counts.record_actual(count.id, product_id, 8, test_actor_id)

        line = stock_counts.record_actual(count.id, product_id, 10, test_actor_id)

        assert line.line_status is CountLineStatus.MATCH

    def test_negative_actual_rejected(
        self, stock_counts, product_id, location_id, test_actor_id,
    ):
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        with pytest.raises(ValidationError):
            stock_counts.record_actual(count.id, product_id, -1, test_actor_id)

    def test_product_not_on_count(self, stock_counts, product_id, location_id, test_actor_id):
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        with pytest.raises(ValidationError):
            stock_counts.record_actual(count.id, uuid4(), 1, test_actor_id)

    def test_draft_count_not_recordable(self, stock_counts, product_id, location_id, test_actor_id):
        draft = stock_counts.create_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        with pytest.raises(InvalidStateError) as exc_info:
            stock_counts.record_actual(draft.id, product_id, 1, test_actor_id)
        assert exc_info.value.action == "record_actual"


class TestCompleteCount:

    def test_shortage_reconciled(
        self, stock_counts, seed_stock, stock_selector, movement_selector,
        product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 100)
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        stock_counts.record_actual(count.id, product_id, 80, test_actor_id)

        completed = stock_counts.complete_count(count.id, test_actor_id)

        assert completed.status is StockCountStatus.COMPLETED
        assert completed.reconciled
        assert stock_selector.get_level(product_id, location_id).quantity == 80
        entries = movement_selector.for_reference(count.id)
        assert len(entries) == 1
        assert entries[0].quantity == -20
        assert entries[0].movement_type is MovementType.ADJUST
        assert entries[0].reference_type is ReferenceType.STOCK_COUNT
        assert completed.line_for(product_id).movement_entry_id == entries[0].id
        assert stock_selector.get_level(product_id, location_id).last_counted_at is not None

    def test_mixed_lines_summary(
        self, stock_counts, seed_stock, stock_selector, movement_selector, location_id, test_actor_id,
    ):
        match, surplus, shortage = uuid4(), uuid4(), uuid4()
        for p in (match, surplus, shortage):
            seed_stock(p, location_id, 10)
        count = stock_counts.start_count(location_id, StockCountType.FULL, test_actor_id)
        stock_counts.record_actual(count.id, match, 10, test_actor_id)
        stock_counts.record_actual(count.id, surplus, 13, test_actor_id)
        stock_counts.record_actual(count.id, shortage, 6, test_actor_id)

        completed = stock_counts.complete_count(count.id, test_actor_id)

        summary = completed.summary
        assert (summary.matched, summary.surplus, summary.shortage) == (1, 1, 1)
        assert summary.net_difference == -1
        assert len(movement_selector.for_reference(count.id)) == 2
        assert completed.line_for(match).movement_entry_id is None
        assert stock_selector.get_level(surplus, location_id).quantity == 13
        assert stock_selector.get_level(shortage, location_id).quantity == 6

    def test_without_reconcile_no_stock_impact(
        self, stock_counts, seed_stock, stock_selector, movement_selector,
        product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 100)
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        stock_counts.record_actual(count.id, product_id, 80, test_actor_id)

        completed = stock_counts.complete_count(count.id, test_actor_id, reconcile=False)

        assert completed.status is StockCountStatus.COMPLETED
        assert not completed.reconciled
        assert stock_selector.get_level(product_id, location_id).quantity == 100
        assert movement_selector.for_reference(count.id) == []

    def test_uncounted_lines_block_completion(
        self, stock_counts, seed_stock, location_id, test_actor_id,
    ):
        p1, p2 = uuid4(), uuid4()
        seed_stock(p1, location_id, 1)
        seed_stock(p2, location_id, 1)
        count = stock_counts.start_count(location_id, StockCountType.FULL, test_actor_id)
        stock_counts.record_actual(count.id, p1, 1, test_actor_id)

        with pytest.raises(ValidationError):
            stock_counts.complete_count(count.id, test_actor_id)

        assert stock_counts.get_count(count.id).status is StockCountStatus.IN_PROGRESS

    def test_drift_since_start_is_warned(
        self, stock_counts, seed_stock, mutator, session, stock_selector,
        product_id, location_id, test_actor_id, captured_logs,
    ):
        seed_stock(product_id, location_id, 100)
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        stock_counts.record_actual(count.id, product_id, 80, test_actor_id)
        mutator.apply_delta(
            product_id, location_id, -5, MovementType.OUT,
            MovementReference.manual(uuid4()), test_actor_id,
        )
        session.commit()

        stock_counts.complete_count(count.id, test_actor_id)

        drift = [r for r in captured_logs() if r["message"] == "count_drift_detected"]
        assert drift[0]["system_quantity"] == 100
        assert drift[0]["live_quantity"] == 95
        assert stock_selector.get_level(product_id, location_id).quantity == 75

    def test_completed_count_is_terminal(
        self, stock_counts, product_id, location_id, test_actor_id,
    ):
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        stock_counts.record_actual(count.id, product_id, 0, test_actor_id)
        stock_counts.complete_count(count.id, test_actor_id)

        with pytest.raises(InvalidStateError):
            stock_counts.complete_count(count.id, test_actor_id)
        with pytest.raises(InvalidStateError):
            stock_counts.cancel_count(count.id, test_actor_id)


class TestCancelCount:

    def test_cancel_in_progress(self, stock_counts, product_id, location_id, test_actor_id):
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )

        cancelled = stock_counts.cancel_count(count.id, test_actor_id)

        assert cancelled.status is StockCountStatus.CANCELLED
        assert cancelled.cancelled_at is not None

    def test_unknown_count(self, stock_counts, test_actor_id):
        with pytest.raises(StockCountNotFoundError):
            stock_counts.cancel_count(uuid4(), test_actor_id)


class TestListCounts:

    def test_filters_by_location_and_status(self, stock_counts, product_id, location_id, test_actor_id):
        draft = stock_counts.create_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        running = stock_counts.start_count(
            location_id, StockCountType.CYCLE, test_actor_id, product_ids=[product_id],
        )
        elsewhere = stock_counts.start_count(
            uuid4(), StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )

        assert [c.id for c in stock_counts.list_counts(location_id=location_id)] == [draft.id, running.id]
        assert [c.id for c in stock_counts.list_counts(status=StockCountStatus.IN_PROGRESS)] == [
            running.id, elsewhere.id,
        ]
        assert [c.count_no for c in stock_counts.list_counts(status=StockCountStatus.DRAFT)] == ["SC000001"]

    def test_cancelled_counts_listed_by_status(self, stock_counts, product_id, location_id, test_actor_id):
        count = stock_counts.start_count(
            location_id, StockCountType.SPOT, test_actor_id, product_ids=[product_id],
        )
        stock_counts.cancel_count(count.id, test_actor_id)

        assert [c.id for c in stock_counts.list_counts(status=StockCountStatus.CANCELLED)] == [count.id]
        assert stock_counts.list_counts(status=StockCountStatus.IN_PROGRESS) == []
