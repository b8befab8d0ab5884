"""
Tests for InventoryMutator -- the single writer of stock quantities.

Validates:
- Every applied delta appends exactly one movement entry with a consistent
  before/after snapshot
- The negative-stock guard and its per-product override
- Transfers as paired entries sharing one reference
- Reservations move available quantity without touching the ledger
- The movement sink sees each entry only after the outermost commit
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.values import MovementReference, MovementType, ReferenceType
from inventory_kernel.exceptions import InsufficientStockError, ValidationError
from inventory_kernel.services.inventory_mutator import InventoryMutator
from inventory_modules.goods_issue.models import GoodsIssueLineSpec, GoodsIssueType
from inventory_modules.goods_issue.service import GoodsIssueWorkflow


def _manual():
    return MovementReference.manual(uuid4(), "MANUAL-1")


class TestApplyDelta:

    def test_first_delta_creates_record(
        self, mutator, stock_selector, product_id, location_id, test_actor_id,
    ):
        entry = mutator.apply_delta(
            product_id, location_id, 100, MovementType.IN, _manual(), test_actor_id,
        )

        assert entry.before_qty == 0
        assert entry.after_qty == 100
        assert entry.quantity == 100
        assert entry.entry_seq == 1
        level = stock_selector.get_level(product_id, location_id)
        assert level.quantity == 100
        assert level.available_qty == 100

    def test_snapshots_chain_across_deltas(
        self, mutator, movement_selector, product_id, location_id, test_actor_id,
    ):
        mutator.apply_delta(product_id, location_id, 100, MovementType.IN, _manual(), test_actor_id)
        mutator.apply_delta(product_id, location_id, -20, MovementType.OUT, _manual(), test_actor_id)
        mutator.apply_delta(product_id, location_id, 5, MovementType.ADJUST, _manual(), test_actor_id)

        chain = movement_selector.chain(product_id, location_id)
        assert [(e.before_qty, e.quantity, e.after_qty) for e in chain] == [
            (0, 100, 100),
            (100, -20, 80),
            (80, 5, 85),
        ]
        assert [e.entry_seq for e in chain] == [1, 2, 3]

    def test_entry_carries_reference_and_actor(
        self, mutator, product_id, location_id, test_actor_id, deterministic_clock,
    ):
        issue_id = uuid4()
        reference = MovementReference(ReferenceType.GOODS_ISSUE, issue_id, "GI-20240315-0001")

        mutator.apply_delta(product_id, location_id, 10, MovementType.IN, _manual(), test_actor_id)
        entry = mutator.apply_delta(
            product_id, location_id, -4, MovementType.OUT, reference, test_actor_id,
            reason="Goods issue GI-20240315-0001",
        )

        assert entry.reference_type is ReferenceType.GOODS_ISSUE
        assert entry.reference_id == issue_id
        assert entry.reference_no == "GI-20240315-0001"
        assert entry.actor_id == test_actor_id
        assert entry.reason == "Goods issue GI-20240315-0001"
        assert entry.occurred_at == deterministic_clock.now()

    def test_zero_delta_still_appends_entry(
        self, mutator, movement_selector, product_id, location_id, test_actor_id,
    ):
        mutator.apply_delta(product_id, location_id, 7, MovementType.IN, _manual(), test_actor_id)
        entry = mutator.apply_delta(product_id, location_id, 0, MovementType.ADJUST, _manual(), test_actor_id)

        assert entry.before_qty == entry.after_qty == 7
        assert len(movement_selector.chain(product_id, location_id)) == 2

    @pytest.mark.parametrize(
        "movement_type,delta",
        [(MovementType.IN, -1), (MovementType.OUT, 1)],
    )
    def test_sign_contradicting_type_rejected(
        self, mutator, product_id, location_id, test_actor_id, movement_type, delta,
    ):
        with pytest.raises(ValidationError):
            mutator.apply_delta(product_id, location_id, delta, movement_type, _manual(), test_actor_id)

    @pytest.mark.parametrize("delta", [1.5, "3", True])
    def test_non_int_delta_rejected(self, mutator, product_id, location_id, test_actor_id, delta):
        with pytest.raises(ValidationError):
            mutator.apply_delta(product_id, location_id, delta, MovementType.ADJUST, _manual(), test_actor_id)


class TestNegativeStockGuard:

    def test_outbound_beyond_on_hand_rejected_without_writes(
        self, session, mutator, seed_stock, stock_selector, movement_selector,
        product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 100)
        mutator.apply_delta(product_id, location_id, -20, MovementType.OUT, _manual(), test_actor_id)
        session.commit()

        with pytest.raises(InsufficientStockError) as exc_info:
            mutator.apply_delta(
                product_id, location_id, -130, MovementType.OUT, _manual(), test_actor_id,
            )

        assert exc_info.value.on_hand == 80
        assert exc_info.value.requested_delta == -130
        assert stock_selector.get_level(product_id, location_id).quantity == 80
        assert len(movement_selector.chain(product_id, location_id)) == 2

    def test_exact_depletion_allowed(
        self, mutator, seed_stock, stock_selector, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 5)
        entry = mutator.apply_delta(product_id, location_id, -5, MovementType.OUT, _manual(), test_actor_id)

        assert entry.after_qty == 0
        assert stock_selector.get_level(product_id, location_id).quantity == 0

    def test_guard_applies_to_missing_record(self, mutator, product_id, location_id, test_actor_id):
        with pytest.raises(InsufficientStockError) as exc_info:
            mutator.apply_delta(product_id, location_id, -1, MovementType.OUT, _manual(), test_actor_id)
        assert exc_info.value.on_hand == 0

    def test_policy_override_allows_negative(
        self, mutator, set_policy, stock_selector, product_id, location_id, test_actor_id,
    ):
        set_policy(product_id, allow_negative_stock=True)

        entry = mutator.apply_delta(product_id, location_id, -3, MovementType.OUT, _manual(), test_actor_id)

        assert entry.after_qty == -3
        assert stock_selector.get_level(product_id, location_id).quantity == -3

    def test_policy_false_overrides_permissive_default(
        self, session, deterministic_clock, set_policy, product_id, location_id, test_actor_id,
    ):
        set_policy(product_id, allow_negative_stock=False)
        permissive = InventoryMutator(session, clock=deterministic_clock, allow_negative_default=True)

        with pytest.raises(InsufficientStockError):
            permissive.apply_delta(product_id, location_id, -1, MovementType.OUT, _manual(), test_actor_id)

    def test_permissive_default_without_policy(
        self, session, deterministic_clock, product_id, location_id, test_actor_id,
    ):
        permissive = InventoryMutator(session, clock=deterministic_clock, allow_negative_default=True)

        entry = permissive.apply_delta(product_id, location_id, -2, MovementType.ADJUST, _manual(), test_actor_id)

        assert entry.after_qty == -2

    def test_inbound_on_negative_record_not_blocked(
        self, mutator, set_policy, product_id, location_id, test_actor_id,
    ):
        set_policy(product_id, allow_negative_stock=True)
        mutator.apply_delta(product_id, location_id, -10, MovementType.OUT, _manual(), test_actor_id)

        entry = mutator.apply_delta(product_id, location_id, 4, MovementType.IN, _manual(), test_actor_id)

        assert entry.after_qty == -6

    def test_rejection_is_logged(
        self, mutator, seed_stock, captured_logs, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 1)
        with pytest.raises(InsufficientStockError):
            mutator.apply_delta(product_id, location_id, -2, MovementType.OUT, _manual(), test_actor_id)

        rejected = [r for r in captured_logs() if r["message"] == "insufficient_stock_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["on_hand"] == 1
        assert rejected[0]["requested_delta"] == -2


class TestTransfer:

    def test_paired_entries_share_reference(
        self, mutator, seed_stock, stock_selector, movement_selector,
        product_id, test_actor_id,
    ):
        source, destination = uuid4(), uuid4()
        seed_stock(product_id, source, 30)
        reference = MovementReference(ReferenceType.TRANSFER, uuid4(), "TR-1")

        out_entry, in_entry = mutator.transfer(
            product_id, source, destination, 12, reference, test_actor_id,
        )

        assert out_entry.quantity == -12
        assert in_entry.quantity == 12
        assert out_entry.movement_type is MovementType.TRANSFER
        assert in_entry.movement_type is MovementType.TRANSFER
        assert stock_selector.get_level(product_id, source).quantity == 18
        assert stock_selector.get_level(product_id, destination).quantity == 12
        assert len(movement_selector.for_reference(reference.reference_id)) == 2
        assert stock_selector.total_on_hand(product_id) == 30

    def test_transfer_beyond_source_rejected_atomically(
        self, mutator, seed_stock, stock_selector, movement_selector, product_id, test_actor_id,
    ):
        source, destination = uuid4(), uuid4()
        seed_stock(product_id, source, 5)
        reference = MovementReference(ReferenceType.TRANSFER, uuid4())

        with pytest.raises(InsufficientStockError):
            mutator.transfer(product_id, source, destination, 6, reference, test_actor_id)

        assert stock_selector.get_level(product_id, source).quantity == 5
        assert stock_selector.get_level(product_id, destination).quantity == 0
        assert movement_selector.for_reference(reference.reference_id) == []

    def test_same_location_rejected(self, mutator, product_id, location_id, test_actor_id):
        with pytest.raises(ValidationError):
            mutator.transfer(product_id, location_id, location_id, 1, _manual(), test_actor_id)

    def test_non_positive_quantity_rejected(self, mutator, product_id, test_actor_id):
        with pytest.raises(ValidationError):
            mutator.transfer(product_id, uuid4(), uuid4(), 0, _manual(), test_actor_id)


class TestReservations:

    def test_reserve_reduces_available_only(
        self, mutator, seed_stock, movement_selector, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 50)

        level = mutator.reserve(product_id, location_id, 20, test_actor_id)

        assert level.quantity == 50
        assert level.reserved_qty == 20
        assert level.available_qty == 30
        assert len(movement_selector.chain(product_id, location_id)) == 1

    def test_reserve_beyond_available_rejected(
        self, mutator, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 10)
        mutator.reserve(product_id, location_id, 8, test_actor_id)

        with pytest.raises(InsufficientStockError):
            mutator.reserve(product_id, location_id, 3, test_actor_id)

    def test_release_returns_availability(
        self, mutator, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 10)
        mutator.reserve(product_id, location_id, 8, test_actor_id)

        level = mutator.release(product_id, location_id, 5, test_actor_id)

        assert level.reserved_qty == 3
        assert level.available_qty == 7

    def test_release_more_than_reserved_rejected(
        self, mutator, seed_stock, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 10)
        mutator.reserve(product_id, location_id, 2, test_actor_id)

        with pytest.raises(ValidationError):
            mutator.release(product_id, location_id, 3, test_actor_id)

    def test_outbound_trims_reservation_to_on_hand(
        self, mutator, seed_stock, stock_selector, product_id, location_id, test_actor_id,
    ):
        seed_stock(product_id, location_id, 10)
        mutator.reserve(product_id, location_id, 8, test_actor_id)

        mutator.apply_delta(product_id, location_id, -6, MovementType.OUT, _manual(), test_actor_id)

        level = stock_selector.get_level(product_id, location_id)
        assert level.quantity == 4
        assert level.reserved_qty == 4
        assert level.available_qty == 0

    def test_any_outbound_below_reserved_trims_and_warns(
        self, mutator, seed_stock, stock_selector, product_id, location_id,
        test_actor_id, captured_logs,
    ):
        seed_stock(product_id, location_id, 100)
        mutator.reserve(product_id, location_id, 20, test_actor_id)

        mutator.apply_delta(product_id, location_id, -90, MovementType.OUT, _manual(), test_actor_id)

        level = stock_selector.get_level(product_id, location_id)
        assert level.quantity == 10
        assert level.reserved_qty == 10
        trimmed = [r for r in captured_logs() if r["message"] == "reservation_trimmed"]
        assert len(trimmed) == 1
        assert trimmed[0]["level"] == "WARNING"
        assert trimmed[0]["reserved_before"] == 20
        assert trimmed[0]["reserved_after"] == 10


class TestMovementSink:

    def test_sink_receives_entries_after_commit(
        self, session, deterministic_clock, product_id, test_actor_id,
    ):
        received = []
        mutator = InventoryMutator(session, clock=deterministic_clock, movement_sink=received.append)
        source, destination = uuid4(), uuid4()

        mutator.apply_delta(product_id, source, 9, MovementType.IN, _manual(), test_actor_id)
        mutator.transfer(product_id, source, destination, 4, _manual(), test_actor_id)

        assert received == []
        session.commit()
        assert [e.quantity for e in received] == [9, -4, 4]

    def test_sink_not_called_on_rejection(
        self, session, deterministic_clock, product_id, location_id, test_actor_id,
    ):
        received = []
        mutator = InventoryMutator(session, clock=deterministic_clock, movement_sink=received.append)

        with pytest.raises(InsufficientStockError):
            mutator.apply_delta(product_id, location_id, -1, MovementType.OUT, _manual(), test_actor_id)
        session.commit()

        assert received == []

    def test_rollback_discards_pending_entries(
        self, session, deterministic_clock, product_id, location_id, test_actor_id,
    ):
        received = []
        mutator = InventoryMutator(session, clock=deterministic_clock, movement_sink=received.append)

        mutator.apply_delta(product_id, location_id, 5, MovementType.IN, _manual(), test_actor_id)
        session.rollback()
        session.commit()

        assert received == []

    def test_savepoint_rollback_keeps_outer_entries(
        self, session, deterministic_clock, product_id, location_id, test_actor_id,
    ):
        received = []
        mutator = InventoryMutator(session, clock=deterministic_clock, movement_sink=received.append)

        mutator.apply_delta(product_id, location_id, 5, MovementType.IN, _manual(), test_actor_id)
        savepoint = session.begin_nested()
        mutator.apply_delta(product_id, location_id, 2, MovementType.IN, _manual(), test_actor_id)
        savepoint.rollback()
        session.commit()

        assert [e.quantity for e in received] == [5]

    def test_failed_goods_issue_reaches_no_sink(
        self, session, deterministic_clock, numberer, seed_stock, location_id, test_actor_id,
    ):
        p1, p2 = sorted((uuid4(), uuid4()), key=str)
        seed_stock(p1, location_id, 10)
        seed_stock(p2, location_id, 2)
        received = []
        mutator = InventoryMutator(session, clock=deterministic_clock, movement_sink=received.append)
        workflow = GoodsIssueWorkflow(
            session, clock=deterministic_clock, mutator=mutator, numberer=numberer,
        )
        issue = workflow.create_issue(
            location_id, GoodsIssueType.SALES,
            [
                GoodsIssueLineSpec(product_id=p1, quantity=3),
                GoodsIssueLineSpec(product_id=p2, quantity=5),
            ],
            test_actor_id,
        )

        with pytest.raises(InsufficientStockError):
            workflow.complete_issue(issue.id, test_actor_id)
        session.commit()

        assert received == []

    def test_completed_goods_issue_reaches_sink_once(
        self, session, deterministic_clock, numberer, seed_stock, location_id, test_actor_id,
    ):
        p1, p2 = uuid4(), uuid4()
        seed_stock(p1, location_id, 10)
        seed_stock(p2, location_id, 10)
        received = []
        mutator = InventoryMutator(session, clock=deterministic_clock, movement_sink=received.append)
        workflow = GoodsIssueWorkflow(
            session, clock=deterministic_clock, mutator=mutator, numberer=numberer,
        )
        issue = workflow.create_issue(
            location_id, GoodsIssueType.SALES,
            [
                GoodsIssueLineSpec(product_id=p1, quantity=3),
                GoodsIssueLineSpec(product_id=p2, quantity=5),
            ],
            test_actor_id,
        )

        workflow.complete_issue(issue.id, test_actor_id)
        session.commit()

        assert sorted(e.quantity for e in received) == [-5, -3]
        assert {e.reference_id for e in received} == {issue.id}


class TestMarkCounted:

    def test_stamps_last_counted_at(
        self, mutator, seed_stock, stock_selector, product_id, location_id,
        test_actor_id, deterministic_clock,
    ):
        seed_stock(product_id, location_id, 3)

        mutator.mark_counted(product_id, location_id, test_actor_id)

        level = stock_selector.get_level(product_id, location_id)
        assert level.last_counted_at is not None
        assert level.quantity == 3
