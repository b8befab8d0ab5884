"""
Pytest fixtures for the stock ledger test suite.

Provides:
- Database sessions with per-test rollback isolation
- Kernel and module service fixtures wired to a deterministic clock
- Stock seeding helpers
- Structured-log capture

Environment Variables:
- DATABASE_URL: connection URL.  Defaults to in-memory SQLite, which covers
  everything except the tests marked ``postgres`` (real row locks and
  concurrent commits); those are skipped unless DATABASE_URL points at
  PostgreSQL.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base
from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.values import MovementReference, MovementType
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.models.stock import ProductStockPolicy
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.document_numbering import SequenceDocumentNumberer
from inventory_kernel.services.inventory_mutator import InventoryMutator
from inventory_modules.adjustment.service import StockAdjustmentProcessor
from inventory_modules.goods_issue.service import GoodsIssueWorkflow
from inventory_modules.purchasing.models import PurchaseOrderLineSpec
from inventory_modules.purchasing.receiving import ReceivingProcessor
from inventory_modules.purchasing.service import PurchaseOrderWorkflow
from inventory_modules.stock_count.service import StockCountReconciler

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite:///:memory:"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, mutator):
            mutator.apply_delta(...)
            logs = captured_logs()
            assert any(r["message"] == "stock_delta_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database URL and markers
# =============================================================================


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _is_postgres_url(url: str) -> bool:
    return make_url(url).get_backend_name() == "postgresql"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as long-running"
    )


def pytest_collection_modifyitems(config, items):
    if _is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="needs DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=30, max_overflow=20, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _truncate_all_tables(engine):
    """TRUNCATE all tables after tests that commit for real (PostgreSQL only)."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    if table_names:
        with engine.connect() as conn:
            conn.execute(text(
                "TRUNCATE " + ", ".join(table_names) + " CASCADE"
            ))
            conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection:
    - ``session.commit()`` inside a service releases a SAVEPOINT only
    - ``session.rollback()`` inside a service returns to the last commit
    - At teardown the outer transaction is rolled back, undoing everything
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Concurrency testing fixtures (real commits + TRUNCATE cleanup)
# =============================================================================


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """Provide a tracked session factory for creating sessions in concurrent threads.

    Each thread should create its own session using this factory.  On
    teardown new sessions are refused, all tracked sessions are closed and
    every table is truncated.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()
    closed = False

    def tracked_factory():
        nonlocal closed
        with lock:
            if closed:
                raise RuntimeError("pg_session_factory closed (fixture teardown)")
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    with lock:
        closed = True

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()

    _truncate_all_tables(db_engine)


# =============================================================================
# Identity and time
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 3, 15, 9, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def product_id() -> UUID:
    return uuid4()


@pytest.fixture
def location_id() -> UUID:
    return uuid4()


# =============================================================================
# Kernel fixtures
# =============================================================================


@pytest.fixture
def mutator(session, deterministic_clock) -> InventoryMutator:
    return InventoryMutator(session, clock=deterministic_clock)


@pytest.fixture
def numberer(session, deterministic_clock) -> SequenceDocumentNumberer:
    return SequenceDocumentNumberer(session, clock=deterministic_clock)


@pytest.fixture
def stock_selector(session) -> StockSelector:
    return StockSelector(session)


@pytest.fixture
def movement_selector(session) -> MovementSelector:
    return MovementSelector(session)


@pytest.fixture
def seed_stock(session, mutator, test_actor_id):
    """
    Put stock on hand and commit it, so a later service rollback cannot
    undo the setup.

    Usage::

        seed_stock(product_id, location_id, 100)
    """

    def _seed(product_id: UUID, location_id: UUID, quantity: int):
        entry = mutator.apply_delta(
            product_id=product_id,
            location_id=location_id,
            delta=quantity,
            movement_type=MovementType.IN,
            reference=MovementReference.manual(uuid4(), "OPENING"),
            actor_id=test_actor_id,
            reason="Opening balance",
        )
        session.commit()
        return entry

    return _seed


@pytest.fixture
def set_policy(session, test_actor_id):
    """Create a ProductStockPolicy row and commit it."""

    def _set(
        product_id: UUID,
        allow_negative_stock: bool = False,
        safety_stock: int = 0,
        reorder_point: int = 0,
        reorder_qty: int | None = None,
    ) -> ProductStockPolicy:
        policy = ProductStockPolicy(
            product_id=product_id,
            allow_negative_stock=allow_negative_stock,
            safety_stock=safety_stock,
            reorder_point=reorder_point,
            reorder_qty=reorder_qty,
            created_by_id=test_actor_id,
        )
        session.add(policy)
        session.commit()
        return policy

    return _set


# =============================================================================
# Module service fixtures
# =============================================================================


@pytest.fixture
def receiving_processor(session, deterministic_clock, mutator, numberer) -> ReceivingProcessor:
    return ReceivingProcessor(
        session, clock=deterministic_clock, mutator=mutator, numberer=numberer,
    )


@pytest.fixture
def purchase_orders(
    session, deterministic_clock, numberer, receiving_processor,
) -> PurchaseOrderWorkflow:
    return PurchaseOrderWorkflow(
        session,
        clock=deterministic_clock,
        numberer=numberer,
        receiving=receiving_processor,
    )


@pytest.fixture
def goods_issues(session, deterministic_clock, mutator, numberer) -> GoodsIssueWorkflow:
    return GoodsIssueWorkflow(
        session, clock=deterministic_clock, mutator=mutator, numberer=numberer,
    )


@pytest.fixture
def adjustments(session, deterministic_clock, mutator, numberer) -> StockAdjustmentProcessor:
    return StockAdjustmentProcessor(
        session, clock=deterministic_clock, mutator=mutator, numberer=numberer,
    )


@pytest.fixture
def stock_counts(session, deterministic_clock, mutator, numberer) -> StockCountReconciler:
    return StockCountReconciler(
        session, clock=deterministic_clock, mutator=mutator, numberer=numberer,
    )


@pytest.fixture
def ordered_po(purchase_orders, test_actor_id):
    """
    Create a purchase order and walk it to ORDERED.

    Usage::

        po = ordered_po([(product_id, 10)])
    """

    def _make(lines, supplier_id: UUID | None = None):
        specs = [
            PurchaseOrderLineSpec(product_id=p, ordered_qty=q)
            for p, q in lines
        ]
        po = purchase_orders.create_order(supplier_id or uuid4(), specs, test_actor_id)
        purchase_orders.submit(po.id, test_actor_id)
        purchase_orders.approve(po.id, test_actor_id)
        return purchase_orders.mark_ordered(po.id, test_actor_id)

    return _make
