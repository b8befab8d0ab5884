"""
Purchasing Workflows (``inventory_modules.purchasing.workflows``).

Responsibility
--------------
Declares the purchase-order and receipt state machines, and the pure rule
that derives an order's state from its lines after a receiving event.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  Imports canonical
Guard, Transition, Workflow from ``inventory_kernel.domain.workflow``.

Invariants enforced
-------------------
* COMPLETED and CANCELLED are terminal.
* Cancel is offered from every non-terminal state.
* Line edits are only legal in DRAFT (``EDITABLE_STATES``).
* Receiving is only legal in ORDERED or PARTIAL (``RECEIVABLE_STATES``).
* Transitions with ``moves_stock=True`` call the InventoryMutator.

Audit relevance
---------------
Workflow definitions logged at module-load time with state counts and
transition counts.
"""

from typing import Iterable

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.purchasing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every order line has received_qty == ordered_qty",
)

SOME_QUANTITY_RECEIVED = Guard(
    name="some_quantity_received",
    description="At least one unit received but not every line complete",
)

NO_OVER_RECEIPT = Guard(
    name="no_over_receipt",
    description="Each receipt line fits the outstanding quantity of its order line",
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Procurement lifecycle from draft through receiving",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "PENDING",
        "APPROVED",
        "ORDERED",
        "PARTIAL",
        "COMPLETED",
        "CANCELLED",
    ),
    terminal_states=("COMPLETED", "CANCELLED"),
    transitions=(
        Transition("DRAFT", "PENDING", action="submit"),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition("PENDING", "APPROVED", action="approve"),
        Transition("PENDING", "DRAFT", action="reject"),
        Transition("PENDING", "CANCELLED", action="cancel"),
        Transition("APPROVED", "ORDERED", action="mark_ordered"),
        Transition("APPROVED", "CANCELLED", action="cancel"),
        Transition("ORDERED", "PARTIAL", action="receive", guard=SOME_QUANTITY_RECEIVED),
        Transition("ORDERED", "COMPLETED", action="receive", guard=ALL_LINES_RECEIVED),
        Transition("ORDERED", "CANCELLED", action="cancel"),
        Transition("PARTIAL", "PARTIAL", action="receive", guard=SOME_QUANTITY_RECEIVED),
        Transition("PARTIAL", "COMPLETED", action="receive", guard=ALL_LINES_RECEIVED),
        Transition("PARTIAL", "CANCELLED", action="cancel"),
    ),
)

EDITABLE_STATES = ("DRAFT",)
DELETABLE_STATES = ("DRAFT", "CANCELLED")
RECEIVABLE_STATES = ("ORDERED", "PARTIAL")

logger.info(
    "purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Receipt Workflow
# -----------------------------------------------------------------------------

RECEIPT_WORKFLOW = Workflow(
    name="purchase_receipt",
    description="Inbound delivery: recorded, then applied to stock",
    initial_state="PENDING",
    states=("PENDING", "COMPLETED"),
    terminal_states=("COMPLETED",),
    transitions=(
        Transition(
            "PENDING", "COMPLETED", action="complete",
            guard=NO_OVER_RECEIPT, moves_stock=True,
        ),
    ),
)

logger.info(
    "purchase_receipt_workflow_registered",
    extra={
        "workflow_name": RECEIPT_WORKFLOW.name,
        "state_count": len(RECEIPT_WORKFLOW.states),
        "transition_count": len(RECEIPT_WORKFLOW.transitions),
        "initial_state": RECEIPT_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Receiving state rule
# -----------------------------------------------------------------------------

def derive_receiving_state(
    current_state: str,
    lines: Iterable[tuple[int, int]],
) -> str:
    """
    Order state after a receiving event, from ``(received_qty, ordered_qty)``
    per line.

    - every line fully received            -> COMPLETED
    - anything received, not all complete  -> PARTIAL
    - nothing received yet                 -> ``current_state``
    """
    pairs = list(lines)
    if pairs and all(received == ordered for received, ordered in pairs):
        return "COMPLETED"
    if any(received > 0 for received, _ in pairs):
        return "PARTIAL"
    return current_state
