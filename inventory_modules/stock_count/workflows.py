"""
Stock Count Workflow (``inventory_modules.stock_count.workflows``).

DRAFT -> IN_PROGRESS (system quantities frozen) -> COMPLETED (optionally
reconciled into stock).  CANCELLED from DRAFT or IN_PROGRESS.
"""

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.stock_count.workflows")


ALL_LINES_COUNTED = Guard(
    name="all_lines_counted",
    description="Every count line has an actual quantity",
)

STOCK_COUNT_WORKFLOW = Workflow(
    name="stock_count",
    description="Physical count against frozen system quantities",
    initial_state="DRAFT",
    states=("DRAFT", "IN_PROGRESS", "COMPLETED", "CANCELLED"),
    terminal_states=("COMPLETED", "CANCELLED"),
    transitions=(
        Transition("DRAFT", "IN_PROGRESS", action="begin"),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition(
            "IN_PROGRESS", "COMPLETED", action="complete",
            guard=ALL_LINES_COUNTED, moves_stock=True,
        ),
        Transition("IN_PROGRESS", "CANCELLED", action="cancel"),
    ),
)

COUNTING_STATES = ("IN_PROGRESS",)

logger.info(
    "stock_count_workflow_registered",
    extra={
        "workflow_name": STOCK_COUNT_WORKFLOW.name,
        "state_count": len(STOCK_COUNT_WORKFLOW.states),
        "transition_count": len(STOCK_COUNT_WORKFLOW.transitions),
        "initial_state": STOCK_COUNT_WORKFLOW.initial_state,
    },
)
