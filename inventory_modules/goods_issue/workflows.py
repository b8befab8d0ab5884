"""
Goods Issue Workflow (``inventory_modules.goods_issue.workflows``).

PENDING -> COMPLETED (stock deducted) or PENDING -> CANCELLED (no stock
impact).  Both targets are terminal.
"""

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.goods_issue.workflows")


SUFFICIENT_STOCK_ALL_LINES = Guard(
    name="sufficient_stock_all_lines",
    description="Every line can be deducted without breaching the negative-stock guard",
)

GOODS_ISSUE_WORKFLOW = Workflow(
    name="goods_issue",
    description="Outbound stock for sales, damage or other reasons",
    initial_state="PENDING",
    states=("PENDING", "COMPLETED", "CANCELLED"),
    terminal_states=("COMPLETED", "CANCELLED"),
    transitions=(
        Transition(
            "PENDING", "COMPLETED", action="complete",
            guard=SUFFICIENT_STOCK_ALL_LINES, moves_stock=True,
        ),
        Transition("PENDING", "CANCELLED", action="cancel"),
    ),
)

logger.info(
    "goods_issue_workflow_registered",
    extra={
        "workflow_name": GOODS_ISSUE_WORKFLOW.name,
        "state_count": len(GOODS_ISSUE_WORKFLOW.states),
        "transition_count": len(GOODS_ISSUE_WORKFLOW.transitions),
        "initial_state": GOODS_ISSUE_WORKFLOW.initial_state,
    },
)
