"""
Replenishment Workflows.

State machine for replenishment suggestions:

    pending -> approved -> ordered
    pending -> rejected

``ordered`` and ``rejected`` are terminal.  ``approved`` exists only inside
the approval transaction, between the decision and the purchase order.
Re-prioritising keeps a suggestion in ``pending``.
"""

from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.logging_config import get_logger

logger = get_logger("modules.replenishment.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PURCHASE_ORDER_CREATED = Guard(
    name="purchase_order_created",
    description="A draft purchase order exists for the suggestion",
)


# -----------------------------------------------------------------------------
# Workflow
# -----------------------------------------------------------------------------

SUGGESTION_WORKFLOW = Workflow(
    name="replenishment_suggestion",
    description="Replenishment suggestion approval lifecycle",
    initial_state="pending",
    states=("pending", "approved", "rejected", "ordered"),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("approved", "ordered", action="order", guard=PURCHASE_ORDER_CREATED),
        Transition("pending", "rejected", action="reject"),
        Transition("pending", "pending", action="set_priority"),
    ),
    terminal_states=("rejected", "ordered"),
)

logger.info(
    "replenishment_workflow_defined",
    extra={
        "workflow": SUGGESTION_WORKFLOW.name,
        "states": list(SUGGESTION_WORKFLOW.states),
    },
)
