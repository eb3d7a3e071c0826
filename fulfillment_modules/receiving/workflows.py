"""
Receiving Workflows (``fulfillment_modules.receiving.workflows``).

Responsibility
--------------
Declares the goods receipt status table.  Completed and Discrepancy close
the receipt for further quantity updates.
"""

from fulfillment_kernel.domain.workflow import StampRule, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.workflows")


RECEIPT_WORKFLOW = Workflow(
    name="receipt",
    description="Goods receipt progress",
    initial_state="Pending",
    states=("Pending", "Partial", "Completed", "Discrepancy"),
    terminal_states=("Completed", "Discrepancy"),
    mutable_states=("Pending", "Partial"),
    transitions=(
        Transition("Pending", "Partial", action="receive_partial"),
        Transition("Pending", "Completed", action="receive_all"),
        Transition("Pending", "Discrepancy", action="flag_discrepancy"),
        Transition("Partial", "Completed", action="receive_all"),
        Transition("Partial", "Discrepancy", action="flag_discrepancy"),
    ),
    stamp_rules=(
        StampRule("Completed", by_field="received_by", at_field="completed_at"),
        StampRule("Discrepancy", by_field="received_by", at_field="completed_at"),
    ),
)

logger.info(
    "receipt_workflow_defined",
    extra={
        "states": len(RECEIPT_WORKFLOW.states),
        "transitions": len(RECEIPT_WORKFLOW.transitions),
    },
)
