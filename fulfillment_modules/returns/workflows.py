"""
Receipt Return Workflows (``fulfillment_modules.returns.workflows``).

Responsibility
--------------
Declares the return status table and its approval stamps.

Invariants enforced
-------------------
* Credited and Cancelled are terminal.
* Items may only change while the return is Draft or Pending Approval.
"""

from fulfillment_kernel.domain.workflow import StampRule, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.returns.workflows")


RETURN_WORKFLOW = Workflow(
    name="return",
    description="Return of received goods to the supplier",
    initial_state="Draft",
    states=(
        "Draft",
        "Pending Approval",
        "Approved",
        "Returned",
        "Credited",
        "Cancelled",
    ),
    terminal_states=("Credited", "Cancelled"),
    mutable_states=("Draft", "Pending Approval"),
    transitions=(
        Transition("Draft", "Pending Approval", action="submit"),
        Transition("Draft", "Cancelled", action="cancel"),
        Transition("Pending Approval", "Approved", action="approve"),
        Transition("Pending Approval", "Cancelled", action="cancel"),
        Transition("Approved", "Returned", action="ship"),
        Transition("Approved", "Cancelled", action="cancel"),
        Transition("Returned", "Credited", action="credit"),
    ),
    stamp_rules=(
        StampRule("Pending Approval", by_field="submitted_by", at_field="submitted_at",
                  guard_field="submitted_at"),
        StampRule("Approved", by_field="approved_by", at_field="approved_at",
                  guard_field="approved_at"),
        StampRule("Returned", by_field="returned_by", at_field="returned_at",
                  guard_field="returned_at"),
        StampRule("Credited", by_field="credited_by", at_field="credited_at",
                  guard_field="credited_at"),
        StampRule("Cancelled", by_field="cancelled_by", at_field="cancelled_at",
                  guard_field="cancelled_at"),
    ),
)

logger.info(
    "return_workflow_defined",
    extra={
        "states": len(RETURN_WORKFLOW.states),
        "transitions": len(RETURN_WORKFLOW.transitions),
    },
)
