"""
Invoicing Workflows (``fulfillment_modules.invoicing.workflows``).

Responsibility
--------------
Declares the invoice status table.  ``Overdue`` is not a state here: it is
derived from ``Sent`` and the due date, so no transition can target it.

Invariants enforced
-------------------
* Paid and Cancelled are terminal.
* Draft and Sent invoices may be regenerated; Paid and Cancelled are locked.
"""

from fulfillment_kernel.domain.workflow import StampRule, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.workflows")


INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Customer invoice issue and settlement",
    initial_state="Draft",
    states=("Draft", "Sent", "Paid", "Cancelled"),
    terminal_states=("Paid", "Cancelled"),
    mutable_states=("Draft", "Sent"),
    transitions=(
        Transition("Draft", "Sent", action="send"),
        Transition("Draft", "Cancelled", action="cancel"),
        Transition("Sent", "Paid", action="mark_paid"),
        Transition("Sent", "Cancelled", action="cancel"),
    ),
    stamp_rules=(
        StampRule("Sent", by_field="sent_by", at_field="sent_at", guard_field="sent_at"),
        StampRule("Paid", by_field="paid_by", at_field="paid_at", guard_field="paid_at"),
        StampRule(
            "Cancelled",
            by_field="cancelled_by",
            at_field="cancelled_at",
            guard_field="cancelled_at",
        ),
    ),
)

logger.info(
    "invoice_workflow_defined",
    extra={
        "states": len(INVOICE_WORKFLOW.states),
        "transitions": len(INVOICE_WORKFLOW.transitions),
    },
)
