"""
Delivery Workflows (``fulfillment_modules.delivery.workflows``).

Responsibility
--------------
Declares the delivery note status table and the stamps each status writes.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions, evaluated by
``fulfillment_engines.status.StatusStateMachine``.

Invariants enforced
-------------------
* Cancelled is terminal.
* Entering Partial stamps ``picking_started``; entering Complete stamps
  ``picking_completed`` and, when unset, ``delivery_confirmed`` together with
  ``actual_delivery_date``.
"""

from fulfillment_kernel.domain.workflow import StampRule, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.delivery.workflows")


DELIVERY_WORKFLOW = Workflow(
    name="delivery",
    description="Delivery note picking and confirmation",
    initial_state="Pending",
    states=("Pending", "Partial", "Complete", "Cancelled"),
    terminal_states=("Cancelled",),
    mutable_states=("Pending", "Partial", "Complete"),
    transitions=(
        Transition("Pending", "Partial", action="start_picking"),
        Transition("Pending", "Complete", action="complete"),
        Transition("Pending", "Cancelled", action="cancel"),
        Transition("Partial", "Complete", action="complete"),
        Transition("Partial", "Cancelled", action="cancel"),
        Transition("Complete", "Cancelled", action="cancel"),
    ),
    stamp_rules=(
        StampRule(
            "Partial",
            by_field="picking_started_by",
            at_field="picking_started_at",
            guard_field="picking_started_at",
        ),
        StampRule(
            "Complete",
            by_field="picking_completed_by",
            at_field="picking_completed_at",
            guard_field="picking_completed_at",
        ),
        StampRule(
            "Complete",
            by_field="delivery_confirmed_by",
            at_field="delivery_confirmed_at",
            extra_at_fields=("actual_delivery_date",),
            guard_field="delivery_confirmed_at",
        ),
    ),
)

logger.info(
    "delivery_workflow_defined",
    extra={
        "states": len(DELIVERY_WORKFLOW.states),
        "transitions": len(DELIVERY_WORKFLOW.transitions),
    },
)
