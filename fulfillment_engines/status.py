"""
fulfillment_engines.status -- Generic status state machine.

Responsibility:
    Evaluate a requested status change against the transition table of a
    document kind and compute the first-time-only ``*_by``/``*_at`` stamps
    the change triggers.  One engine serves deliveries, invoices, receipts
    and returns; the tables themselves live in each module's
    ``workflows.py``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies the
    actor, the timestamp and the fields already stamped on the document;
    the engine returns the new status and the fields to write.

Invariants enforced:
    - A transition succeeds only if ``requested`` is in the allowed-next set
      of ``current`` for that kind.  Terminal states allow nothing.
    - Stamp rules never overwrite a field that already holds a value.

Failure modes:
    - InvalidTransitionError for an unknown status, an unregistered kind,
      or a transition absent from the table.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_kernel.domain.workflow import Workflow
from fulfillment_kernel.exceptions import InvalidTransitionError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines.status")


def status_value(status: Any) -> str:
    """Normalize an enum member or raw string to the stored status string."""
    if isinstance(status, Enum):
        return str(status.value)
    return str(status)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a legal transition: the new status plus fields to stamp."""

    previous_status: str
    new_status: str
    action: str
    side_effects: Mapping[str, Any] = field(default_factory=dict)


class StatusStateMachine:
    """
    Transition-table evaluator shared by every document kind.

    Contract:
        Constructed with one ``Workflow`` per ``DocumentKind``.  Stateless
        across calls.
    """

    def __init__(self, workflows: Mapping[DocumentKind, Workflow]):
        self._workflows = dict(workflows)

    def workflow_for(self, kind: DocumentKind | str) -> Workflow:
        kind = DocumentKind.parse(kind)
        try:
            return self._workflows[kind]
        except KeyError:
            raise InvalidTransitionError(
                kind.value, "?", "?", "no workflow registered for document kind"
            ) from None

    def allowed_next(self, current: Any, kind: DocumentKind | str) -> frozenset[str]:
        return self.workflow_for(kind).allowed_next(status_value(current))

    def can_transition(
        self, current: Any, requested: Any, kind: DocumentKind | str
    ) -> bool:
        return status_value(requested) in self.allowed_next(current, kind)

    def is_mutable(self, current: Any, kind: DocumentKind | str) -> bool:
        """Whether quantities/amounts may still change in ``current``."""
        return self.workflow_for(kind).is_mutable(status_value(current))

    def transition(
        self,
        current: Any,
        requested: Any,
        kind: DocumentKind | str,
        *,
        actor: str | None = None,
        at: datetime | None = None,
        stamped: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        """
        Validate ``current -> requested`` and compute the side effects.

        Args:
            current: Current status (enum member or string).
            requested: Requested status.
            kind: Document kind whose table applies.
            actor: Value written to ``*_by`` fields.
            at: Value written to ``*_at`` fields.
            stamped: Current values of the document's stamp fields; a rule
                whose guard field is already set is skipped.

        Raises:
            InvalidTransitionError: if the table does not allow the change.
        """
        workflow = self.workflow_for(kind)
        current_s = status_value(current)
        requested_s = status_value(requested)

        for state in (current_s, requested_s):
            if state not in workflow.states:
                raise InvalidTransitionError(
                    workflow.name, current_s, requested_s, f"unknown status {state!r}"
                )

        transition = next(
            (
                t
                for t in workflow.transitions
                if t.from_state == current_s and t.to_state == requested_s
            ),
            None,
        )
        if transition is None:
            detail = (
                "terminal status" if workflow.is_terminal(current_s) else None
            )
            logger.info(
                "status_transition_rejected",
                extra={
                    "workflow": workflow.name,
                    "from_state": current_s,
                    "to_state": requested_s,
                },
            )
            raise InvalidTransitionError(workflow.name, current_s, requested_s, detail)

        existing = stamped or {}
        effects: dict[str, Any] = {}
        for rule in workflow.rules_for(requested_s):
            guard = rule.effective_guard
            if guard is not None and existing.get(guard) not in (None, ""):
                continue
            if rule.by_field is not None:
                effects[rule.by_field] = actor
            if rule.at_field is not None:
                effects[rule.at_field] = at
            for extra in rule.extra_at_fields:
                effects[extra] = at

        logger.info(
            "status_transition_applied",
            extra={
                "workflow": workflow.name,
                "action": transition.action,
                "from_state": current_s,
                "to_state": requested_s,
                "stamped_fields": sorted(effects),
            },
        )
        return TransitionResult(
            previous_status=current_s,
            new_status=requested_s,
            action=transition.action,
            side_effects=effects,
        )
