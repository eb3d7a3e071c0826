"""
Canonical workflow types (``fulfillment_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document status state machines.  Every module
(delivery, invoicing, receiving, returns) declares its transition table with
these types so that the generic ``StatusStateMachine`` can evaluate any of
them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str


@dataclass(frozen=True)
class StampRule:
    """Side effect fired when a document enters ``to_state``.

    Contract: the rule is first-time only.  It is skipped when
    ``guard_field`` (``by_field`` unless given) already holds a value.
    ``extra_at_fields`` receive the same timestamp as ``at_field``.
    """
    to_state: str
    by_field: str | None = None
    at_field: str | None = None
    extra_at_fields: tuple[str, ...] = ()
    guard_field: str | None = None

    @property
    def effective_guard(self) -> str | None:
        return self.guard_field or self.by_field or self.at_field


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``mutable_states`` lists the states in which quantities and amounts may
    still change; everything else only accepts note edits.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    stamp_rules: tuple[StampRule, ...] = ()
    mutable_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state!r} -> "
                    f"{t.to_state!r} references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    "has an outgoing transition"
                )

    def allowed_next(self, state: str) -> frozenset[str]:
        """States reachable in one step from ``state``."""
        return frozenset(
            t.to_state for t in self.transitions if t.from_state == state
        )

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def is_mutable(self, state: str) -> bool:
        return state in self.mutable_states

    def rules_for(self, state: str) -> tuple[StampRule, ...]:
        return tuple(r for r in self.stamp_rules if r.to_state == state)
