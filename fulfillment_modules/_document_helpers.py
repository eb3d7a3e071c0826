"""
Shared helpers for module document services.

Used by fulfillment_modules/*/service.py to reduce duplication when loading
documents, applying status transitions and appending to notes.

Architecture: Modules layer.  Imports only from fulfillment_kernel and
fulfillment_engines.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from fulfillment_engines.status import StatusStateMachine, TransitionResult
from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_kernel.exceptions import NotFoundError

T = TypeVar("T")


def require(value: T | None, entity_type: str, entity_id: UUID) -> T:
    """Return ``value`` or raise ``NotFoundError`` when the lookup came back empty."""
    if value is None:
        raise NotFoundError(entity_type, entity_id)
    return value


def append_note(notes: str | None, line: str) -> str:
    """Append ``line`` to free-text notes on its own line."""
    return f"{notes or ''}\n{line}".strip()


def transition_document(
    state_machine: StatusStateMachine,
    document: Any,
    target: Any,
    kind: DocumentKind,
    status_type: type[Enum],
    *,
    actor: str | None,
    at: datetime,
) -> tuple[Any, TransitionResult]:
    """Apply ``document.status -> target`` and its stamps to a frozen DTO.

    Raises:
        InvalidTransitionError: if the table of ``kind`` forbids the change.
    """
    result = state_machine.transition(
        document.status,
        target,
        kind,
        actor=actor,
        at=at,
        stamped=getattr(document, "stamps", None),
    )
    updated = replace(
        document,
        status=status_type(result.new_status),
        updated_at=at,
        **dict(result.side_effects),
    )
    return updated, result
