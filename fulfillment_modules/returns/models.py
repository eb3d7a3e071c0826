"""
Receipt Return Domain Models (``fulfillment_modules.returns.models``).

Responsibility
--------------
Frozen value objects for returns of received goods to the supplier.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.  ``total_value`` on
``ReceiptReturn`` is derived: it always equals the sum of the current
item ``total_cost`` values and is recomputed by the processor on every
item change.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fulfillment_kernel.domain.values import ZERO


class ReturnStatus(Enum):
    """Return states.  Must align with ``workflows.RETURN_WORKFLOW.states``."""
    DRAFT = "Draft"
    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"
    RETURNED = "Returned"
    CREDITED = "Credited"
    CANCELLED = "Cancelled"


STAMP_FIELDS = (
    "submitted_by",
    "submitted_at",
    "approved_by",
    "approved_at",
    "returned_by",
    "returned_at",
    "credited_by",
    "credited_at",
    "cancelled_by",
    "cancelled_at",
)


@dataclass(frozen=True)
class ReceiptReturn:
    """Header of a return against one goods receipt."""
    id: UUID
    return_number: str
    goods_receipt_id: UUID
    status: ReturnStatus
    created_at: datetime
    updated_at: datetime
    return_reason: str = ""
    total_value: Decimal = ZERO
    supplier_id: UUID | None = None
    notes: str = ""
    created_by: str | None = None
    submitted_by: str | None = None
    submitted_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    returned_by: str | None = None
    returned_at: datetime | None = None
    credited_by: str | None = None
    credited_at: datetime | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    version: int = 1

    @property
    def stamps(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in STAMP_FIELDS}


@dataclass(frozen=True)
class ReturnItem:
    """One returned line, linked to the receipt line it returns."""
    id: UUID
    return_id: UUID
    receipt_item_id: UUID
    quantity_returned: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    description: str = ""
    item_id: UUID | None = None
    return_reason: str | None = None
    condition_notes: str | None = None

    def __post_init__(self):
        if self.quantity_returned < 0:
            raise ValueError("quantity_returned cannot be negative")
