"""
Delivery Domain Models (``fulfillment_modules.delivery.models``).

Responsibility
--------------
Frozen value objects for delivery notes and their lines.  A delivery note
records which quantities of a sales order have been picked and handed over.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.  These objects flow
into and out of ``DeliveryFulfillmentTracker`` as immutable snapshots; an
edit produces a new object via ``dataclasses.replace``.

Invariants enforced
-------------------
* ``0 <= delivered_qty <= max(ordered_qty, picked_qty)`` on every line,
  checked in ``DeliveryItem.__post_init__``.
* Quantities and amounts are ``Decimal``.

Failure modes
-------------
* ``ValueError`` from ``__post_init__`` when a line is out of bounds.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fulfillment_engines.quantity import FulfillmentType


class DeliveryStatus(Enum):
    """Delivery note states.  Must align with ``workflows.DELIVERY_WORKFLOW.states``."""
    PENDING = "Pending"
    PARTIAL = "Partial"
    COMPLETE = "Complete"
    CANCELLED = "Cancelled"


STAMP_FIELDS = (
    "picking_started_by",
    "picking_started_at",
    "picking_completed_by",
    "picking_completed_at",
    "delivery_confirmed_by",
    "delivery_confirmed_at",
    "actual_delivery_date",
)


@dataclass(frozen=True)
class DeliveryNote:
    """Header of a delivery against one sales order.

    Contract: frozen.  ``delivery_type`` is always recomputable from the
    current item set and the order's ordered quantities.
    """
    id: UUID
    delivery_number: str
    sales_order_id: UUID
    status: DeliveryStatus
    delivery_type: FulfillmentType
    created_at: datetime
    updated_at: datetime
    created_by: str | None = None
    notes: str = ""
    picking_notes: str | None = None
    picking_started_by: str | None = None
    picking_started_at: datetime | None = None
    picking_completed_by: str | None = None
    picking_completed_at: datetime | None = None
    delivery_confirmed_by: str | None = None
    delivery_confirmed_at: datetime | None = None
    actual_delivery_date: datetime | None = None
    version: int = 1

    @property
    def stamps(self) -> dict[str, Any]:
        """Current values of the first-time-only stamp fields."""
        return {name: getattr(self, name) for name in STAMP_FIELDS}

    @property
    def is_confirmed(self) -> bool:
        return self.delivery_confirmed_at is not None


@dataclass(frozen=True)
class DeliveryItem:
    """One delivered line, linked to the sales order line it fulfils."""
    id: UUID
    delivery_id: UUID
    sales_order_item_id: UUID
    line_number: int
    description: str
    ordered_qty: Decimal
    picked_qty: Decimal
    delivered_qty: Decimal
    unit_price: Decimal
    total_price: Decimal
    item_id: UUID | None = None

    def __post_init__(self):
        if self.delivered_qty < 0:
            raise ValueError("delivered_qty cannot be negative")
        upper = max(self.ordered_qty, self.picked_qty)
        if self.delivered_qty > upper:
            raise ValueError(
                f"delivered_qty ({self.delivered_qty}) exceeds "
                f"max(ordered_qty, picked_qty) ({upper})"
            )
