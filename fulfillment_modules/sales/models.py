"""
Sales Domain Models (``fulfillment_modules.sales.models``).

Responsibility
--------------
Frozen value objects for sales orders and their lines.  Quantities ordered
here are the upper bound for every delivery raised against the order.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class SalesOrder:
    """A customer order."""
    id: UUID
    order_number: str
    customer_id: UUID | None = None
    currency: str = "USD"


@dataclass(frozen=True)
class SalesOrderItem:
    """One ordered line.

    Contract: ``ordered_qty >= 0``.  ``line_number`` is 1-based and unique
    within the order.
    """
    id: UUID
    sales_order_id: UUID
    line_number: int
    ordered_qty: Decimal
    unit_price: Decimal
    description: str = ""
    item_id: UUID | None = None
    total_price: Decimal | None = None

    def __post_init__(self):
        if self.ordered_qty < 0:
            raise ValueError("ordered_qty cannot be negative")
