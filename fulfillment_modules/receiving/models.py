"""
Receiving Domain Models (``fulfillment_modules.receiving.models``).

Responsibility
--------------
Frozen value objects for goods receipts (material receipts) and their
lines.  Receipt lines are the parent of every return line on the buy side.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fulfillment_kernel.domain.values import ZERO


class ReceiptStatus(Enum):
    """Goods receipt states.  Must align with ``workflows.RECEIPT_WORKFLOW.states``."""
    PENDING = "Pending"
    PARTIAL = "Partial"
    COMPLETED = "Completed"
    DISCREPANCY = "Discrepancy"


@dataclass(frozen=True)
class GoodsReceipt:
    """Header of a goods receipt.

    The ``total_*`` counters and ``discrepancy_flag`` are aggregates of the
    receipt lines and are recomputed on every receiving update.
    """
    id: UUID
    receipt_number: str
    status: ReceiptStatus
    created_at: datetime
    updated_at: datetime
    supplier_id: UUID | None = None
    total_items: int = 0
    total_quantity_expected: Decimal = ZERO
    total_quantity_received: Decimal = ZERO
    discrepancy_flag: bool = False
    notes: str = ""
    created_by: str | None = None
    received_by: str | None = None
    completed_at: datetime | None = None
    version: int = 1


@dataclass(frozen=True)
class ReceiptItem:
    """One received line."""
    id: UUID
    goods_receipt_id: UUID
    line_number: int
    description: str
    quantity_expected: Decimal
    quantity_received: Decimal
    unit_cost: Decimal
    item_id: UUID | None = None

    def __post_init__(self):
        if self.quantity_received < 0:
            raise ValueError("quantity_received cannot be negative")
