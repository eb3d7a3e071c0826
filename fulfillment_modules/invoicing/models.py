"""
Invoicing Domain Models (``fulfillment_modules.invoicing.models``).

Responsibility
--------------
Frozen value objects for customer invoices and invoice lines.  Each line
records, next to its values, which fallback source produced its quantity,
unit price and description.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.

Invariants enforced
-------------------
* ``Invoice.__post_init__`` enforces ``total_amount == subtotal + tax_amount``.
* ``Overdue`` is never stored; ``effective_status(now)`` derives it.

Failure modes
-------------
* ``ValueError`` from ``__post_init__`` on a total mismatch.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fulfillment_kernel.domain.values import ZERO
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.models")


class InvoiceStatus(Enum):
    """Invoice states.  ``OVERDUE`` is derived and absent from the workflow."""
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    OVERDUE = "Overdue"


class InvoiceType(Enum):
    STANDARD = "Standard"
    PROFORMA = "Proforma"


STAMP_FIELDS = (
    "sent_by",
    "sent_at",
    "paid_by",
    "paid_at",
    "cancelled_by",
    "cancelled_at",
)


@dataclass(frozen=True)
class Invoice:
    """A customer invoice raised from a delivery (or, for proformas, an order).

    Contract: frozen, validated at construction.
    Guarantees: ``total_amount == subtotal + tax_amount``.
    """
    id: UUID
    invoice_number: str
    invoice_type: InvoiceType
    sales_order_id: UUID
    status: InvoiceStatus
    invoice_date: datetime
    due_date: datetime
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime
    delivery_id: UUID | None = None
    paid_amount: Decimal = ZERO
    currency: str = "USD"
    notes: str = ""
    created_by: str | None = None
    sent_by: str | None = None
    sent_at: datetime | None = None
    paid_by: str | None = None
    paid_at: datetime | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    version: int = 1

    def __post_init__(self):
        expected_total = self.subtotal + self.tax_amount
        if self.total_amount != expected_total:
            logger.warning(
                "invoice_total_mismatch",
                extra={
                    "invoice_id": str(self.id),
                    "total_amount": str(self.total_amount),
                    "expected_total": str(expected_total),
                },
            )
            raise ValueError(
                f"total_amount ({self.total_amount}) must equal "
                f"subtotal + tax_amount ({expected_total})"
            )

    @property
    def outstanding_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @property
    def stamps(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in STAMP_FIELDS}

    def effective_status(self, now: datetime) -> InvoiceStatus:
        """Stored status, or ``OVERDUE`` for a sent invoice past its due date."""
        if self.status is InvoiceStatus.SENT and self.due_date < now:
            return InvoiceStatus.OVERDUE
        return self.status


@dataclass(frozen=True)
class InvoiceItem:
    """One invoice line.

    ``delivery_item_id`` is the preferred back reference;
    ``sales_order_item_id`` is filled whenever a sales order line matched.
    The ``*_source`` fields hold ``ResolutionSource`` values.
    """
    id: UUID
    invoice_id: UUID
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    delivery_item_id: UUID | None = None
    sales_order_item_id: UUID | None = None
    quantity_source: str = "explicit"
    unit_price_source: str = "explicit"
    description_source: str = "explicit"
