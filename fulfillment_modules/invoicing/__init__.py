"""
Invoicing Module (``fulfillment_modules.invoicing``).

Responsibility
--------------
Customer invoices generated from delivery notes (standard) or sales orders
(proforma), with fallback resolution of line fields and configurable tax.
``InvoiceGenerator`` in ``service.py`` is the entry point.
"""

from fulfillment_modules.invoicing.config import InvoicingConfig
from fulfillment_modules.invoicing.models import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoiceType,
)
from fulfillment_modules.invoicing.workflows import INVOICE_WORKFLOW

__all__ = [
    "InvoicingConfig",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "InvoiceType",
    "INVOICE_WORKFLOW",
]
