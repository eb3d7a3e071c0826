"""
Fulfillment Modules - Per-document ERP glue.

Each module declares:
    models.py     frozen DTOs and status enums
    workflows.py  the status table for its document kind
    orm.py        SQLAlchemy persistence
    service.py    operations (where the document has behavior)
    config.py     settings (where the document has any)

Modules:
    sales       Sales orders (reference data)
    delivery    Delivery notes: DeliveryFulfillmentTracker
    invoicing   Invoices: InvoiceGenerator
    receiving   Goods receipts: ReceivingService
    returns     Receipt returns: ReceiptReturnProcessor

Services import their module's ``service.py`` directly; this package only
re-exports the status tables.
"""

from fulfillment_engines.status import StatusStateMachine
from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_modules.delivery.workflows import DELIVERY_WORKFLOW
from fulfillment_modules.invoicing.workflows import INVOICE_WORKFLOW
from fulfillment_modules.receiving.workflows import RECEIPT_WORKFLOW
from fulfillment_modules.returns.workflows import RETURN_WORKFLOW

DOCUMENT_WORKFLOWS = {
    DocumentKind.DELIVERY: DELIVERY_WORKFLOW,
    DocumentKind.INVOICE: INVOICE_WORKFLOW,
    DocumentKind.RECEIPT: RECEIPT_WORKFLOW,
    DocumentKind.RETURN: RETURN_WORKFLOW,
}


def default_state_machine() -> StatusStateMachine:
    """A state machine with every module's status table registered."""
    return StatusStateMachine(DOCUMENT_WORKFLOWS)


__all__ = ["DOCUMENT_WORKFLOWS", "default_state_machine"]
