"""
Delivery Module (``fulfillment_modules.delivery``).

Responsibility
--------------
Delivery notes raised against sales orders: quantity reconciliation on
creation and edit, picking and confirmation stamps, and the delivery status
table.  ``DeliveryFulfillmentTracker`` in ``service.py`` is the entry point.
"""

from fulfillment_modules.delivery.config import DeliveryConfig
from fulfillment_modules.delivery.models import DeliveryItem, DeliveryNote, DeliveryStatus
from fulfillment_modules.delivery.workflows import DELIVERY_WORKFLOW

__all__ = [
    "DeliveryConfig",
    "DeliveryItem",
    "DeliveryNote",
    "DeliveryStatus",
    "DELIVERY_WORKFLOW",
]
