"""
Receipt Returns Module (``fulfillment_modules.returns``).

Responsibility
--------------
Returns of received goods to the supplier: quantity checks against what was
received, derived return value, and the approval/shipment/credit table.
``ReceiptReturnProcessor`` in ``service.py`` is the entry point.
"""

from fulfillment_modules.returns.config import ReturnsConfig
from fulfillment_modules.returns.models import ReceiptReturn, ReturnItem, ReturnStatus
from fulfillment_modules.returns.workflows import RETURN_WORKFLOW

__all__ = [
    "ReturnsConfig",
    "ReceiptReturn",
    "ReturnItem",
    "ReturnStatus",
    "RETURN_WORKFLOW",
]
