"""
Receiving Module (``fulfillment_modules.receiving``).

Goods receipts (material receipts) from suppliers and their progress
through Pending, Partial, Completed and Discrepancy.
"""

from fulfillment_modules.receiving.models import GoodsReceipt, ReceiptItem, ReceiptStatus
from fulfillment_modules.receiving.workflows import RECEIPT_WORKFLOW

__all__ = ["GoodsReceipt", "ReceiptItem", "ReceiptStatus", "RECEIPT_WORKFLOW"]
