"""
Sales Module (``fulfillment_modules.sales``).

Sales orders are the parent documents of the sell side.  They are reference
data for this engine: deliveries and invoices read them, nothing writes them
after creation.
"""

from fulfillment_modules.sales.models import SalesOrder, SalesOrderItem

__all__ = ["SalesOrder", "SalesOrderItem"]
