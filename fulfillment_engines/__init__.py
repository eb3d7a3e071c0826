"""
Fulfillment Engines - Pure calculation layer.

Engines take plain values (Decimal quantities, status strings, DTOs read by
field name) and return plain values.  No repository access, no clock, no
I/O beyond structured log records.

Engines:
    quantity     QuantityReconciler: clamp, remaining, classify Full/Partial
    status       StatusStateMachine: table-driven transitions + stamping
    resolution   LineResolver and named fallback resolvers
    totals       Invoice/return/receipt aggregates and TaxPolicy
"""

from fulfillment_engines.quantity import FulfillmentType, QuantityReconciler
from fulfillment_engines.resolution import (
    LineResolver,
    MatchRule,
    Resolved,
    ResolvedLine,
    ResolutionSource,
    match_sales_order_item,
    resolve_description,
    resolve_quantity,
    resolve_unit_price,
)
from fulfillment_engines.status import StatusStateMachine, TransitionResult
from fulfillment_engines.totals import (
    FlatRateTaxPolicy,
    InvoiceTotals,
    ReceiptTotals,
    TaxPolicy,
    line_total,
    return_total_value,
)

__all__ = [
    "FulfillmentType",
    "QuantityReconciler",
    "StatusStateMachine",
    "TransitionResult",
    "LineResolver",
    "MatchRule",
    "Resolved",
    "ResolvedLine",
    "ResolutionSource",
    "match_sales_order_item",
    "resolve_description",
    "resolve_quantity",
    "resolve_unit_price",
    "FlatRateTaxPolicy",
    "InvoiceTotals",
    "ReceiptTotals",
    "TaxPolicy",
    "line_total",
    "return_total_value",
]
