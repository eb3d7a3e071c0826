"""
fulfillment_engines.quantity -- Quantity reconciliation between parent and child documents.

Responsibility:
    Clamp requested child quantities to the bounds implied by the parent
    document and classify a multi-line operation as Full or Partial.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import from fulfillment_kernel.

Invariants enforced:
    - ``clamp`` never returns a value outside ``[0, ordered]`` and never
      raises: out-of-range input is corrected silently.
    - ``classify`` is Full iff the delivered total equals a positive ordered
      total.  A non-positive delivered total is an error, not "Partial".
    - Replay safety: identical inputs produce identical outputs.

Failure modes:
    - ReconciliationError("NoQuantitySelected") from ``classify`` when the
      delivered total is <= 0.

Usage:
    from fulfillment_engines.quantity import QuantityReconciler, FulfillmentType

    reconciler = QuantityReconciler()
    qty = reconciler.clamp(ordered=Decimal("10"), requested=Decimal("12"))  # 10
    kind = reconciler.classify([10, 5], [10, 5])  # FulfillmentType.FULL
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from fulfillment_kernel.domain.values import ZERO, to_decimal
from fulfillment_kernel.exceptions import ReconciliationError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines.quantity")


class FulfillmentType(str, Enum):
    """Whether a child document covers all of the parent's ordered quantity."""

    FULL = "Full"
    PARTIAL = "Partial"


def _total(value: Any) -> Decimal:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return to_decimal(value)
    return sum((to_decimal(v) for v in value), ZERO)


class QuantityReconciler:
    """
    Stateless quantity reconciliation.

    Contract:
        All methods are pure; Decimal in, Decimal out.  Non-numeric input is
        treated as zero.
    """

    def clamp(self, ordered: Any, requested: Any) -> Decimal:
        """Return ``min(max(requested, 0), ordered)``."""
        ordered_d = max(to_decimal(ordered), ZERO)
        requested_d = to_decimal(requested)
        result = min(max(requested_d, ZERO), ordered_d)
        if result != requested_d:
            logger.debug(
                "quantity_clamped",
                extra={
                    "ordered": str(ordered_d),
                    "requested": str(requested_d),
                    "clamped": str(result),
                },
            )
        return result

    def remaining(self, ordered: Any, already_delivered: Any) -> Decimal:
        """Quantity of a parent line not yet covered by earlier child documents."""
        return max(to_decimal(ordered) - _total(already_delivered), ZERO)

    def classify(self, ordered_total: Any, deliver_total: Any) -> FulfillmentType:
        """
        Classify an operation as Full or Partial.

        Either argument may be a single quantity or an iterable of per-line
        quantities (summed).

        Raises:
            ReconciliationError: ``NoQuantitySelected`` when nothing is
                delivered.
        """
        ordered = _total(ordered_total)
        delivered = _total(deliver_total)
        if delivered <= ZERO:
            raise ReconciliationError(
                ReconciliationError.NO_QUANTITY_SELECTED,
                "enter a quantity greater than zero for at least one item",
                ordered_total=ordered,
                deliver_total=delivered,
            )
        if delivered == ordered and ordered > ZERO:
            return FulfillmentType.FULL
        return FulfillmentType.PARTIAL

    def clamp_lines(
        self,
        ordered: Mapping[Any, Any],
        requested: Mapping[Any, Any],
        already_delivered: Mapping[Any, Any] | None = None,
    ) -> dict[Any, Decimal]:
        """
        Clamp every requested line against what is still open on the parent.

        Lines absent from ``requested`` are treated as zero.  The upper bound
        per line is ``ordered - already_delivered`` so that the sum over all
        child documents never exceeds the parent line.
        """
        delivered = already_delivered or {}
        return {
            key: self.clamp(
                self.remaining(ordered_qty, delivered.get(key, ZERO)),
                requested.get(key, ZERO),
            )
            for key, ordered_qty in ordered.items()
        }
