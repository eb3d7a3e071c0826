"""
fulfillment_engines.totals -- Header aggregate recomputation.

Responsibility:
    Compute line totals and document-level aggregates (subtotal, tax,
    total, return value, receipt counters) from the CURRENT set of line
    items.  Aggregates are always recomputed from scratch and never patched
    incrementally.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``subtotal == sum(line totals)``.
    - ``total_amount == subtotal + tax_amount``.
    - Tax is computed once on the subtotal at a rate supplied by a
      pluggable ``TaxPolicy``; the engine hard-codes no rate.
    - All stored amounts are rounded half-up to the configured places.

Usage:
    policy = FlatRateTaxPolicy({"Standard": Decimal("10"), "Proforma": Decimal("0")})
    totals = InvoiceTotals.compute(
        [Decimal("20"), Decimal("5")], tax_rate_percent=policy.rate_for("Standard"),
    )
    # totals.subtotal == 25.00, totals.tax_amount == 2.50, totals.total_amount == 27.50
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from fulfillment_kernel.domain.values import ZERO, round_money, to_decimal
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines.totals")

_HUNDRED = Decimal("100")


def _key(value: Any) -> str:
    return str(value.value) if isinstance(value, Enum) else str(value)


@runtime_checkable
class TaxPolicy(Protocol):
    """Supplies the tax rate (percent) that applies to an invoice type."""

    def rate_for(self, invoice_type: Any) -> Decimal:
        ...


class FlatRateTaxPolicy:
    """
    One configured percentage per invoice type.

    Types absent from ``rates`` fall back to ``default_rate``.
    """

    def __init__(
        self,
        rates: Mapping[Any, Any] | None = None,
        default_rate: Any = ZERO,
    ):
        self._rates = {_key(k): to_decimal(v) for k, v in (rates or {}).items()}
        self._default = to_decimal(default_rate)
        for invoice_type, rate in self._rates.items():
            if rate < ZERO:
                raise ValueError(f"Tax rate for {invoice_type} cannot be negative")

    def rate_for(self, invoice_type: Any) -> Decimal:
        return self._rates.get(_key(invoice_type), self._default)

    def __repr__(self) -> str:
        return f"FlatRateTaxPolicy({self._rates!r}, default={self._default})"


def line_total(unit_price: Any, quantity: Any, places: int = 2) -> Decimal:
    """``round(unit_price * quantity)``."""
    return round_money(to_decimal(unit_price) * to_decimal(quantity), places)


@dataclass(frozen=True)
class InvoiceTotals:
    """Header aggregates of an invoice."""

    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    @classmethod
    def compute(
        cls,
        line_totals: Iterable[Any],
        tax_rate_percent: Any = ZERO,
        places: int = 2,
    ) -> "InvoiceTotals":
        subtotal = round_money(
            sum((to_decimal(t) for t in line_totals), ZERO), places
        )
        rate = to_decimal(tax_rate_percent)
        tax = round_money(subtotal * rate / _HUNDRED, places)
        return cls(
            subtotal=subtotal,
            tax_rate=rate,
            tax_amount=tax,
            total_amount=subtotal + tax,
        )


def return_total_value(item_totals: Iterable[Any], places: int = 2) -> Decimal:
    """``total_value`` of a receipt return: the sum of its item totals."""
    return round_money(sum((to_decimal(t) for t in item_totals), ZERO), places)


@dataclass(frozen=True)
class ReceiptTotals:
    """Header counters of a goods receipt."""

    total_items: int
    total_quantity_expected: Decimal
    total_quantity_received: Decimal
    discrepancy_flag: bool

    @classmethod
    def compute(cls, lines: Iterable[tuple[Any, Any]]) -> "ReceiptTotals":
        """``lines`` yields ``(quantity_expected, quantity_received)`` pairs."""
        count = 0
        expected_total = ZERO
        received_total = ZERO
        discrepancy = False
        for expected, received in lines:
            exp_d = to_decimal(expected)
            rec_d = to_decimal(received)
            count += 1
            expected_total += exp_d
            received_total += rec_d
            if rec_d > exp_d:
                discrepancy = True
        return cls(
            total_items=count,
            total_quantity_expected=expected_total,
            total_quantity_received=received_total,
            discrepancy_flag=discrepancy,
        )
