"""
Tests for QuantityReconciler (fulfillment_engines/quantity.py).

Validates:
- clamp bounds results to [0, ordered] and never raises
- classify returns Full only when the delivered total equals the ordered total
- classify rejects an empty selection with NoQuantitySelected
- clamp_lines respects quantities already delivered by earlier documents
"""

from decimal import Decimal

import pytest

from fulfillment_engines.quantity import FulfillmentType, QuantityReconciler
from fulfillment_kernel.exceptions import ReconciliationError


@pytest.fixture
def reconciler():
    return QuantityReconciler()


class TestClamp:
    """clamp(ordered, requested) = min(max(requested, 0), ordered)."""

    def test_within_bounds_unchanged(self, reconciler):
        assert reconciler.clamp(Decimal("10"), Decimal("4")) == Decimal("4")

    def test_over_request_clamped_to_ordered(self, reconciler):
        assert reconciler.clamp(Decimal("10"), Decimal("12")) == Decimal("10")

    def test_negative_request_clamped_to_zero(self, reconciler):
        assert reconciler.clamp(Decimal("10"), Decimal("-3")) == Decimal("0")

    def test_non_numeric_request_treated_as_zero(self, reconciler):
        assert reconciler.clamp(Decimal("10"), "abc") == Decimal("0")

    def test_accepts_strings_and_ints(self, reconciler):
        assert reconciler.clamp(10, "2.5") == Decimal("2.5")


class TestClassify:
    """Full iff delivered == ordered > 0."""

    def test_full(self, reconciler):
        assert reconciler.classify([10, 5], [10, 5]) is FulfillmentType.FULL

    def test_partial(self, reconciler):
        assert reconciler.classify([10, 5], [5, 5]) is FulfillmentType.PARTIAL

    def test_nothing_selected_raises(self, reconciler):
        with pytest.raises(ReconciliationError) as exc_info:
            reconciler.classify([10, 5], [0, 0])
        assert exc_info.value.reason == ReconciliationError.NO_QUANTITY_SELECTED
        assert exc_info.value.code == "RECONCILIATION_ERROR"

    def test_scalar_totals(self, reconciler):
        assert reconciler.classify(Decimal("15"), Decimal("15")) is FulfillmentType.FULL

    def test_fulfillment_type_values(self):
        assert FulfillmentType.FULL.value == "Full"
        assert FulfillmentType.PARTIAL.value == "Partial"


class TestClampLines:
    """Per-line clamping against what earlier documents left open."""

    def test_remaining_subtracts_earlier_deliveries(self, reconciler):
        assert reconciler.remaining(Decimal("10"), [Decimal("3"), Decimal("4")]) == Decimal("3")

    def test_remaining_never_negative(self, reconciler):
        assert reconciler.remaining(Decimal("5"), Decimal("8")) == Decimal("0")

    def test_lines_bounded_by_remaining(self, reconciler):
        result = reconciler.clamp_lines(
            {"a": Decimal("10"), "b": Decimal("5")},
            {"a": Decimal("10"), "b": Decimal("2")},
            {"a": Decimal("6")},
        )
        assert result == {"a": Decimal("4"), "b": Decimal("2")}

    def test_missing_lines_are_zero(self, reconciler):
        result = reconciler.clamp_lines({"a": Decimal("10"), "b": Decimal("5")}, {"a": 1})
        assert result["b"] == Decimal("0")
