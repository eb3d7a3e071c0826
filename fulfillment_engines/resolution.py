"""
fulfillment_engines.resolution -- Fallback resolution of invoice line fields.

Responsibility:
    Derive quantity, unit price and description for a child line (invoice
    item) when its own authoritative fields are missing, by consulting an
    ordered chain of candidate sources.  Every resolver returns the value
    together with the source that satisfied it so the choice is auditable.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Source lines and sales
    order lines may be DTOs or plain mappings; fields are read by name.

Chains (first usable value wins):
    quantity     explicit -> delivered -> picked -> ordered -> 0
                 (``None`` is empty; zero is a real value)
    unit price   explicit (> 0) -> line total / quantity (both > 0)
                 -> matched sales order unit price (> 0) -> 0
    description  explicit (non-generic) -> matched sales order description
                 -> item-level description fields -> "Item {n}"
    sales order  sales_order_item_id -> line_number -> item_id -> position

Invariants enforced:
    - Deterministic: same inputs, same ``Resolved`` values and sources.
    - ``total_price == round(unit_price * quantity)`` unless the explicit
      total is self-consistent with the resolved unit price and quantity.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fulfillment_kernel.domain.values import ZERO, is_positive, round_money, to_decimal
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines.resolution")

DEFAULT_GENERIC_DESCRIPTIONS: frozenset[str] = frozenset(
    {"", "item", "generic item", "delivery item", "item from sales order"}
)

_UNIT_PRICE_QUANTUM = Decimal("0.000001")


class ResolutionSource(str, Enum):
    """Which candidate satisfied a fallback chain."""

    EXPLICIT = "explicit"
    DELIVERED = "delivered"
    PICKED = "picked"
    ORDERED = "ordered"
    DERIVED_FROM_TOTAL = "derived_from_total"
    SALES_ORDER = "sales_order"
    ITEM_FIELD = "item_field"
    COMPUTED = "computed"
    SYNTHETIC = "synthetic"
    DEFAULT = "default"


class MatchRule(str, Enum):
    """How a source line was paired with its sales order line."""

    SALES_ORDER_ITEM_ID = "sales_order_item_id"
    LINE_NUMBER = "line_number"
    ITEM_ID = "item_id"
    POSITION = "position"


@dataclass(frozen=True)
class Resolved:
    """A resolved field value and the source that produced it."""

    value: Any
    source: ResolutionSource


@dataclass(frozen=True)
class ResolvedLine:
    """All resolved fields of one child line."""

    quantity: Resolved
    unit_price: Resolved
    description: Resolved
    total_price: Resolved
    sales_order_item_id: UUID | None = None
    match_rule: MatchRule | None = None


def _get_attr(obj: Any, key: str, default: Any = None) -> Any:
    """Get a field from a DTO or a mapping."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def is_generic_description(
    text: str | None, generic: Iterable[str] = DEFAULT_GENERIC_DESCRIPTIONS
) -> bool:
    """Placeholder descriptions carry no information and are skipped."""
    if text is None:
        return True
    return str(text).strip().lower() in {g.lower() for g in generic}


def resolve_quantity(
    explicit: Any = None,
    delivered: Any = None,
    picked: Any = None,
    ordered: Any = None,
) -> Resolved:
    """
    First present quantity of explicit, delivered, picked, ordered.

    Only ``None`` (or an unparseable value) moves down the chain.  A
    delivered quantity of 0 is a recorded "nothing delivered" and resolves
    to 0, so the line is dropped instead of being invoiced at the picked
    quantity.  This is deliberately stricter than a falsy-value chain.
    """
    chain = (
        (explicit, ResolutionSource.EXPLICIT),
        (delivered, ResolutionSource.DELIVERED),
        (picked, ResolutionSource.PICKED),
        (ordered, ResolutionSource.ORDERED),
    )
    for candidate, source in chain:
        value = to_decimal(candidate, default=None)
        if value is not None:
            return Resolved(max(value, ZERO), source)
    return Resolved(ZERO, ResolutionSource.DEFAULT)


def resolve_unit_price(
    explicit: Any = None,
    total_line: Any = None,
    quantity: Any = None,
    sales_order_price: Any = None,
) -> Resolved:
    explicit_d = to_decimal(explicit, default=None)
    if is_positive(explicit_d):
        return Resolved(explicit_d, ResolutionSource.EXPLICIT)

    total_d = to_decimal(total_line, default=None)
    qty_d = to_decimal(quantity, default=None)
    if is_positive(total_d) and is_positive(qty_d):
        derived = (total_d / qty_d).quantize(_UNIT_PRICE_QUANTUM)
        return Resolved(derived, ResolutionSource.DERIVED_FROM_TOTAL)

    so_price = to_decimal(sales_order_price, default=None)
    if is_positive(so_price):
        return Resolved(so_price, ResolutionSource.SALES_ORDER)

    return Resolved(ZERO, ResolutionSource.DEFAULT)


def resolve_description(
    explicit: str | None = None,
    sales_order_description: str | None = None,
    item_fields: Sequence[str | None] = (),
    position: int = 0,
    generic: Iterable[str] = DEFAULT_GENERIC_DESCRIPTIONS,
) -> Resolved:
    """
    Resolve a line description.

    ``position`` is zero-based; the synthetic fallback is ``Item {position+1}``.
    """
    generic = frozenset(generic)
    if not is_generic_description(explicit, generic):
        return Resolved(str(explicit).strip(), ResolutionSource.EXPLICIT)
    if sales_order_description and str(sales_order_description).strip():
        return Resolved(str(sales_order_description).strip(), ResolutionSource.SALES_ORDER)
    for text in item_fields:
        if text and str(text).strip():
            return Resolved(str(text).strip(), ResolutionSource.ITEM_FIELD)
    return Resolved(f"Item {position + 1}", ResolutionSource.SYNTHETIC)


def match_sales_order_item(
    source: Any, candidates: Sequence[Any], position: int
) -> tuple[Any, MatchRule] | None:
    """
    Pair ``source`` with a sales order line.

    Tries ``sales_order_item_id`` against candidate ``id``, then
    ``line_number``, then ``item_id``, then the candidate at ``position``.
    """
    if not candidates:
        return None

    so_item_id = _get_attr(source, "sales_order_item_id")
    if so_item_id is not None:
        for c in candidates:
            if _get_attr(c, "id") == so_item_id:
                return c, MatchRule.SALES_ORDER_ITEM_ID

    line_number = _get_attr(source, "line_number")
    if line_number:
        for c in candidates:
            if _get_attr(c, "line_number") == line_number:
                return c, MatchRule.LINE_NUMBER

    item_id = _get_attr(source, "item_id")
    if item_id is not None:
        for c in candidates:
            if _get_attr(c, "item_id") == item_id:
                return c, MatchRule.ITEM_ID

    if 0 <= position < len(candidates):
        return candidates[position], MatchRule.POSITION
    return None


class LineResolver:
    """
    Resolve every field of a child line against its sales order context.

    Contract:
        Stateless; ``money_places`` controls rounding of line totals.
    """

    def __init__(
        self,
        generic_descriptions: Iterable[str] = DEFAULT_GENERIC_DESCRIPTIONS,
        money_places: int = 2,
    ):
        self._generic = frozenset(g.lower() for g in generic_descriptions)
        self._places = money_places

    def resolve(
        self,
        source: Any,
        sales_order_items: Sequence[Any],
        position: int,
    ) -> ResolvedLine:
        matched = match_sales_order_item(source, sales_order_items, position)
        so_item, rule = matched if matched is not None else (None, None)

        quantity = resolve_quantity(
            explicit=_get_attr(source, "quantity"),
            delivered=_get_attr(source, "delivered_qty"),
            picked=_get_attr(source, "picked_qty"),
            ordered=_get_attr(source, "ordered_qty"),
        )
        explicit_total = to_decimal(_get_attr(source, "total_price"), default=None)
        unit_price = resolve_unit_price(
            explicit=_get_attr(source, "unit_price"),
            total_line=explicit_total,
            quantity=quantity.value,
            sales_order_price=_get_attr(so_item, "unit_price"),
        )
        description = resolve_description(
            explicit=_get_attr(source, "description"),
            sales_order_description=_get_attr(so_item, "description"),
            item_fields=(
                _get_attr(source, "item_description"),
                _get_attr(source, "product_name"),
            ),
            position=position,
            generic=self._generic,
        )
        total = self._resolve_total(explicit_total, unit_price, quantity.value)

        return ResolvedLine(
            quantity=quantity,
            unit_price=unit_price,
            description=description,
            total_price=total,
            sales_order_item_id=_get_attr(so_item, "id"),
            match_rule=rule,
        )

    def _resolve_total(
        self, explicit_total: Decimal | None, unit_price: Resolved, quantity: Decimal
    ) -> Resolved:
        computed = round_money(unit_price.value * quantity, self._places)
        if explicit_total is None:
            return Resolved(computed, ResolutionSource.COMPUTED)
        explicit_rounded = round_money(explicit_total, self._places)
        if (
            unit_price.source is ResolutionSource.DERIVED_FROM_TOTAL
            or explicit_rounded == computed
        ):
            return Resolved(explicit_rounded, ResolutionSource.EXPLICIT)
        logger.debug(
            "explicit_total_inconsistent",
            extra={
                "explicit_total": str(explicit_total),
                "computed_total": str(computed),
            },
        )
        return Resolved(computed, ResolutionSource.COMPUTED)
