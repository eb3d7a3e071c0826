"""
Request payload parsing for the ``FulfillmentEngine`` facade.

Handlers receive JSON-like dicts; this module turns them into typed,
frozen request objects or raises ``ValidationError`` naming the offending
field.  Referential checks (does the sales order exist?) are not done here;
the module services raise ``NotFoundError`` for those.

Architecture: fulfillment_services.  ZERO I/O.  Imports only from
fulfillment_kernel.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from fulfillment_kernel.exceptions import ValidationError

# Storage uses Numeric(38, 9) for quantities and amounts
_MAX_DECIMAL_DIGITS = 38
_MAX_DECIMAL_PLACES = 9


def _require(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(key, "is required")
    return value


def parse_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(field, f"not a valid UUID: {value!r}") from None


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a quantity or amount; floats go through ``str``."""
    if isinstance(value, bool):
        raise ValidationError(field, "must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(field, f"not a number: {value!r}") from None
    if not result.is_finite():
        raise ValidationError(field, "must be finite")
    _, digits, exponent = result.as_tuple()
    places = -exponent if exponent < 0 else 0
    if places > _MAX_DECIMAL_PLACES:
        raise ValidationError(field, f"more than {_MAX_DECIMAL_PLACES} decimal places")
    if len(digits) + max(exponent, 0) > _MAX_DECIMAL_DIGITS:
        raise ValidationError(field, f"more than {_MAX_DECIMAL_DIGITS} digits")
    return result


def _optional_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return None if value is None else str(value)


@dataclass(frozen=True)
class DeliveryRequest:
    sales_order_id: UUID
    quantities: Mapping[UUID, Decimal]
    actor: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DeliveryRequest":
        """
        Accepts either ``{"quantities": {so_item_id: qty}}`` or
        ``{"items": [{"sales_order_item_id": id, "quantity": qty}]}``.
        """
        sales_order_id = parse_uuid(_require(payload, "sales_order_id"), "sales_order_id")
        quantities: dict[UUID, Decimal] = {}
        if isinstance(payload.get("quantities"), Mapping):
            for key, qty in payload["quantities"].items():
                quantities[parse_uuid(key, "quantities")] = parse_decimal(
                    qty, f"quantities[{key}]"
                )
        elif isinstance(payload.get("items"), (list, tuple)):
            for index, line in enumerate(payload["items"]):
                if not isinstance(line, Mapping):
                    raise ValidationError(f"items[{index}]", "must be an object")
                so_item_id = parse_uuid(
                    _require(line, "sales_order_item_id"),
                    f"items[{index}].sales_order_item_id",
                )
                qty = parse_decimal(_require(line, "quantity"), f"items[{index}].quantity")
                quantities[so_item_id] = quantities.get(so_item_id, Decimal("0")) + qty
        else:
            raise ValidationError("items", "either 'items' or 'quantities' is required")
        return cls(sales_order_id, quantities, _optional_str(payload, "actor"))


@dataclass(frozen=True)
class InvoiceRequest:
    """Standard invoice from a delivery, or proforma from a sales order."""
    invoice_type: str
    delivery_id: UUID | None = None
    sales_order_id: UUID | None = None
    selected_item_ids: tuple[UUID, ...] | None = None
    actor: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "InvoiceRequest":
        invoice_type = str(payload.get("invoice_type") or "Standard").strip().capitalize()
        if invoice_type not in ("Standard", "Proforma"):
            raise ValidationError("invoice_type", f"unknown invoice type {invoice_type!r}")
        delivery_id = (
            parse_uuid(payload["delivery_id"], "delivery_id")
            if payload.get("delivery_id")
            else None
        )
        sales_order_id = (
            parse_uuid(payload["sales_order_id"], "sales_order_id")
            if payload.get("sales_order_id")
            else None
        )
        if delivery_id is None and sales_order_id is None:
            raise ValidationError("delivery_id", "is required")
        if delivery_id is None and invoice_type != "Proforma":
            raise ValidationError(
                "delivery_id", "only proforma invoices can be raised from a sales order"
            )
        selected = payload.get("selected_item_ids")
        if selected is not None:
            if not isinstance(selected, (list, tuple)):
                raise ValidationError("selected_item_ids", "must be a list")
            selected = tuple(parse_uuid(v, "selected_item_ids") for v in selected)
        return cls(
            invoice_type=invoice_type,
            delivery_id=delivery_id,
            sales_order_id=sales_order_id,
            selected_item_ids=selected,
            actor=_optional_str(payload, "actor"),
        )


@dataclass(frozen=True)
class ReturnLineRequest:
    receipt_item_id: UUID
    quantity_returned: Decimal
    unit_cost: Decimal | None = None
    description: str | None = None
    return_reason: str | None = None
    condition_notes: str | None = None


@dataclass(frozen=True)
class ReturnRequest:
    goods_receipt_id: UUID
    items: tuple[ReturnLineRequest, ...]
    return_reason: str = ""
    notes: str = ""
    actor: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ReturnRequest":
        goods_receipt_id = parse_uuid(
            _require(payload, "goods_receipt_id"), "goods_receipt_id"
        )
        raw_items = payload.get("items")
        if not isinstance(raw_items, (list, tuple)):
            raise ValidationError("items", "must be a list")
        items = []
        for index, line in enumerate(raw_items):
            if not isinstance(line, Mapping):
                raise ValidationError(f"items[{index}]", "must be an object")
            unit_cost = line.get("unit_cost")
            items.append(
                ReturnLineRequest(
                    receipt_item_id=parse_uuid(
                        _require(line, "receipt_item_id"), f"items[{index}].receipt_item_id"
                    ),
                    quantity_returned=parse_decimal(
                        _require(line, "quantity_returned"),
                        f"items[{index}].quantity_returned",
                    ),
                    unit_cost=(
                        None
                        if unit_cost in (None, "")
                        else parse_decimal(unit_cost, f"items[{index}].unit_cost")
                    ),
                    description=_optional_str(line, "description"),
                    return_reason=_optional_str(line, "return_reason"),
                    condition_notes=_optional_str(line, "condition_notes"),
                )
            )
        return cls(
            goods_receipt_id=goods_receipt_id,
            items=tuple(items),
            return_reason=str(payload.get("return_reason") or ""),
            notes=str(payload.get("notes") or ""),
            actor=_optional_str(payload, "actor"),
        )
