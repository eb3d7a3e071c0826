"""
EngineConfig schema (``fulfillment_config.schema``).

The human-authored settings of one engine deployment: tax rates per invoice
type, payment terms, rounding, placeholder descriptions and document number
prefixes.  Parsed from YAML by ``fulfillment_config.loader`` and split into
per-module configs by ``fulfillment_services.engine``.

This package sits below ``fulfillment_modules`` and never imports from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Mapping, Self

DEFAULT_TAX_RATES: Mapping[str, str] = MappingProxyType(
    {"Standard": "10", "Proforma": "0"}
)

DEFAULT_NUMBER_PREFIXES: Mapping[str, str] = MappingProxyType(
    {
        "delivery": "DN",
        "invoice": "INV",
        "proforma": "PRO",
        "receipt": "GR",
        "return": "RR",
    }
)

DEFAULT_GENERIC_DESCRIPTIONS: frozenset[str] = frozenset(
    {"", "item", "generic item", "delivery item", "item from sales order"}
)


def _rate(invoice_type: str, value: Any) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"tax rate for {invoice_type} is not a number: {value!r}") from None
    if not rate.is_finite() or rate < 0 or rate > 100:
        raise ValueError(f"tax rate for {invoice_type} must be between 0 and 100, got {value}")
    return rate


@dataclass(frozen=True)
class EngineConfig:
    """Engine-wide settings."""

    tax_rates: Mapping[str, Decimal] = field(
        default_factory=lambda: {k: Decimal(v) for k, v in DEFAULT_TAX_RATES.items()}
    )
    payment_terms_days: int = 30
    money_places: int = 2
    currency: str = "USD"
    generic_descriptions: frozenset[str] = DEFAULT_GENERIC_DESCRIPTIONS
    number_prefixes: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_NUMBER_PREFIXES)
    )
    allow_confirm_from_pending: bool = False
    default_cancel_reason: str = "No reason provided"

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(
            self,
            "tax_rates",
            {str(k): _rate(str(k), v) for k, v in self.tax_rates.items()},
        )
        prefixes = dict(DEFAULT_NUMBER_PREFIXES)
        prefixes.update({str(k): str(v) for k, v in self.number_prefixes.items()})
        unknown = set(prefixes) - set(DEFAULT_NUMBER_PREFIXES)
        if unknown:
            raise ValueError(f"unknown number prefix keys: {sorted(unknown)}")
        for key, prefix in prefixes.items():
            if not prefix.strip():
                raise ValueError(f"number prefix for {key} cannot be empty")
        object.__setattr__(self, "number_prefixes", prefixes)
        object.__setattr__(
            self,
            "generic_descriptions",
            frozenset(str(g).strip().lower() for g in self.generic_descriptions),
        )
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days cannot be negative")
        if self.money_places < 0:
            raise ValueError("money_places cannot be negative")

    def prefix(self, key: str) -> str:
        return self.number_prefixes[key]

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build from a parsed YAML mapping; unknown top-level keys are errors."""
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown configuration keys: {sorted(unknown)}")
        data = dict(data)
        if "generic_descriptions" in data:
            data["generic_descriptions"] = frozenset(data["generic_descriptions"] or ())
        for key in ("tax_rates", "number_prefixes"):
            if key in data and not isinstance(data[key], Mapping):
                raise ValueError(f"{key} must be a mapping")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tax_rates": {k: str(v) for k, v in self.tax_rates.items()},
            "payment_terms_days": self.payment_terms_days,
            "money_places": self.money_places,
            "currency": self.currency,
            "generic_descriptions": sorted(self.generic_descriptions),
            "number_prefixes": dict(self.number_prefixes),
            "allow_confirm_from_pending": self.allow_confirm_from_pending,
            "default_cancel_reason": self.default_cancel_reason,
        }
