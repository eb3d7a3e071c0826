"""
Invoicing Configuration Schema (``fulfillment_modules.invoicing.config``).

Responsibility
--------------
Settings for ``InvoiceGenerator``: tax rate per invoice type, payment terms,
money rounding, placeholder descriptions and document numbering.  Default
values: 10% on standard invoices, none on proformas, 30 days to pay.

Invariants enforced
-------------------
* Rates are ``Decimal`` percentages in ``[0, 100]``.
* ``payment_terms_days >= 0`` and ``money_places >= 0``.

Failure modes
-------------
* ``ValueError`` at construction if any constraint is violated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from fulfillment_engines.resolution import DEFAULT_GENERIC_DESCRIPTIONS
from fulfillment_engines.totals import FlatRateTaxPolicy
from fulfillment_kernel.domain.values import to_decimal
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.config")


@dataclass
class InvoicingConfig:
    """
    Configuration schema for the invoicing module.

        config = InvoicingConfig(
            tax_rates={"Standard": Decimal("5"), "Proforma": Decimal("0")},
            payment_terms_days=45,
        )
    """

    tax_rates: dict[str, Decimal] = field(
        default_factory=lambda: {"Standard": Decimal("10"), "Proforma": Decimal("0")}
    )
    payment_terms_days: int = 30
    money_places: int = 2
    generic_descriptions: frozenset[str] = DEFAULT_GENERIC_DESCRIPTIONS
    number_prefix: str = "INV"
    proforma_prefix: str = "PRO"
    currency: str = "USD"

    def __post_init__(self):
        self.tax_rates = {str(k): to_decimal(v) for k, v in self.tax_rates.items()}
        for invoice_type, rate in self.tax_rates.items():
            if rate < 0 or rate > Decimal("100"):
                raise ValueError(
                    f"tax rate for {invoice_type} must be between 0 and 100, got {rate}"
                )
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days cannot be negative")
        if self.money_places < 0:
            raise ValueError("money_places cannot be negative")
        self.generic_descriptions = frozenset(
            str(g).strip().lower() for g in self.generic_descriptions
        )
        logger.debug(
            "invoicing_config_initialized",
            extra={
                "tax_rates": {k: str(v) for k, v in self.tax_rates.items()},
                "payment_terms_days": self.payment_terms_days,
            },
        )

    def tax_policy(self) -> FlatRateTaxPolicy:
        return FlatRateTaxPolicy(self.tax_rates)

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("invoicing_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "invoicing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "generic_descriptions" in data:
            data["generic_descriptions"] = frozenset(data["generic_descriptions"])
        return cls(**data)
