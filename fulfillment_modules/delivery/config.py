"""
Delivery Configuration Schema (``fulfillment_modules.delivery.config``).

Responsibility
--------------
Settings for ``DeliveryFulfillmentTracker``: document numbering and the
confirmation policy.

Failure modes
-------------
* ``ValueError`` at construction if ``number_prefix`` is blank.
"""

from dataclasses import dataclass
from typing import Self

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.delivery.config")


@dataclass
class DeliveryConfig:
    """
    Configuration schema for the delivery module.

        config = DeliveryConfig(number_prefix="DLV")
    """

    number_prefix: str = "DN"

    # Confirmation requires picking to have started.  Enabling this lets a
    # Pending delivery be confirmed straight to Complete.
    allow_confirm_from_pending: bool = False

    # Written to notes when a delivery is cancelled without a reason.
    default_cancel_reason: str = "No reason provided"

    def __post_init__(self):
        if not self.number_prefix or not self.number_prefix.strip():
            raise ValueError("number_prefix cannot be empty")

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("delivery_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "delivery_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
