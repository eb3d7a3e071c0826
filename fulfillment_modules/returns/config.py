"""
Receipt Return Configuration Schema (``fulfillment_modules.returns.config``).
"""

from dataclasses import dataclass
from typing import Self

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.returns.config")


@dataclass
class ReturnsConfig:
    """Numbering and rounding for receipt returns."""

    number_prefix: str = "RR"
    money_places: int = 2

    def __post_init__(self):
        if not self.number_prefix or not self.number_prefix.strip():
            raise ValueError("number_prefix cannot be empty")
        if self.money_places < 0:
            raise ValueError("money_places cannot be negative")

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("returns_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "returns_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
