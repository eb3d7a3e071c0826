"""
Document kinds (``fulfillment_kernel.domain.documents``).

The kinds of document that carry a status lifecycle.  Used as the key of the
workflow registry and in log context.
"""

from enum import Enum


class DocumentKind(str, Enum):
    """Document types with their own status table."""

    DELIVERY = "delivery"
    INVOICE = "invoice"
    RECEIPT = "receipt"
    RETURN = "return"

    @classmethod
    def parse(cls, value: "str | DocumentKind") -> "DocumentKind":
        """Accept either the enum or its (case-insensitive) value."""
        if isinstance(value, DocumentKind):
            return value
        return cls(str(value).strip().lower())
