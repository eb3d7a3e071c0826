"""
Invoicing ORM Models (``fulfillment_modules.invoicing.orm``).

Responsibility
--------------
SQLAlchemy persistence models for invoices and invoice lines.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``fulfillment_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``fulfillment_kernel``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, VersionedBase, as_utc

_DATETIME_FIELDS = (
    "invoice_date",
    "due_date",
    "sent_at",
    "paid_at",
    "cancelled_at",
    "created_at",
    "updated_at",
)

_PLAIN_FIELDS = (
    "tax_rate",
    "subtotal",
    "tax_amount",
    "total_amount",
    "paid_amount",
    "currency",
    "notes",
    "sent_by",
    "paid_by",
    "cancelled_by",
)


class InvoiceModel(VersionedBase):
    """
    ORM model for invoices.

    Guarantees:
        - invoice_number is unique (uq_invoices_invoice_number).
        - delivery_id is NULL for proformas raised straight from an order.
        - status never holds ``Overdue``; that state is derived.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        Index("idx_invoices_delivery", "delivery_id"),
        Index("idx_invoices_sales_order", "sales_order_id"),
        Index("idx_invoices_status_due", "status", "due_date"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sales_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_orders.id"), nullable=False
    )
    delivery_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("delivery_notes.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    invoice_date: Mapped[datetime]
    due_date: Mapped[datetime]
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    notes: Mapped[str] = mapped_column(Text, default="")
    sent_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from fulfillment_modules.invoicing.models import Invoice, InvoiceStatus, InvoiceType

        values = {name: getattr(self, name) for name in _PLAIN_FIELDS}
        values.update({name: as_utc(getattr(self, name)) for name in _DATETIME_FIELDS})
        values["notes"] = self.notes or ""
        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            invoice_type=InvoiceType(self.invoice_type),
            sales_order_id=self.sales_order_id,
            delivery_id=self.delivery_id,
            status=InvoiceStatus(self.status),
            created_by=self.created_by,
            version=self.version,
            **values,
        )

    @classmethod
    def from_dto(cls, dto) -> "InvoiceModel":
        """Create ORM model from frozen dataclass."""
        model = cls(
            id=dto.id,
            invoice_number=dto.invoice_number,
            invoice_type=dto.invoice_type.value,
            sales_order_id=dto.sales_order_id,
            delivery_id=dto.delivery_id,
            created_by=dto.created_by,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        self.status = dto.status.value
        for name in _PLAIN_FIELDS + _DATETIME_FIELDS:
            setattr(self, name, getattr(dto, name))

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} [{self.status}]>"


class InvoiceItemModel(TrackedBase):
    """
    ORM model for invoice lines, including the resolution source of each
    resolved field.
    """

    __tablename__ = "invoice_items"

    __table_args__ = (
        Index("idx_invoice_items_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    delivery_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("delivery_items.id"), nullable=True
    )
    sales_order_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("sales_order_items.id"), nullable=True
    )
    quantity_source: Mapped[str] = mapped_column(String(30), default="explicit")
    unit_price_source: Mapped[str] = mapped_column(String(30), default="explicit")
    description_source: Mapped[str] = mapped_column(String(30), default="explicit")

    _FIELDS = (
        "line_number",
        "description",
        "quantity",
        "unit_price",
        "total_price",
        "delivery_item_id",
        "sales_order_item_id",
        "quantity_source",
        "unit_price_source",
        "description_source",
    )

    def to_dto(self):
        from fulfillment_modules.invoicing.models import InvoiceItem

        return InvoiceItem(
            id=self.id,
            invoice_id=self.invoice_id,
            **{name: getattr(self, name) for name in self._FIELDS},
        )

    @classmethod
    def from_dto(cls, dto) -> "InvoiceItemModel":
        model = cls(id=dto.id, invoice_id=dto.invoice_id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        for name in self._FIELDS:
            setattr(self, name, getattr(dto, name))
