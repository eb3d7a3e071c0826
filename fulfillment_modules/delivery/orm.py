"""
Delivery ORM Models (``fulfillment_modules.delivery.orm``).

Responsibility
--------------
SQLAlchemy persistence models for delivery notes and delivery lines.  Maps
the frozen domain dataclasses from ``models.py`` to database tables.

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

# Header columns copied verbatim between DTO and model.
_HEADER_FIELDS = (
    "notes",
    "picking_notes",
    "picking_started_by",
    "picking_started_at",
    "picking_completed_by",
    "picking_completed_at",
    "delivery_confirmed_by",
    "delivery_confirmed_at",
    "actual_delivery_date",
    "created_at",
    "updated_at",
)


class DeliveryNoteModel(VersionedBase):
    """
    ORM model for delivery notes.

    Guarantees:
        - delivery_number is unique (uq_delivery_notes_number).
        - status and delivery_type stored as string enum values.
        - version managed by SQLAlchemy (optimistic locking).
    """

    __tablename__ = "delivery_notes"

    __table_args__ = (
        UniqueConstraint("delivery_number", name="uq_delivery_notes_number"),
        Index("idx_delivery_notes_sales_order", "sales_order_id"),
        Index("idx_delivery_notes_status", "status"),
    )

    delivery_number: Mapped[str] = mapped_column(String(50), nullable=False)
    sales_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_orders.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    delivery_type: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="")
    picking_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    picking_started_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    picking_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    picking_completed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    picking_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivery_confirmed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    delivery_confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_delivery_date: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from fulfillment_engines.quantity import FulfillmentType
        from fulfillment_modules.delivery.models import DeliveryNote, DeliveryStatus

        return DeliveryNote(
            id=self.id,
            delivery_number=self.delivery_number,
            sales_order_id=self.sales_order_id,
            status=DeliveryStatus(self.status),
            delivery_type=FulfillmentType(self.delivery_type),
            created_by=self.created_by,
            notes=self.notes or "",
            picking_notes=self.picking_notes,
            picking_started_by=self.picking_started_by,
            picking_started_at=as_utc(self.picking_started_at),
            picking_completed_by=self.picking_completed_by,
            picking_completed_at=as_utc(self.picking_completed_at),
            delivery_confirmed_by=self.delivery_confirmed_by,
            delivery_confirmed_at=as_utc(self.delivery_confirmed_at),
            actual_delivery_date=as_utc(self.actual_delivery_date),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto) -> "DeliveryNoteModel":
        """Create ORM model from frozen dataclass."""
        model = cls(
            id=dto.id,
            delivery_number=dto.delivery_number,
            sales_order_id=dto.sales_order_id,
            created_by=dto.created_by,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        """Copy the mutable header fields of ``dto`` onto this row."""
        self.status = dto.status.value
        self.delivery_type = dto.delivery_type.value
        for name in _HEADER_FIELDS:
            setattr(self, name, getattr(dto, name))

    def __repr__(self) -> str:
        return f"<DeliveryNoteModel {self.delivery_number} [{self.status}]>"


class DeliveryItemModel(TrackedBase):
    """
    ORM model for delivery lines.

    Guarantees:
        - delivery_id FK to delivery_notes.id.
        - Quantities and amounts use Decimal (Numeric(38,9)).
    """

    __tablename__ = "delivery_items"

    __table_args__ = (
        Index("idx_delivery_items_delivery", "delivery_id"),
        Index("idx_delivery_items_so_item", "sales_order_item_id"),
    )

    delivery_id: Mapped[UUID] = mapped_column(
        ForeignKey("delivery_notes.id"), nullable=False
    )
    sales_order_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_order_items.id"), nullable=False
    )
    item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    ordered_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    picked_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    delivered_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    def to_dto(self):
        from fulfillment_modules.delivery.models import DeliveryItem

        return DeliveryItem(
            id=self.id,
            delivery_id=self.delivery_id,
            sales_order_item_id=self.sales_order_item_id,
            item_id=self.item_id,
            line_number=self.line_number,
            description=self.description or "",
            ordered_qty=self.ordered_qty,
            picked_qty=self.picked_qty,
            delivered_qty=self.delivered_qty,
            unit_price=self.unit_price,
            total_price=self.total_price,
        )

    @classmethod
    def from_dto(cls, dto) -> "DeliveryItemModel":
        model = cls(id=dto.id, delivery_id=dto.delivery_id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        for name in (
            "sales_order_item_id",
            "item_id",
            "line_number",
            "description",
            "ordered_qty",
            "picked_qty",
            "delivered_qty",
            "unit_price",
            "total_price",
        ):
            setattr(self, name, getattr(dto, name))
