"""
Receiving ORM Models (``fulfillment_modules.receiving.orm``).

SQLAlchemy persistence for goods receipts and receipt lines.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, VersionedBase, as_utc


class GoodsReceiptModel(VersionedBase):
    """ORM model for ``GoodsReceipt``; counters are stored denormalized."""

    __tablename__ = "goods_receipts"

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_goods_receipts_number"),
        Index("idx_goods_receipts_status", "status"),
    )

    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    total_quantity_expected: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_quantity_received: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discrepancy_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str] = mapped_column(Text, default="")
    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        from fulfillment_modules.receiving.models import GoodsReceipt, ReceiptStatus

        return GoodsReceipt(
            id=self.id,
            receipt_number=self.receipt_number,
            supplier_id=self.supplier_id,
            status=ReceiptStatus(self.status),
            total_items=self.total_items,
            total_quantity_expected=self.total_quantity_expected,
            total_quantity_received=self.total_quantity_received,
            discrepancy_flag=self.discrepancy_flag,
            notes=self.notes or "",
            created_by=self.created_by,
            received_by=self.received_by,
            completed_at=as_utc(self.completed_at),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto) -> "GoodsReceiptModel":
        model = cls(
            id=dto.id,
            receipt_number=dto.receipt_number,
            supplier_id=dto.supplier_id,
            created_by=dto.created_by,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        self.status = dto.status.value
        for name in (
            "total_items",
            "total_quantity_expected",
            "total_quantity_received",
            "discrepancy_flag",
            "notes",
            "received_by",
            "completed_at",
            "created_at",
            "updated_at",
        ):
            setattr(self, name, getattr(dto, name))


class ReceiptItemModel(TrackedBase):
    """ORM model for ``ReceiptItem``."""

    __tablename__ = "receipt_items"

    __table_args__ = (
        Index("idx_receipt_items_receipt", "goods_receipt_id"),
    )

    goods_receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("goods_receipts.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    quantity_expected: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    quantity_received: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    def to_dto(self):
        from fulfillment_modules.receiving.models import ReceiptItem

        return ReceiptItem(
            id=self.id,
            goods_receipt_id=self.goods_receipt_id,
            line_number=self.line_number,
            item_id=self.item_id,
            description=self.description or "",
            quantity_expected=self.quantity_expected,
            quantity_received=self.quantity_received,
            unit_cost=self.unit_cost,
        )

    @classmethod
    def from_dto(cls, dto) -> "ReceiptItemModel":
        model = cls(id=dto.id, goods_receipt_id=dto.goods_receipt_id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        for name in (
            "line_number",
            "item_id",
            "description",
            "quantity_expected",
            "quantity_received",
            "unit_cost",
        ):
            setattr(self, name, getattr(dto, name))
