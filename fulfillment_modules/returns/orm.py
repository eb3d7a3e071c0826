"""
Receipt Return ORM Models (``fulfillment_modules.returns.orm``).

Responsibility
--------------
SQLAlchemy persistence for receipt returns and return items.
``total_value`` is stored denormalized; the processor rewrites it on every
item change.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, VersionedBase, as_utc

_STAMP_BY = ("submitted_by", "approved_by", "returned_by", "credited_by", "cancelled_by")
_STAMP_AT = ("submitted_at", "approved_at", "returned_at", "credited_at", "cancelled_at")


class ReceiptReturnModel(VersionedBase):
    """
    ORM model for receipt returns.

    Guarantees:
        - return_number is unique (uq_receipt_returns_number).
        - goods_receipt_id FK to goods_receipts.id.
    """

    __tablename__ = "receipt_returns"

    __table_args__ = (
        UniqueConstraint("return_number", name="uq_receipt_returns_number"),
        Index("idx_receipt_returns_receipt", "goods_receipt_id"),
        Index("idx_receipt_returns_status", "status"),
    )

    return_number: Mapped[str] = mapped_column(String(50), nullable=False)
    goods_receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("goods_receipts.id"), nullable=False
    )
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    return_reason: Mapped[str] = mapped_column(Text, default="")
    total_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str] = mapped_column(Text, default="")
    submitted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    returned_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    returned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    credited_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    credited_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        from fulfillment_modules.returns.models import ReceiptReturn, ReturnStatus

        stamps = {name: getattr(self, name) for name in _STAMP_BY}
        stamps.update({name: as_utc(getattr(self, name)) for name in _STAMP_AT})
        return ReceiptReturn(
            id=self.id,
            return_number=self.return_number,
            goods_receipt_id=self.goods_receipt_id,
            supplier_id=self.supplier_id,
            status=ReturnStatus(self.status),
            return_reason=self.return_reason or "",
            total_value=self.total_value,
            notes=self.notes or "",
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            version=self.version,
            **stamps,
        )

    @classmethod
    def from_dto(cls, dto) -> "ReceiptReturnModel":
        model = cls(
            id=dto.id,
            return_number=dto.return_number,
            goods_receipt_id=dto.goods_receipt_id,
            supplier_id=dto.supplier_id,
            created_by=dto.created_by,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        self.status = dto.status.value
        for name in (
            "return_reason",
            "total_value",
            "notes",
            "created_at",
            "updated_at",
            *_STAMP_BY,
            *_STAMP_AT,
        ):
            setattr(self, name, getattr(dto, name))

    def __repr__(self) -> str:
        return f"<ReceiptReturnModel {self.return_number} [{self.status}]>"


class ReturnItemModel(TrackedBase):
    """ORM model for ``ReturnItem``."""

    __tablename__ = "return_items"

    __table_args__ = (
        Index("idx_return_items_return", "return_id"),
        Index("idx_return_items_receipt_item", "receipt_item_id"),
    )

    return_id: Mapped[UUID] = mapped_column(
        ForeignKey("receipt_returns.id"), nullable=False
    )
    receipt_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("receipt_items.id"), nullable=False
    )
    item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    quantity_returned: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    return_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    condition_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    _FIELDS = (
        "receipt_item_id",
        "item_id",
        "description",
        "quantity_returned",
        "unit_cost",
        "total_cost",
        "return_reason",
        "condition_notes",
    )

    def to_dto(self):
        from fulfillment_modules.returns.models import ReturnItem

        values = {name: getattr(self, name) for name in self._FIELDS}
        values["description"] = self.description or ""
        return ReturnItem(id=self.id, return_id=self.return_id, **values)

    @classmethod
    def from_dto(cls, dto) -> "ReturnItemModel":
        model = cls(id=dto.id, return_id=dto.return_id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        for name in self._FIELDS:
            setattr(self, name, getattr(dto, name))
