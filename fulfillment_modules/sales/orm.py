"""
Sales ORM Models (``fulfillment_modules.sales.orm``).

Responsibility
--------------
SQLAlchemy persistence for sales orders and sales order lines.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from
``fulfillment_kernel.db.base`` and sibling ``models.py``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase


class SalesOrderModel(TrackedBase):
    """ORM model for ``SalesOrder``."""

    __tablename__ = "sales_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_sales_orders_order_number"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    def to_dto(self):
        from fulfillment_modules.sales.models import SalesOrder

        return SalesOrder(
            id=self.id,
            order_number=self.order_number,
            customer_id=self.customer_id,
            currency=self.currency,
        )

    @classmethod
    def from_dto(cls, dto, created_by: str | None = None) -> "SalesOrderModel":
        return cls(
            id=dto.id,
            order_number=dto.order_number,
            customer_id=dto.customer_id,
            currency=dto.currency,
            created_by=created_by,
        )

    def __repr__(self) -> str:
        return f"<SalesOrderModel {self.order_number}>"


class SalesOrderItemModel(TrackedBase):
    """ORM model for ``SalesOrderItem``."""

    __tablename__ = "sales_order_items"

    __table_args__ = (
        Index("idx_sales_order_items_order", "sales_order_id"),
    )

    sales_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_orders.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    ordered_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    def to_dto(self):
        from fulfillment_modules.sales.models import SalesOrderItem

        return SalesOrderItem(
            id=self.id,
            sales_order_id=self.sales_order_id,
            line_number=self.line_number,
            ordered_qty=self.ordered_qty,
            unit_price=self.unit_price,
            description=self.description or "",
            item_id=self.item_id,
            total_price=self.total_price,
        )

    @classmethod
    def from_dto(cls, dto) -> "SalesOrderItemModel":
        return cls(
            id=dto.id,
            sales_order_id=dto.sales_order_id,
            line_number=dto.line_number,
            item_id=dto.item_id,
            description=dto.description,
            ordered_qty=dto.ordered_qty,
            unit_price=dto.unit_price,
            total_price=dto.total_price,
        )
