"""
ORM persistence tests for module models (fulfillment_modules/*/orm.py).

Verifies that each DTO survives ``from_dto`` -> flush -> reload -> ``to_dto``
on SQLite and that headers start at version 1.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from conftest import make_goods_receipt, make_sales_order
from fulfillment_engines.quantity import FulfillmentType
from fulfillment_modules.delivery.models import DeliveryItem, DeliveryNote, DeliveryStatus
from fulfillment_modules.delivery.orm import DeliveryItemModel, DeliveryNoteModel
from fulfillment_modules.invoicing.models import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoiceType,
)
from fulfillment_modules.invoicing.orm import InvoiceItemModel, InvoiceModel
from fulfillment_modules.receiving.orm import GoodsReceiptModel, ReceiptItemModel
from fulfillment_modules.returns.models import ReceiptReturn, ReturnItem, ReturnStatus
from fulfillment_modules.returns.orm import ReceiptReturnModel, ReturnItemModel
from fulfillment_modules.sales.orm import SalesOrderItemModel, SalesOrderModel

NOW = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def _reload(session, model_cls, entity_id):
    session.flush()
    session.expunge_all()
    return session.get(model_cls, entity_id).to_dto()


def _seed_order(session):
    order, items = make_sales_order()
    session.add(SalesOrderModel.from_dto(order))
    for item in items:
        session.add(SalesOrderItemModel.from_dto(item))
    session.flush()
    return order, items


class TestSalesOrm:
    """Sales orders are reference data."""

    def test_roundtrip(self, sqlite_session):
        order, items = _seed_order(sqlite_session)
        assert _reload(sqlite_session, SalesOrderModel, order.id) == order
        assert _reload(sqlite_session, SalesOrderItemModel, items[0].id) == items[0]


class TestDeliveryOrm:
    """Delivery notes and lines."""

    def test_roundtrip(self, sqlite_session):
        order, items = _seed_order(sqlite_session)
        note = DeliveryNote(
            id=uuid4(),
            delivery_number="DN-00001",
            sales_order_id=order.id,
            status=DeliveryStatus.PARTIAL,
            delivery_type=FulfillmentType.PARTIAL,
            created_at=NOW,
            updated_at=NOW,
            created_by="alice",
            picking_started_by="bob",
            picking_started_at=NOW,
        )
        line = DeliveryItem(
            id=uuid4(),
            delivery_id=note.id,
            sales_order_item_id=items[0].id,
            line_number=1,
            description="Widget",
            ordered_qty=Decimal("10"),
            picked_qty=Decimal("4"),
            delivered_qty=Decimal("4"),
            unit_price=Decimal("2.00"),
            total_price=Decimal("8.00"),
        )
        sqlite_session.add(DeliveryNoteModel.from_dto(note))
        sqlite_session.add(DeliveryItemModel.from_dto(line))
        loaded = _reload(sqlite_session, DeliveryNoteModel, note.id)
        assert loaded == note
        assert loaded.version == 1
        assert loaded.picking_started_at.tzinfo is not None
        assert _reload(sqlite_session, DeliveryItemModel, line.id) == line


class TestInvoiceOrm:
    """Invoices keep their resolution sources."""

    def test_roundtrip(self, sqlite_session):
        order, _ = _seed_order(sqlite_session)
        invoice = Invoice(
            id=uuid4(),
            invoice_number="PRO-00001",
            invoice_type=InvoiceType.PROFORMA,
            sales_order_id=order.id,
            status=InvoiceStatus.DRAFT,
            invoice_date=NOW,
            due_date=NOW,
            tax_rate=Decimal("0"),
            subtotal=Decimal("25.00"),
            tax_amount=Decimal("0.00"),
            total_amount=Decimal("25.00"),
            created_at=NOW,
            updated_at=NOW,
        )
        line = InvoiceItem(
            id=uuid4(),
            invoice_id=invoice.id,
            line_number=1,
            description="Item 1",
            quantity=Decimal("1"),
            unit_price=Decimal("25.00"),
            total_price=Decimal("25.00"),
            description_source="synthetic",
        )
        sqlite_session.add(InvoiceModel.from_dto(invoice))
        sqlite_session.add(InvoiceItemModel.from_dto(line))
        assert _reload(sqlite_session, InvoiceModel, invoice.id) == invoice
        loaded_line = _reload(sqlite_session, InvoiceItemModel, line.id)
        assert loaded_line.description_source == "synthetic"
        assert loaded_line.delivery_item_id is None


class TestReceivingAndReturnsOrm:
    """Goods receipts, returns and return lines."""

    def test_roundtrip(self, sqlite_session):
        receipt, receipt_items = make_goods_receipt(NOW)
        sqlite_session.add(GoodsReceiptModel.from_dto(receipt))
        for item in receipt_items:
            sqlite_session.add(ReceiptItemModel.from_dto(item))
        assert _reload(sqlite_session, GoodsReceiptModel, receipt.id) == receipt
        assert _reload(sqlite_session, ReceiptItemModel, receipt_items[0].id) == receipt_items[0]

        receipt_return = ReceiptReturn(
            id=uuid4(),
            return_number="RR-00001",
            goods_receipt_id=receipt.id,
            status=ReturnStatus.PENDING_APPROVAL,
            created_at=NOW,
            updated_at=NOW,
            return_reason="Damaged",
            total_value=Decimal("8.00"),
            submitted_by="buyer",
            submitted_at=NOW,
        )
        item = ReturnItem(
            id=uuid4(),
            return_id=receipt_return.id,
            receipt_item_id=receipt_items[0].id,
            quantity_returned=Decimal("2"),
            unit_cost=Decimal("4.00"),
            total_cost=Decimal("8.00"),
            description="Steel bolt",
            condition_notes="bent",
        )
        sqlite_session.add(ReceiptReturnModel.from_dto(receipt_return))
        sqlite_session.add(ReturnItemModel.from_dto(item))
        assert _reload(sqlite_session, ReceiptReturnModel, receipt_return.id) == receipt_return
        assert _reload(sqlite_session, ReturnItemModel, item.id) == item
