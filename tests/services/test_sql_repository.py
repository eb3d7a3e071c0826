"""
Tests for SqlAlchemyRepository (fulfillment_services/sql_repository.py).

Runs the module services end to end against in-memory SQLite.

Validates:
- documents written by the services read back as equal DTOs
- version_id_col bumps on every save, and stale saves raise ConflictError
- a refused operation commits nothing
- document numbers come from the counter table
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from conftest import (
    GOODS_RECEIPT_ID,
    RECEIPT_LINE_A_ID,
    SALES_ORDER_ID,
    SO_LINE_A_ID,
    SO_LINE_B_ID,
    make_goods_receipt,
    make_sales_order,
)
from fulfillment_kernel.db.engine import session_scope
from fulfillment_kernel.exceptions import ConflictError, ReconciliationError
from fulfillment_modules.delivery.models import DeliveryStatus
from fulfillment_modules.delivery.service import DeliveryFulfillmentTracker
from fulfillment_modules.invoicing.service import InvoiceGenerator
from fulfillment_modules.returns.models import ReturnStatus
from fulfillment_modules.returns.service import ReceiptReturnProcessor
from fulfillment_services.repository import DocumentRepository
from fulfillment_services.sql_repository import SqlAlchemyRepository


@pytest.fixture
def sql_repo(sqlite_session):
    repository = SqlAlchemyRepository(sqlite_session)
    order, items = make_sales_order()
    with repository.transaction():
        repository.add_sales_order(order, items)
    return repository


@pytest.fixture
def tracker(sql_repo, deterministic_clock, state_machine):
    return DeliveryFulfillmentTracker(
        sql_repo, state_machine=state_machine, clock=deterministic_clock
    )


class TestSalesOrders:

    def test_satisfies_document_repository(self, sql_repo):
        assert isinstance(sql_repo, DocumentRepository)

    def test_items_ordered_by_line(self, sql_repo):
        items = sql_repo.get_sales_order_items(SALES_ORDER_ID)
        assert [i.id for i in items] == [SO_LINE_A_ID, SO_LINE_B_ID]
        assert items[0].ordered_qty == Decimal("10")

    def test_duplicate_sales_order(self, sql_repo):
        order, items = make_sales_order()
        with pytest.raises(ConflictError):
            with sql_repo.transaction():
                sql_repo.add_sales_order(order, items)


class TestDeliveriesOnSql:
    """Delivery tracker over the SQL repository."""

    def test_create_and_reload(self, tracker, sql_repo, sqlite_session):
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("4")})
        sqlite_session.expunge_all()
        loaded = sql_repo.get_delivery(doc.delivery.id)
        assert loaded == doc.delivery
        assert loaded.status is DeliveryStatus.PARTIAL
        items = sql_repo.get_delivery_items(doc.delivery.id)
        assert [i.delivered_qty for i in items] == [Decimal("4")]

    def test_version_bumps(self, tracker):
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("4")})
        assert doc.delivery.version == 1
        completed = tracker.change_status(doc.delivery.id, "Complete", actor="bob")
        assert completed.delivery.version == 2
        noted = tracker.update_notes(doc.delivery.id, "dock 3")
        assert noted.delivery.version == 3

    def test_stale_save_conflicts(self, tracker, sql_repo):
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("4")})
        tracker.update_notes(doc.delivery.id, "first")
        with pytest.raises(ConflictError):
            with sql_repo.transaction():
                sql_repo.save_delivery(
                    replace(doc.delivery, notes="stale"), expected_version=1
                )
        assert sql_repo.get_delivery(doc.delivery.id).notes == "first"

    def test_refused_operation_commits_nothing(self, tracker, sql_repo):
        tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("10")})
        with pytest.raises(ReconciliationError):
            tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("1")})
        assert len(sql_repo.list_deliveries_for_order(SALES_ORDER_ID)) == 1
        # The refused call did not consume a number.
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_B_ID: Decimal("1")})
        assert doc.delivery.delivery_number == "DN-00002"

    def test_edit_items_updates_lines(self, tracker, sql_repo):
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("4")})
        line = doc.items[0]
        edited = tracker.edit_items(doc.delivery.id, {line.id: Decimal("2")})
        assert edited.delivery.version == 2
        items = sql_repo.get_delivery_items(doc.delivery.id)
        assert [(i.id, i.delivered_qty) for i in items] == [(line.id, Decimal("2"))]
        assert items[0].total_price == Decimal("4.00")


class TestInvoicesOnSql:

    def test_invoice_from_delivery(self, tracker, sql_repo, deterministic_clock, state_machine):
        doc = tracker.create_delivery(
            SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("10"), SO_LINE_B_ID: Decimal("5")}
        )
        generator = InvoiceGenerator(
            sql_repo, state_machine=state_machine, clock=deterministic_clock
        )
        invoice_doc = generator.generate_from_delivery(doc.delivery.id)
        loaded = sql_repo.get_invoice(invoice_doc.invoice.id)
        assert loaded.subtotal == Decimal("25.00")
        assert loaded.tax_amount == Decimal("2.50")
        assert loaded.total_amount == Decimal("27.50")
        assert len(sql_repo.get_invoice_items(loaded.id)) == 2


class TestReturnsOnSql:

    @pytest.fixture
    def processor(self, sql_repo, deterministic_clock, state_machine):
        receipt, items = make_goods_receipt(deterministic_clock.now())
        with sql_repo.transaction():
            sql_repo.save_goods_receipt(receipt, items)
        return ReceiptReturnProcessor(
            sql_repo, state_machine=state_machine, clock=deterministic_clock
        )

    def test_return_lifecycle(self, processor, sql_repo):
        doc = processor.create_return(
            GOODS_RECEIPT_ID,
            [{"receipt_item_id": RECEIPT_LINE_A_ID, "quantity_returned": 2}],
        )
        assert doc.receipt_return.total_value == Decimal("8.00")
        submitted = processor.transition(doc.receipt_return.id, "Pending Approval", "buyer")
        assert submitted.receipt_return.status is ReturnStatus.PENDING_APPROVAL
        assert sql_repo.get_return(doc.receipt_return.id).version == 2

    def test_aggregate_check_reads_committed_returns(self, processor):
        processor.create_return(
            GOODS_RECEIPT_ID,
            [{"receipt_item_id": RECEIPT_LINE_A_ID, "quantity_returned": 4}],
        )
        with pytest.raises(ReconciliationError) as exc_info:
            processor.create_return(
                GOODS_RECEIPT_ID,
                [{"receipt_item_id": RECEIPT_LINE_A_ID, "quantity_returned": 2}],
            )
        assert exc_info.value.reason == ReconciliationError.EXCEEDS_RECEIVED

    def test_delete_item(self, processor, sql_repo):
        doc = processor.create_return(
            GOODS_RECEIPT_ID,
            [{"receipt_item_id": RECEIPT_LINE_A_ID, "quantity_returned": 1}],
        )
        doc = processor.add_item(
            doc.receipt_return.id,
            {"receipt_item_id": RECEIPT_LINE_A_ID, "quantity_returned": 1},
        )
        assert len(doc.items) == 2
        doc = processor.delete_item(doc.receipt_return.id, doc.items[0].id)
        assert len(sql_repo.get_return_items(doc.receipt_return.id)) == 1
        assert doc.receipt_return.total_value == Decimal("4.00")


class TestNumbering:

    def test_counter_rows(self, sql_repo):
        with sql_repo.transaction():
            assert sql_repo.next_number("DN") == "DN-00001"
            assert sql_repo.next_number("DN") == "DN-00002"
            assert sql_repo.next_number("RR") == "RR-00001"


class TestSessionScope:
    """session_scope() commits on success and rolls back on error."""

    def test_commit_then_conflict(self, sqlite_session):
        order, items = make_sales_order()
        with session_scope() as session:
            SqlAlchemyRepository(session).add_sales_order(order, items)
        with session_scope() as session:
            assert SqlAlchemyRepository(session).get_sales_order(SALES_ORDER_ID) == order
        with pytest.raises(ConflictError):
            with session_scope() as session:
                SqlAlchemyRepository(session).add_sales_order(order, items)
