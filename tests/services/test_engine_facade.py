"""
Tests for FulfillmentEngine (fulfillment_services/engine.py).

Validates:
- payload operations return EngineResult instead of raising EngineError
- failure results carry the error code and reconciliation reason
- transition() dispatches on document kind
- every operation logs under a fresh correlation id
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import (
    GOODS_RECEIPT_ID,
    RECEIPT_LINE_A_ID,
    SALES_ORDER_ID,
    SO_LINE_A_ID,
    SO_LINE_B_ID,
)
from fulfillment_config import EngineConfig
from fulfillment_modules.delivery.models import DeliveryStatus
from fulfillment_modules.invoicing.models import InvoiceStatus, InvoiceType
from fulfillment_modules.receiving.models import ReceiptStatus
from fulfillment_modules.returns.models import ReturnStatus
from fulfillment_services.engine import EngineResultStatus, FulfillmentEngine


@pytest.fixture
def engine(repo, deterministic_clock, sales_order, goods_receipt):
    return FulfillmentEngine(repo, clock=deterministic_clock)


def _full_delivery(engine):
    return engine.generate_delivery(
        {
            "sales_order_id": str(SALES_ORDER_ID),
            "quantities": {str(SO_LINE_A_ID): "10", str(SO_LINE_B_ID): "5"},
            "actor": "alice",
        }
    )


class TestGenerateDelivery:

    def test_success(self, engine):
        result = _full_delivery(engine)
        assert result.is_success
        assert result.status is EngineResultStatus.SUCCESS
        assert result.code is None
        assert result.document.delivery.status is DeliveryStatus.PENDING
        assert result.document.delivery.created_by == "alice"

    def test_validation_failure(self, engine):
        result = engine.generate_delivery({"quantities": {}})
        assert not result.is_success
        assert result.status is EngineResultStatus.VALIDATION_FAILED
        assert result.code == "VALIDATION_ERROR"
        assert "sales_order_id" in result.message

    def test_unknown_order(self, engine):
        result = engine.generate_delivery(
            {"sales_order_id": str(uuid4()), "quantities": {str(SO_LINE_A_ID): 1}}
        )
        assert result.status is EngineResultStatus.NOT_FOUND
        assert result.code == "NOT_FOUND"

    def test_nothing_left_to_deliver(self, engine, repo):
        _full_delivery(engine)
        result = _full_delivery(engine)
        assert result.status is EngineResultStatus.RECONCILIATION_FAILED
        assert result.reason == "NoQuantitySelected"
        assert len(repo.deliveries) == 1


class TestGenerateInvoice:

    def test_standard_from_delivery(self, engine):
        delivery = _full_delivery(engine).document.delivery
        result = engine.generate_invoice({"delivery_id": str(delivery.id)})
        assert result.is_success
        invoice = result.document.invoice
        assert invoice.invoice_type is InvoiceType.STANDARD
        assert invoice.subtotal == Decimal("25.00")
        assert invoice.tax_amount == Decimal("2.50")
        assert invoice.total_amount == Decimal("27.50")

    def test_proforma_from_order(self, engine):
        result = engine.generate_invoice(
            {"invoice_type": "Proforma", "sales_order_id": str(SALES_ORDER_ID)}
        )
        assert result.is_success
        invoice = result.document.invoice
        assert invoice.invoice_type is InvoiceType.PROFORMA
        assert invoice.delivery_id is None
        assert invoice.invoice_number.startswith("PRO-")

    def test_configured_tax_rate(self, repo, deterministic_clock, sales_order):
        config = EngineConfig.from_dict({"tax_rates": {"Standard": "20"}})
        engine = FulfillmentEngine(repo, clock=deterministic_clock, config=config)
        delivery = _full_delivery(engine).document.delivery
        invoice = engine.generate_invoice({"delivery_id": str(delivery.id)}).document.invoice
        assert invoice.tax_amount == Decimal("5.00")

    def test_empty_selection(self, engine):
        delivery = _full_delivery(engine).document.delivery
        result = engine.generate_invoice(
            {"delivery_id": str(delivery.id), "selected_item_ids": [str(uuid4())]}
        )
        assert result.reason == "NoItemsSelected"


class TestProcessReturn:

    def test_success(self, engine):
        result = engine.process_return(
            {
                "goods_receipt_id": str(GOODS_RECEIPT_ID),
                "items": [{"receipt_item_id": str(RECEIPT_LINE_A_ID), "quantity_returned": 2}],
            }
        )
        assert result.is_success
        assert result.document.receipt_return.total_value == Decimal("8.00")

    def test_exceeds_received(self, engine, repo):
        result = engine.process_return(
            {
                "goods_receipt_id": str(GOODS_RECEIPT_ID),
                "items": [{"receipt_item_id": str(RECEIPT_LINE_A_ID), "quantity_returned": 6}],
            }
        )
        assert result.status is EngineResultStatus.RECONCILIATION_FAILED
        assert result.reason == "ExceedsReceived"
        assert repo.returns == {}


class TestTransition:

    def test_delivery(self, engine):
        delivery = _full_delivery(engine).document.delivery
        result = engine.transition(delivery.id, "delivery", "Complete", actor="bob")
        assert result.document.delivery.status is DeliveryStatus.COMPLETE
        assert result.document.delivery.picking_completed_by == "bob"

    def test_invoice(self, engine):
        delivery = _full_delivery(engine).document.delivery
        invoice = engine.generate_invoice({"delivery_id": str(delivery.id)}).document.invoice
        result = engine.transition(str(invoice.id), "INVOICE", "Sent")
        assert result.document.invoice.status is InvoiceStatus.SENT

    def test_return(self, engine):
        created = engine.process_return(
            {
                "goods_receipt_id": str(GOODS_RECEIPT_ID),
                "items": [{"receipt_item_id": str(RECEIPT_LINE_A_ID), "quantity_returned": 1}],
            }
        ).document.receipt_return
        result = engine.transition(created.id, "return", "Pending Approval", actor="buyer")
        assert result.document.receipt_return.status is ReturnStatus.PENDING_APPROVAL

    def test_receipt(self, engine):
        receipt = engine.receiving.create_receipt(
            [{"description": "Bolt", "quantity_expected": 5, "unit_cost": "1.00"}]
        ).receipt
        result = engine.transition(
            receipt.id, "receipt", "Discrepancy", actor="dock-1", reason="crate damaged"
        )
        assert result.document.receipt.status is ReceiptStatus.DISCREPANCY
        assert "crate damaged" in result.document.receipt.notes

    def test_rejected_transition(self, engine):
        delivery = _full_delivery(engine).document.delivery
        engine.transition(delivery.id, "delivery", "Cancelled")
        result = engine.transition(delivery.id, "delivery", "Complete")
        assert result.status is EngineResultStatus.TRANSITION_REJECTED
        assert result.code == "INVALID_TRANSITION"

    def test_unknown_kind(self, engine):
        result = engine.transition(uuid4(), "purchase_order", "Sent")
        assert result.status is EngineResultStatus.VALIDATION_FAILED

    def test_bad_document_id(self, engine):
        result = engine.transition("nope", "delivery", "Complete")
        assert result.code == "VALIDATION_ERROR"


class TestLogging:

    def test_correlation_id_on_records(self, engine, captured_logs):
        result = _full_delivery(engine)
        records = [r for r in captured_logs() if r.get("correlation_id") == result.correlation_id]
        messages = {r["message"] for r in records}
        assert "delivery_created" in messages
        assert "engine_operation_completed" in messages

    def test_refusal_logged(self, engine, captured_logs):
        result = engine.generate_delivery({"quantities": {}})
        refused = [r for r in captured_logs() if r["message"] == "engine_operation_refused"]
        assert refused
        assert refused[-1]["correlation_id"] == result.correlation_id

    def test_fresh_correlation_per_call(self, engine):
        first = engine.generate_delivery({"quantities": {}})
        second = engine.generate_delivery({"quantities": {}})
        assert first.correlation_id != second.correlation_id
