"""
Tests for ReceivingService (fulfillment_modules/receiving/service.py).

Validates:
- create_receipt computes header counters and starts Pending
- record_received moves the receipt to Partial / Completed / Discrepancy
- closed receipts reject quantity updates
- received quantities never drop below what live returns already took
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_kernel.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)
from fulfillment_modules.receiving.models import ReceiptStatus
from fulfillment_modules.receiving.service import ReceivingService
from fulfillment_modules.returns.models import ReturnStatus
from fulfillment_modules.returns.service import ReceiptReturnProcessor


@pytest.fixture
def service(repo, deterministic_clock, state_machine):
    return ReceivingService(repo, state_machine=state_machine, clock=deterministic_clock)


@pytest.fixture
def receipt(service):
    return service.create_receipt(
        [
            {"description": "Bolt", "quantity_expected": 5, "unit_cost": "4.00"},
            {"description": "Nut", "quantity_expected": "3", "unit_cost": "0.25"},
        ],
        actor="dock-1",
    )


class TestCreateReceipt:
    """New receipts."""

    def test_counters(self, receipt):
        header = receipt.receipt
        assert header.status is ReceiptStatus.PENDING
        assert header.receipt_number == "GR-00001"
        assert header.total_items == 2
        assert header.total_quantity_expected == Decimal("8")
        assert header.total_quantity_received == Decimal("0")
        assert header.discrepancy_flag is False
        assert [i.line_number for i in receipt.items] == [1, 2]

    def test_empty_receipt_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_receipt([])


class TestRecordReceived:
    """Progress through the receipt table."""

    def test_partial(self, service, receipt):
        first = receipt.items[0]
        doc = service.record_received(receipt.receipt.id, {first.id: Decimal("2")})
        assert doc.receipt.status is ReceiptStatus.PARTIAL
        assert doc.receipt.total_quantity_received == Decimal("2")

    def test_short_receipt_stays_partial(self, service, receipt):
        quantities = {receipt.items[0].id: 5, receipt.items[1].id: 2}
        doc = service.record_received(receipt.receipt.id, quantities)
        assert doc.receipt.status is ReceiptStatus.PARTIAL

    def test_completed(self, service, receipt, deterministic_clock):
        quantities = {i.id: i.quantity_expected for i in receipt.items}
        doc = service.record_received(receipt.receipt.id, quantities, actor="dock-2")
        assert doc.receipt.status is ReceiptStatus.COMPLETED
        assert doc.receipt.received_by == "dock-2"
        assert doc.receipt.completed_at == deterministic_clock.now()

    def test_over_receipt_is_discrepancy(self, service, receipt):
        doc = service.record_received(receipt.receipt.id, {receipt.items[0].id: 6})
        assert doc.receipt.status is ReceiptStatus.DISCREPANCY
        assert doc.receipt.discrepancy_flag is True

    def test_negative_clamped_to_zero(self, service, receipt):
        doc = service.record_received(receipt.receipt.id, {receipt.items[0].id: -4})
        assert doc.items[0].quantity_received == Decimal("0")
        assert doc.receipt.status is ReceiptStatus.PENDING

    def test_closed_receipt_rejects_updates(self, service, receipt):
        quantities = {i.id: i.quantity_expected for i in receipt.items}
        service.record_received(receipt.receipt.id, quantities)
        with pytest.raises(InvalidTransitionError):
            service.record_received(receipt.receipt.id, quantities)

    def test_unknown_line(self, service, receipt):
        with pytest.raises(NotFoundError):
            service.record_received(receipt.receipt.id, {uuid4(): 1})

    def test_manual_discrepancy(self, service, receipt):
        service.record_received(receipt.receipt.id, {receipt.items[0].id: 1})
        doc = service.change_status(
            receipt.receipt.id, ReceiptStatus.DISCREPANCY, actor="qa", reason="damaged"
        )
        assert doc.receipt.status is ReceiptStatus.DISCREPANCY
        assert doc.receipt.notes == "[Status changed to Discrepancy: damaged]"


class TestReceivedAgainstReturns:
    """Lowering a received quantity under existing returns."""

    @pytest.fixture
    def returns(self, repo, deterministic_clock, state_machine):
        return ReceiptReturnProcessor(
            repo, state_machine=state_machine, clock=deterministic_clock
        )

    @pytest.fixture
    def returned_three(self, service, receipt, returns):
        bolt = receipt.items[0]
        service.record_received(receipt.receipt.id, {bolt.id: 5})
        return returns.create_return(
            receipt.receipt.id,
            [{"receipt_item_id": bolt.id, "quantity_returned": 3}],
        )

    def test_below_returned_rejected(self, service, receipt, returned_three, repo):
        bolt = receipt.items[0]
        with pytest.raises(ReconciliationError) as exc_info:
            service.record_received(receipt.receipt.id, {bolt.id: 2})
        assert exc_info.value.reason == ReconciliationError.EXCEEDS_RECEIVED
        stored = repo.get_receipt_items(receipt.receipt.id)[0]
        assert stored.quantity_received == Decimal("5")

    def test_down_to_returned_allowed(self, service, receipt, returned_three):
        bolt = receipt.items[0]
        doc = service.record_received(receipt.receipt.id, {bolt.id: 3})
        assert doc.items[0].quantity_received == Decimal("3")

    def test_other_lines_unaffected(self, service, receipt, returned_three):
        nut = receipt.items[1]
        doc = service.record_received(receipt.receipt.id, {nut.id: 1})
        assert doc.items[1].quantity_received == Decimal("1")

    def test_cancelled_return_releases_quantity(
        self, service, receipt, returned_three, returns
    ):
        returns.transition(
            returned_three.receipt_return.id, ReturnStatus.CANCELLED, actor="buyer"
        )
        bolt = receipt.items[0]
        doc = service.record_received(receipt.receipt.id, {bolt.id: 1})
        assert doc.items[0].quantity_received == Decimal("1")
