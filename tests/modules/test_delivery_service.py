"""
Tests for DeliveryFulfillmentTracker (fulfillment_modules/delivery/service.py).

Validates:
- create_delivery clamps to what is still open and classifies Full/Partial
- picking, completion and confirmation follow the delivery table and stamp
  first-time-only fields
- edit_items clamps, recomputes delivery_type and is idempotent
- failed operations leave the repository unchanged
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import SALES_ORDER_ID, SO_LINE_A_ID, SO_LINE_B_ID
from fulfillment_engines.quantity import FulfillmentType
from fulfillment_kernel.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ReconciliationError,
)
from fulfillment_modules.delivery.config import DeliveryConfig
from fulfillment_modules.delivery.models import DeliveryStatus
from fulfillment_modules.delivery.service import DeliveryFulfillmentTracker

FULL = {SO_LINE_A_ID: Decimal("10"), SO_LINE_B_ID: Decimal("5")}


@pytest.fixture
def tracker(repo, deterministic_clock, state_machine, sales_order):
    return DeliveryFulfillmentTracker(
        repo, state_machine=state_machine, clock=deterministic_clock
    )


def _item_for(doc, so_item_id):
    return next(i for i in doc.items if i.sales_order_item_id == so_item_id)


# =============================================================================
# Creation
# =============================================================================


class TestCreateDelivery:
    """Quantity reconciliation at creation."""

    def test_full_delivery_is_pending(self, tracker):
        doc = tracker.create_delivery(SALES_ORDER_ID, FULL, actor="alice")
        assert doc.delivery.delivery_type is FulfillmentType.FULL
        assert doc.delivery.status is DeliveryStatus.PENDING
        assert doc.delivery.delivery_number == "DN-00001"
        assert doc.delivery.created_by == "alice"
        assert doc.delivered_total == Decimal("15")
        assert doc.delivery.version == 1

    def test_partial_delivery_is_partial(self, tracker):
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("4")})
        assert doc.delivery.delivery_type is FulfillmentType.PARTIAL
        assert doc.delivery.status is DeliveryStatus.PARTIAL
        assert len(doc.items) == 1

    def test_over_request_clamped(self, tracker):
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("12")})
        assert _item_for(doc, SO_LINE_A_ID).delivered_qty == Decimal("10")

    def test_line_values_copied_from_sales_order(self, tracker):
        doc = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("3")})
        item = _item_for(doc, SO_LINE_A_ID)
        assert item.description == "Widget"
        assert item.unit_price == Decimal("2.00")
        assert item.total_price == Decimal("6.00")
        assert item.line_number == 1

    def test_second_delivery_bounded_by_first(self, tracker):
        tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("4")})
        second = tracker.create_delivery(SALES_ORDER_ID, FULL)
        assert _item_for(second, SO_LINE_A_ID).delivered_qty == Decimal("6")
        assert second.delivery.delivery_type is FulfillmentType.PARTIAL
        assert second.delivery.delivery_number == "DN-00002"

    def test_aggregate_never_exceeds_ordered(self, tracker):
        tracker.create_delivery(SALES_ORDER_ID, FULL)
        with pytest.raises(ReconciliationError) as exc_info:
            tracker.create_delivery(SALES_ORDER_ID, FULL)
        assert exc_info.value.reason == ReconciliationError.NO_QUANTITY_SELECTED

    def test_cancelled_delivery_releases_quantity(self, tracker):
        first = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.change_status(first.delivery.id, DeliveryStatus.CANCELLED)
        again = tracker.create_delivery(SALES_ORDER_ID, FULL)
        assert again.delivery.delivery_type is FulfillmentType.FULL

    def test_all_zero_rejected(self, tracker, repo):
        with pytest.raises(ReconciliationError):
            tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: 0, SO_LINE_B_ID: 0})
        assert repo.deliveries == {}

    def test_unknown_sales_order(self, tracker):
        with pytest.raises(NotFoundError) as exc_info:
            tracker.create_delivery(uuid4(), FULL)
        assert exc_info.value.entity_type == "SalesOrder"

    def test_unknown_sales_order_line(self, tracker, repo):
        with pytest.raises(NotFoundError):
            tracker.create_delivery(SALES_ORDER_ID, {uuid4(): Decimal("1")})
        assert repo.deliveries == {}
        assert repo.counters == {}

    def test_logs_creation(self, tracker, captured_logs):
        tracker.create_delivery(SALES_ORDER_ID, FULL, actor="alice")
        records = [r for r in captured_logs() if r["message"] == "delivery_created"]
        assert len(records) == 1
        assert records[0]["delivery_type"] == "Full"
        assert records[0]["document_kind"] == "delivery"
        assert records[0]["actor_id"] == "alice"


# =============================================================================
# Status changes
# =============================================================================


class TestDeliveryLifecycle:
    """Picking, completion, confirmation and cancellation."""

    def test_start_picking_stamps(self, tracker, deterministic_clock):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        doc = tracker.start_picking(created.delivery.id, actor="bob")
        assert doc.delivery.status is DeliveryStatus.PARTIAL
        assert doc.delivery.picking_started_by == "bob"
        assert doc.delivery.picking_started_at == deterministic_clock.now()
        assert doc.delivery.version == 2

    def test_start_picking_on_partial_delivery_only_stamps(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: 1})
        doc = tracker.start_picking(created.delivery.id, actor="bob")
        assert doc.delivery.status is DeliveryStatus.PARTIAL
        assert doc.delivery.picking_started_by == "bob"
        with pytest.raises(InvalidTransitionError):
            tracker.start_picking(created.delivery.id, actor="bob")

    def test_pending_to_complete_stamps_completion_and_confirmation(
        self, tracker, deterministic_clock
    ):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        doc = tracker.complete_picking(created.delivery.id, actor="bob", notes="all boxed")
        delivery = doc.delivery
        assert delivery.status is DeliveryStatus.COMPLETE
        assert delivery.picking_completed_at == deterministic_clock.now()
        assert delivery.delivery_confirmed_at == deterministic_clock.now()
        assert delivery.actual_delivery_date == deterministic_clock.now()
        assert delivery.picking_started_at is None
        assert delivery.picking_notes == "all boxed"

    def test_stamps_are_first_time_only(self, tracker, deterministic_clock):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.start_picking(created.delivery.id, actor="bob")
        first_stamp = deterministic_clock.now()
        deterministic_clock.advance(60)
        doc = tracker.complete_picking(created.delivery.id, actor="carol")
        assert doc.delivery.picking_started_at == first_stamp
        assert doc.delivery.picking_started_by == "bob"
        assert doc.delivery.picking_completed_by == "carol"

    def test_confirm_from_partial(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.start_picking(created.delivery.id)
        doc = tracker.confirm_delivery(created.delivery.id, "Dana Receiver")
        assert doc.delivery.status is DeliveryStatus.COMPLETE
        assert doc.delivery.delivery_confirmed_by == "Dana Receiver"
        assert doc.delivery.is_confirmed

    def test_receiver_not_stamped_as_picker(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.start_picking(created.delivery.id, actor="bob")
        doc = tracker.confirm_delivery(created.delivery.id, "Dana Receiver", actor="carol")
        assert doc.delivery.picking_completed_by == "carol"
        assert doc.delivery.picking_completed_at is not None
        assert doc.delivery.delivery_confirmed_by == "Dana Receiver"

    def test_confirm_without_actor_leaves_picker_unset(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.start_picking(created.delivery.id)
        doc = tracker.confirm_delivery(created.delivery.id, "Dana Receiver")
        assert doc.delivery.picking_completed_by is None
        assert doc.delivery.delivery_confirmed_by == "Dana Receiver"

    def test_confirm_from_pending_rejected(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        with pytest.raises(InvalidTransitionError):
            tracker.confirm_delivery(created.delivery.id, "Dana")

    def test_confirm_from_pending_allowed_by_config(
        self, repo, deterministic_clock, state_machine, sales_order
    ):
        tracker = DeliveryFulfillmentTracker(
            repo,
            state_machine=state_machine,
            clock=deterministic_clock,
            config=DeliveryConfig(allow_confirm_from_pending=True),
        )
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        doc = tracker.confirm_delivery(created.delivery.id, "Dana")
        assert doc.delivery.status is DeliveryStatus.COMPLETE

    def test_double_confirmation_rejected(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.complete_picking(created.delivery.id)
        with pytest.raises(InvalidTransitionError):
            tracker.confirm_delivery(created.delivery.id, "Dana")

    def test_cancel_without_reason_notes_default(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        doc = tracker.change_status(created.delivery.id, "Cancelled")
        assert doc.delivery.status is DeliveryStatus.CANCELLED
        assert doc.delivery.notes == "[Cancelled: No reason provided]"

    def test_change_status_with_reason(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.update_notes(created.delivery.id, "fragile")
        doc = tracker.change_status(
            created.delivery.id, DeliveryStatus.CANCELLED, reason="customer request"
        )
        assert doc.delivery.notes == (
            "fragile\n[Status changed to Cancelled: customer request]"
        )

    def test_cancelled_is_terminal(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.change_status(created.delivery.id, DeliveryStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            tracker.change_status(created.delivery.id, DeliveryStatus.PENDING)

    def test_notes_editable_after_cancel(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.change_status(created.delivery.id, DeliveryStatus.CANCELLED)
        doc = tracker.update_notes(created.delivery.id, "returned to stock")
        assert doc.delivery.notes == "returned to stock"


# =============================================================================
# Edits
# =============================================================================


class TestEditItems:
    """Quantity edits on existing delivery lines."""

    def test_edit_recomputes_type_and_totals(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        item_a = _item_for(created, SO_LINE_A_ID)
        doc = tracker.edit_items(created.delivery.id, {item_a.id: Decimal("4")})
        assert doc.delivery.delivery_type is FulfillmentType.PARTIAL
        edited = _item_for(doc, SO_LINE_A_ID)
        assert edited.delivered_qty == Decimal("4")
        assert edited.total_price == Decimal("8.00")

    def test_edit_is_idempotent(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        item_a = _item_for(created, SO_LINE_A_ID)
        first = tracker.edit_items(created.delivery.id, {item_a.id: Decimal("7")})
        second = tracker.edit_items(created.delivery.id, {item_a.id: Decimal("7")})
        assert [i.delivered_qty for i in first.items] == [i.delivered_qty for i in second.items]
        assert [i.total_price for i in first.items] == [i.total_price for i in second.items]
        assert first.delivery.delivery_type is second.delivery.delivery_type

    def test_edit_clamped_to_ordered(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        item_a = _item_for(created, SO_LINE_A_ID)
        doc = tracker.edit_items(created.delivery.id, {item_a.id: Decimal("50")})
        assert _item_for(doc, SO_LINE_A_ID).delivered_qty == Decimal("10")

    def test_edit_bounded_by_other_deliveries(self, tracker):
        first = tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("4")})
        tracker.create_delivery(SALES_ORDER_ID, {SO_LINE_A_ID: Decimal("6")})
        item = _item_for(first, SO_LINE_A_ID)
        doc = tracker.edit_items(first.delivery.id, {item.id: Decimal("10")})
        assert _item_for(doc, SO_LINE_A_ID).delivered_qty == Decimal("4")

    def test_edit_to_all_zero_rejected_and_unchanged(self, tracker, repo):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        before = repo.get_delivery_items(created.delivery.id)
        with pytest.raises(ReconciliationError):
            tracker.edit_items(created.delivery.id, {i.id: 0 for i in created.items})
        assert repo.get_delivery_items(created.delivery.id) == before
        assert repo.get_delivery(created.delivery.id).version == 1

    def test_edit_unknown_line(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        with pytest.raises(NotFoundError):
            tracker.edit_items(created.delivery.id, {uuid4(): 1})

    def test_edit_cancelled_rejected(self, tracker):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.change_status(created.delivery.id, DeliveryStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            tracker.edit_items(created.delivery.id, {created.items[0].id: 1})


class TestConcurrentModification:
    """Stale writes surface as ConflictError."""

    def test_stale_version_rejected(self, tracker, repo):
        created = tracker.create_delivery(SALES_ORDER_ID, FULL)
        tracker.start_picking(created.delivery.id)
        stale = replace(created.delivery, notes="stale edit")
        with pytest.raises(ConflictError) as exc_info:
            repo.save_delivery(stale, expected_version=created.delivery.version)
        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert repo.get_delivery(created.delivery.id).notes == ""
