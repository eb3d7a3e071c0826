"""
Pytest fixtures for the fulfillment engine test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- A DeterministicClock and an InMemoryRepository per test
- A seeded sales order (two lines: 10 x 2.00 and 5 x 1.00) and a seeded
  goods receipt (two lines, 5 and 3 received)
- An in-memory SQLite session with every ORM table created

No database server is needed; SQL tests run against ``sqlite://``.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest

from fulfillment_kernel.domain.clock import DeterministicClock
from fulfillment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fulfillment_modules import default_state_machine
from fulfillment_modules.receiving.models import GoodsReceipt, ReceiptItem, ReceiptStatus
from fulfillment_modules.sales.models import SalesOrder, SalesOrderItem
from fulfillment_services.repository import InMemoryRepository

# ---------------------------------------------------------------------------
# Deterministic ids
# ---------------------------------------------------------------------------

SALES_ORDER_ID = UUID("00000000-0000-4000-a000-000000000001")
SO_LINE_A_ID = UUID("00000000-0000-4000-a000-000000000011")
SO_LINE_B_ID = UUID("00000000-0000-4000-a000-000000000012")
GOODS_RECEIPT_ID = UUID("00000000-0000-4000-a000-000000000101")
RECEIPT_LINE_A_ID = UUID("00000000-0000-4000-a000-000000000111")
RECEIPT_LINE_B_ID = UUID("00000000-0000-4000-a000-000000000112")
SUPPLIER_ID = UUID("00000000-0000-4000-a000-000000000201")


def make_sales_order() -> tuple[SalesOrder, list[SalesOrderItem]]:
    order = SalesOrder(id=SALES_ORDER_ID, order_number="SO-0001")
    items = [
        SalesOrderItem(
            id=SO_LINE_A_ID,
            sales_order_id=SALES_ORDER_ID,
            line_number=1,
            ordered_qty=Decimal("10"),
            unit_price=Decimal("2.00"),
            description="Widget",
        ),
        SalesOrderItem(
            id=SO_LINE_B_ID,
            sales_order_id=SALES_ORDER_ID,
            line_number=2,
            ordered_qty=Decimal("5"),
            unit_price=Decimal("1.00"),
            description="Gadget",
        ),
    ]
    return order, items


def make_goods_receipt(created_at) -> tuple[GoodsReceipt, list[ReceiptItem]]:
    items = [
        ReceiptItem(
            id=RECEIPT_LINE_A_ID,
            goods_receipt_id=GOODS_RECEIPT_ID,
            line_number=1,
            description="Steel bolt",
            quantity_expected=Decimal("5"),
            quantity_received=Decimal("5"),
            unit_cost=Decimal("4.00"),
        ),
        ReceiptItem(
            id=RECEIPT_LINE_B_ID,
            goods_receipt_id=GOODS_RECEIPT_ID,
            line_number=2,
            description="Washer",
            quantity_expected=Decimal("3"),
            quantity_received=Decimal("3"),
            unit_cost=Decimal("0.50"),
        ),
    ]
    receipt = GoodsReceipt(
        id=GOODS_RECEIPT_ID,
        receipt_number="GR-00001",
        status=ReceiptStatus.COMPLETED,
        created_at=created_at,
        updated_at=created_at,
        supplier_id=SUPPLIER_ID,
        total_items=2,
        total_quantity_expected=Decimal("8"),
        total_quantity_received=Decimal("8"),
    )
    return receipt, items


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fulfillment_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, tracker):
            tracker.create_delivery(...)
            assert any(r["message"] == "delivery_created" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fulfillment_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def state_machine():
    return default_state_machine()


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def sales_order(repo):
    """Seed the in-memory repository with the two-line sales order."""
    order, items = make_sales_order()
    repo.add_sales_order(order, items)
    return order


@pytest.fixture
def goods_receipt(repo, deterministic_clock):
    """Seed the in-memory repository with a completed two-line receipt."""
    receipt, items = make_goods_receipt(deterministic_clock.now())
    return repo.save_goods_receipt(receipt, items)


# =============================================================================
# SQLite fixtures
# =============================================================================


@pytest.fixture
def sqlite_session():
    """A Session on a fresh in-memory SQLite database with all tables."""
    from fulfillment_kernel.db.engine import (
        create_tables,
        get_session,
        init_engine_from_url,
        reset_engine,
    )

    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    yield session
    session.close()
    reset_engine()
