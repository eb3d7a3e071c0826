"""
Document repository (``fulfillment_services.repository``).

Responsibility
--------------
The storage boundary of the engine.  ``DocumentRepository`` names every
read and write the module services perform; ``InMemoryRepository`` is the
arena-backed implementation used by tests and by callers that persist
elsewhere.

Architecture position
---------------------
**Services layer** -- infrastructure.  Module services receive a repository
by constructor injection and never touch storage directly.

Invariants enforced
-------------------
* Headers are written with an expected version.  ``expected_version=None``
  means "insert"; otherwise the stored version must match, and the saved
  header carries ``expected_version + 1``.
* ``save_*`` with ``items`` replaces the header's whole item set.
* ``transaction()`` is all-or-nothing: an exception inside the block
  restores every table to its state at entry.

Failure modes
-------------
* ``ConflictError`` on a version mismatch or a duplicate insert.
* ``NotFoundError`` when updating a header that does not exist.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from fulfillment_kernel.exceptions import ConflictError, NotFoundError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_modules.delivery.models import DeliveryItem, DeliveryNote
from fulfillment_modules.invoicing.models import Invoice, InvoiceItem
from fulfillment_modules.receiving.models import GoodsReceipt, ReceiptItem
from fulfillment_modules.returns.models import ReceiptReturn, ReturnItem
from fulfillment_modules.sales.models import SalesOrder, SalesOrderItem

logger = get_logger("services.repository")


def format_number(prefix: str, sequence: int) -> str:
    """``DN-00001`` style document numbers."""
    return f"{prefix}-{sequence:05d}"


@runtime_checkable
class DocumentRepository(Protocol):
    """Reads and writes of every document the engine manages."""

    def add_sales_order(
        self, order: SalesOrder, items: Sequence[SalesOrderItem]
    ) -> None: ...

    def get_sales_order(self, sales_order_id: UUID) -> SalesOrder | None: ...

    def get_sales_order_items(self, sales_order_id: UUID) -> list[SalesOrderItem]: ...

    def get_delivery(self, delivery_id: UUID) -> DeliveryNote | None: ...

    def get_delivery_items(self, delivery_id: UUID) -> list[DeliveryItem]: ...

    def list_deliveries_for_order(self, sales_order_id: UUID) -> list[DeliveryNote]: ...

    def save_delivery(
        self,
        delivery: DeliveryNote,
        items: Sequence[DeliveryItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> DeliveryNote: ...

    def get_invoice(self, invoice_id: UUID) -> Invoice | None: ...

    def get_invoice_items(self, invoice_id: UUID) -> list[InvoiceItem]: ...

    def save_invoice(
        self,
        invoice: Invoice,
        items: Sequence[InvoiceItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> Invoice: ...

    def get_goods_receipt(self, goods_receipt_id: UUID) -> GoodsReceipt | None: ...

    def get_receipt_items(self, goods_receipt_id: UUID) -> list[ReceiptItem]: ...

    def save_goods_receipt(
        self,
        receipt: GoodsReceipt,
        items: Sequence[ReceiptItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> GoodsReceipt: ...

    def get_return(self, return_id: UUID) -> ReceiptReturn | None: ...

    def get_return_items(self, return_id: UUID) -> list[ReturnItem]: ...

    def list_returns_for_receipt(self, goods_receipt_id: UUID) -> list[ReceiptReturn]: ...

    def save_return(
        self,
        receipt_return: ReceiptReturn,
        items: Sequence[ReturnItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> ReceiptReturn: ...

    def delete_return_item(self, item_id: UUID) -> None: ...

    def next_number(self, prefix: str) -> str: ...

    def transaction(self) -> Any:
        """Context manager; writes inside commit together or not at all."""
        ...


class InMemoryRepository:
    """
    ``DocumentRepository`` over plain dicts keyed by id.

    Contract:
        Stores frozen DTOs only, so a snapshot is a shallow copy of each
        table.  Not thread-safe; callers serialize mutations.
    """

    _TABLES = (
        "sales_orders",
        "sales_order_items",
        "deliveries",
        "delivery_items",
        "invoices",
        "invoice_items",
        "goods_receipts",
        "receipt_items",
        "returns",
        "return_items",
        "counters",
    )

    def __init__(self) -> None:
        self.sales_orders: dict[UUID, SalesOrder] = {}
        self.sales_order_items: dict[UUID, SalesOrderItem] = {}
        self.deliveries: dict[UUID, DeliveryNote] = {}
        self.delivery_items: dict[UUID, DeliveryItem] = {}
        self.invoices: dict[UUID, Invoice] = {}
        self.invoice_items: dict[UUID, InvoiceItem] = {}
        self.goods_receipts: dict[UUID, GoodsReceipt] = {}
        self.receipt_items: dict[UUID, ReceiptItem] = {}
        self.returns: dict[UUID, ReceiptReturn] = {}
        self.return_items: dict[UUID, ReturnItem] = {}
        self.counters: dict[str, int] = {}
        self._depth = 0

    # -- transactions ---------------------------------------------------

    def snapshot(self) -> dict[str, dict]:
        return {name: dict(getattr(self, name)) for name in self._TABLES}

    def restore(self, snapshot: dict[str, dict]) -> None:
        for name, table in snapshot.items():
            setattr(self, name, dict(table))

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRepository"]:
        saved = self.snapshot()
        self._depth += 1
        try:
            yield self
        except Exception:
            self.restore(saved)
            logger.warning(
                "repository_transaction_rolled_back", extra={"depth": self._depth}
            )
            raise
        finally:
            self._depth -= 1

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _children(table: dict, parent_field: str, parent_id: UUID) -> list:
        rows = [row for row in table.values() if getattr(row, parent_field) == parent_id]
        return sorted(rows, key=lambda row: getattr(row, "line_number", 0))

    @staticmethod
    def _replace_children(
        table: dict, parent_field: str, parent_id: UUID, items: Sequence
    ) -> None:
        for key in [k for k, row in table.items() if getattr(row, parent_field) == parent_id]:
            del table[key]
        for item in items:
            table[item.id] = item

    @staticmethod
    def _save_header(table: dict, entity_type: str, dto: Any, expected_version: int | None):
        current = table.get(dto.id)
        if expected_version is None:
            if current is not None:
                raise ConflictError(entity_type, dto.id, None, current.version)
            saved = replace(dto, version=1)
        else:
            if current is None:
                raise NotFoundError(entity_type, dto.id)
            if current.version != expected_version:
                logger.warning(
                    "repository_version_conflict",
                    extra={
                        "entity_type": entity_type,
                        "entity_id": str(dto.id),
                        "expected_version": expected_version,
                        "actual_version": current.version,
                    },
                )
                raise ConflictError(
                    entity_type, dto.id, expected_version, current.version
                )
            saved = replace(dto, version=expected_version + 1)
        table[dto.id] = saved
        return saved

    # -- sales orders ---------------------------------------------------

    def add_sales_order(
        self, order: SalesOrder, items: Sequence[SalesOrderItem]
    ) -> None:
        if order.id in self.sales_orders:
            raise ConflictError("SalesOrder", order.id)
        self.sales_orders[order.id] = order
        for item in items:
            self.sales_order_items[item.id] = item

    def get_sales_order(self, sales_order_id: UUID) -> SalesOrder | None:
        return self.sales_orders.get(sales_order_id)

    def get_sales_order_items(self, sales_order_id: UUID) -> list[SalesOrderItem]:
        return self._children(self.sales_order_items, "sales_order_id", sales_order_id)

    # -- deliveries -----------------------------------------------------

    def get_delivery(self, delivery_id: UUID) -> DeliveryNote | None:
        return self.deliveries.get(delivery_id)

    def get_delivery_items(self, delivery_id: UUID) -> list[DeliveryItem]:
        return self._children(self.delivery_items, "delivery_id", delivery_id)

    def list_deliveries_for_order(self, sales_order_id: UUID) -> list[DeliveryNote]:
        rows = [d for d in self.deliveries.values() if d.sales_order_id == sales_order_id]
        return sorted(rows, key=lambda d: (d.created_at, d.delivery_number))

    def save_delivery(
        self,
        delivery: DeliveryNote,
        items: Sequence[DeliveryItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> DeliveryNote:
        saved = self._save_header(self.deliveries, "DeliveryNote", delivery, expected_version)
        if items is not None:
            self._replace_children(self.delivery_items, "delivery_id", delivery.id, items)
        return saved

    # -- invoices -------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        return self.invoices.get(invoice_id)

    def get_invoice_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        return self._children(self.invoice_items, "invoice_id", invoice_id)

    def save_invoice(
        self,
        invoice: Invoice,
        items: Sequence[InvoiceItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> Invoice:
        saved = self._save_header(self.invoices, "Invoice", invoice, expected_version)
        if items is not None:
            self._replace_children(self.invoice_items, "invoice_id", invoice.id, items)
        return saved

    # -- goods receipts -------------------------------------------------

    def get_goods_receipt(self, goods_receipt_id: UUID) -> GoodsReceipt | None:
        return self.goods_receipts.get(goods_receipt_id)

    def get_receipt_items(self, goods_receipt_id: UUID) -> list[ReceiptItem]:
        return self._children(self.receipt_items, "goods_receipt_id", goods_receipt_id)

    def save_goods_receipt(
        self,
        receipt: GoodsReceipt,
        items: Sequence[ReceiptItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> GoodsReceipt:
        saved = self._save_header(self.goods_receipts, "GoodsReceipt", receipt, expected_version)
        if items is not None:
            self._replace_children(self.receipt_items, "goods_receipt_id", receipt.id, items)
        return saved

    # -- returns --------------------------------------------------------

    def get_return(self, return_id: UUID) -> ReceiptReturn | None:
        return self.returns.get(return_id)

    def get_return_items(self, return_id: UUID) -> list[ReturnItem]:
        rows = [r for r in self.return_items.values() if r.return_id == return_id]
        return rows

    def list_returns_for_receipt(self, goods_receipt_id: UUID) -> list[ReceiptReturn]:
        rows = [r for r in self.returns.values() if r.goods_receipt_id == goods_receipt_id]
        return sorted(rows, key=lambda r: (r.created_at, r.return_number))

    def save_return(
        self,
        receipt_return: ReceiptReturn,
        items: Sequence[ReturnItem] | None = None,
        *,
        expected_version: int | None = None,
    ) -> ReceiptReturn:
        saved = self._save_header(self.returns, "ReceiptReturn", receipt_return, expected_version)
        if items is not None:
            self._replace_children(self.return_items, "return_id", receipt_return.id, items)
        return saved

    def delete_return_item(self, item_id: UUID) -> None:
        if self.return_items.pop(item_id, None) is None:
            raise NotFoundError("ReturnItem", item_id)

    # -- numbering ------------------------------------------------------

    def next_number(self, prefix: str) -> str:
        sequence = self.counters.get(prefix, 0) + 1
        self.counters[prefix] = sequence
        return format_number(prefix, sequence)
