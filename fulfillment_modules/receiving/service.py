"""
Receiving Module Service (``fulfillment_modules.receiving.service``).

Responsibility
--------------
Records goods receipts and the quantities actually received against them.
Every update recomputes the header counters with ``ReceiptTotals`` and
moves the receipt along the receipt table.

Architecture position
---------------------
**Modules layer** -- thin ERP glue over a document repository.

Failure modes
-------------
* ``NotFoundError`` -- unknown receipt or receipt line.
* ``ValidationError`` -- a receipt without lines.
* ``InvalidTransitionError`` -- quantity update on a closed receipt, or a
  ``change_status`` target outside the receipt table.
* ``ReconciliationError(ExceedsReceived)`` -- a received quantity lowered
  below what non-cancelled returns already took from the line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any
from uuid import UUID, uuid4

from fulfillment_engines.status import StatusStateMachine
from fulfillment_engines.totals import ReceiptTotals
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_kernel.domain.values import ZERO, to_decimal
from fulfillment_kernel.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_modules._document_helpers import (
    append_note,
    require,
    transition_document,
)
from fulfillment_modules.receiving.models import GoodsReceipt, ReceiptItem, ReceiptStatus
from fulfillment_modules.returns.models import ReturnStatus

logger = get_logger("modules.receiving.service")


@dataclass(frozen=True)
class ReceiptDocument:
    """A goods receipt together with its current lines."""
    receipt: GoodsReceipt
    items: tuple[ReceiptItem, ...]


def _field(line: Any, name: str, default: Any = None) -> Any:
    if isinstance(line, Mapping):
        return line.get(name, default)
    return getattr(line, name, default)


class ReceivingService:
    """Goods receipt creation and progress tracking."""

    def __init__(
        self,
        repository: Any,
        state_machine: StatusStateMachine | None = None,
        clock: Clock | None = None,
        number_prefix: str = "GR",
    ):
        if state_machine is None:
            from fulfillment_modules import default_state_machine

            state_machine = default_state_machine()
        self._repo = repository
        self._states = state_machine
        self._clock = clock or SystemClock()
        self._prefix = number_prefix

    def get(self, goods_receipt_id: UUID) -> ReceiptDocument:
        receipt = require(
            self._repo.get_goods_receipt(goods_receipt_id), "GoodsReceipt", goods_receipt_id
        )
        return ReceiptDocument(receipt, tuple(self._repo.get_receipt_items(receipt.id)))

    def create_receipt(
        self,
        lines: Sequence[Any],
        supplier_id: UUID | None = None,
        actor: str | None = None,
        notes: str = "",
    ) -> ReceiptDocument:
        """Create a Pending receipt.

        Each line (mapping or object) supplies ``description``,
        ``quantity_expected``, ``unit_cost`` and optionally
        ``quantity_received`` and ``item_id``.
        """
        if not lines:
            raise ValidationError("items", "a goods receipt needs at least one line")
        with self._repo.transaction():
            now = self._clock.now()
            receipt_id = uuid4()
            items = tuple(
                ReceiptItem(
                    id=uuid4(),
                    goods_receipt_id=receipt_id,
                    line_number=index,
                    description=str(_field(line, "description", "") or ""),
                    quantity_expected=max(to_decimal(_field(line, "quantity_expected")), ZERO),
                    quantity_received=max(to_decimal(_field(line, "quantity_received")), ZERO),
                    unit_cost=max(to_decimal(_field(line, "unit_cost")), ZERO),
                    item_id=_field(line, "item_id"),
                )
                for index, line in enumerate(lines, start=1)
            )
            totals = ReceiptTotals.compute(
                (i.quantity_expected, i.quantity_received) for i in items
            )
            receipt = GoodsReceipt(
                id=receipt_id,
                receipt_number=self._repo.next_number(self._prefix),
                supplier_id=supplier_id,
                status=ReceiptStatus.PENDING,
                created_at=now,
                updated_at=now,
                created_by=actor,
                notes=notes,
                **self._totals_fields(totals),
            )
            saved = self._repo.save_goods_receipt(receipt, items)
        logger.info(
            "goods_receipt_created",
            extra={
                "goods_receipt_id": str(saved.id),
                "receipt_number": saved.receipt_number,
                "line_count": len(items),
            },
        )
        return ReceiptDocument(saved, items)

    def record_received(
        self,
        goods_receipt_id: UUID,
        quantities: Mapping[UUID, Any],
        actor: str | None = None,
    ) -> ReceiptDocument:
        """Set received quantities and advance the receipt status.

        Quantities are absolute and clamped to >= 0.  Any over-receipt puts
        the receipt in Discrepancy; every line fully received completes it;
        anything received so far makes it Partial.  A line cannot drop below the quantity already returned from it.
        """
        with self._repo.transaction():
            receipt = require(
                self._repo.get_goods_receipt(goods_receipt_id), "GoodsReceipt", goods_receipt_id
            )
            if not self._states.is_mutable(receipt.status, DocumentKind.RECEIPT):
                raise InvalidTransitionError(
                    DocumentKind.RECEIPT.value,
                    receipt.status.value,
                    receipt.status.value,
                    "receipt is closed for quantity updates",
                )
            items = self._repo.get_receipt_items(receipt.id)
            known = {i.id for i in items}
            for item_id in quantities:
                if item_id not in known:
                    raise NotFoundError("ReceiptItem", item_id)
            updated_items = tuple(
                replace(i, quantity_received=max(to_decimal(quantities[i.id]), ZERO))
                if i.id in quantities
                else i
                for i in items
            )
            returned = self._returned_per_line(receipt.id)
            for item in updated_items:
                floor = returned.get(item.id, ZERO)
                if item.id in quantities and item.quantity_received < floor:
                    raise ReconciliationError(
                        ReconciliationError.EXCEEDS_RECEIVED,
                        f"received {item.quantity_received} < returned {floor}",
                        receipt_item_id=item.id,
                    )
            totals = ReceiptTotals.compute(
                (i.quantity_expected, i.quantity_received) for i in updated_items
            )
            now = self._clock.now()
            updated = replace(receipt, updated_at=now, **self._totals_fields(totals))
            target = self._target_status(updated_items, totals)
            if target is not receipt.status and target is not ReceiptStatus.PENDING:
                updated, _ = transition_document(
                    self._states,
                    updated,
                    target,
                    DocumentKind.RECEIPT,
                    ReceiptStatus,
                    actor=actor,
                    at=now,
                )
            saved = self._repo.save_goods_receipt(
                updated, updated_items, expected_version=receipt.version
            )
        logger.info(
            "goods_receipt_updated",
            extra={
                "goods_receipt_id": str(saved.id),
                "status": saved.status.value,
                "total_quantity_received": str(saved.total_quantity_received),
                "discrepancy_flag": saved.discrepancy_flag,
            },
        )
        return ReceiptDocument(saved, updated_items)

    def _returned_per_line(self, goods_receipt_id: UUID) -> dict[UUID, Any]:
        returned: dict[UUID, Any] = {}
        for receipt_return in self._repo.list_returns_for_receipt(goods_receipt_id):
            if receipt_return.status is ReturnStatus.CANCELLED:
                continue
            for item in self._repo.get_return_items(receipt_return.id):
                returned[item.receipt_item_id] = (
                    returned.get(item.receipt_item_id, ZERO) + item.quantity_returned
                )
        return returned

    @staticmethod
    def _target_status(
        items: Sequence[ReceiptItem], totals: ReceiptTotals
    ) -> ReceiptStatus:
        if totals.discrepancy_flag:
            return ReceiptStatus.DISCREPANCY
        if items and all(i.quantity_received >= i.quantity_expected for i in items):
            if totals.total_quantity_received > ZERO:
                return ReceiptStatus.COMPLETED
        if totals.total_quantity_received > ZERO:
            return ReceiptStatus.PARTIAL
        return ReceiptStatus.PENDING

    @staticmethod
    def _totals_fields(totals: ReceiptTotals) -> dict[str, Any]:
        return {
            "total_items": totals.total_items,
            "total_quantity_expected": totals.total_quantity_expected,
            "total_quantity_received": totals.total_quantity_received,
            "discrepancy_flag": totals.discrepancy_flag,
        }

    def change_status(
        self,
        goods_receipt_id: UUID,
        target: ReceiptStatus | str,
        actor: str | None = None,
        reason: str | None = None,
    ) -> ReceiptDocument:
        """Manual status change, e.g. flagging a Partial receipt as Discrepancy."""
        with self._repo.transaction():
            receipt = require(
                self._repo.get_goods_receipt(goods_receipt_id), "GoodsReceipt", goods_receipt_id
            )
            updated, result = transition_document(
                self._states,
                receipt,
                target,
                DocumentKind.RECEIPT,
                ReceiptStatus,
                actor=actor,
                at=self._clock.now(),
            )
            if reason:
                updated = replace(
                    updated,
                    notes=append_note(
                        receipt.notes, f"[Status changed to {result.new_status}: {reason}]"
                    ),
                )
            saved = self._repo.save_goods_receipt(updated, expected_version=receipt.version)
        logger.info(
            "goods_receipt_status_changed",
            extra={
                "goods_receipt_id": str(saved.id),
                "from_status": result.previous_status,
                "to_status": result.new_status,
            },
        )
        return self.get(saved.id)
