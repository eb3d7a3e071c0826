"""
Receipt Return Module Service (``fulfillment_modules.returns.service``).

Responsibility
--------------
Creates returns of received goods, edits their items while they are still
open, and drives them through approval, shipment and credit.  After every
item change the header ``total_value`` is recomputed from the full current
item set.

Architecture position
---------------------
**Modules layer** -- thin ERP glue.  ``ReceiptReturnProcessor`` is the sole
public entry point for return operations.

Invariants enforced
-------------------
* ``0 <= quantity_returned`` and, summed over every non-cancelled return of
  a receipt line, never more than that line's ``quantity_received``.
* ``total_cost == round(unit_cost * quantity_returned)`` per item;
  ``total_value == sum(total_cost)`` per return.
* Items change only in Draft and Pending Approval.

Failure modes
-------------
* ``NotFoundError`` -- unknown receipt, receipt line, return or return item.
* ``ValidationError`` -- missing receipt line reference, negative quantity.
* ``ReconciliationError("ExceedsReceived")`` -- more returned than received.
* ``ReconciliationError("NoItemsSelected")`` -- a return without items.
* ``InvalidTransitionError`` -- item change on a locked return, or a status
  change not in the return table.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from fulfillment_engines.status import StatusStateMachine
from fulfillment_engines.totals import line_total, return_total_value
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_kernel.domain.values import ZERO, is_positive, to_decimal
from fulfillment_kernel.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules._document_helpers import (
    append_note,
    require,
    transition_document,
)
from fulfillment_modules.receiving.models import ReceiptItem
from fulfillment_modules.returns.config import ReturnsConfig
from fulfillment_modules.returns.models import ReceiptReturn, ReturnItem, ReturnStatus

logger = get_logger("modules.returns.service")

_UNSET = object()


@dataclass(frozen=True)
class ReturnDocument:
    """A receipt return together with its current items."""
    receipt_return: ReceiptReturn
    items: tuple[ReturnItem, ...]


def _field(line: Any, name: str, default: Any = None) -> Any:
    if isinstance(line, Mapping):
        return line.get(name, default)
    return getattr(line, name, default)


class ReceiptReturnProcessor:
    """
    Receipt return lifecycle over a document repository.

    Contract
    --------
    * Every public method returns a ``ReturnDocument`` snapshot of what was
      written.
    * Each public method is one repository transaction.
    """

    def __init__(
        self,
        repository: Any,
        state_machine: StatusStateMachine | None = None,
        clock: Clock | None = None,
        config: ReturnsConfig | None = None,
    ):
        if state_machine is None:
            from fulfillment_modules import default_state_machine

            state_machine = default_state_machine()
        self._repo = repository
        self._states = state_machine
        self._clock = clock or SystemClock()
        self._config = config or ReturnsConfig.with_defaults()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, return_id: UUID) -> ReturnDocument:
        receipt_return = self._load(return_id)
        return ReturnDocument(receipt_return, tuple(self._repo.get_return_items(return_id)))

    def returned_so_far(
        self,
        goods_receipt_id: UUID,
        exclude_item_ids: frozenset[UUID] = frozenset(),
    ) -> dict[UUID, Decimal]:
        """Returned quantity per receipt line over non-cancelled returns."""
        totals: dict[UUID, Decimal] = {}
        for receipt_return in self._repo.list_returns_for_receipt(goods_receipt_id):
            if receipt_return.status is ReturnStatus.CANCELLED:
                continue
            for item in self._repo.get_return_items(receipt_return.id):
                if item.id in exclude_item_ids:
                    continue
                totals[item.receipt_item_id] = (
                    totals.get(item.receipt_item_id, ZERO) + item.quantity_returned
                )
        return totals

    # =========================================================================
    # Creation and item edits
    # =========================================================================

    def create_return(
        self,
        goods_receipt_id: UUID,
        items: Sequence[Any],
        return_reason: str = "",
        actor: str | None = None,
        notes: str = "",
    ) -> ReturnDocument:
        """Create a Draft return against a goods receipt.

        Each entry (mapping or object) names ``receipt_item_id`` and
        ``quantity_returned``; ``unit_cost``, ``description``,
        ``return_reason`` and ``condition_notes`` are optional and fall back
        to the receipt line.

        Raises:
            NotFoundError: unknown receipt or receipt line.
            ReconciliationError: ``ExceedsReceived`` or ``NoItemsSelected``.
        """
        with LogContext.bind(document_kind=DocumentKind.RETURN.value, actor_id=actor):
            with self._repo.transaction():
                receipt = require(
                    self._repo.get_goods_receipt(goods_receipt_id),
                    "GoodsReceipt",
                    goods_receipt_id,
                )
                if not items:
                    raise ReconciliationError(
                        ReconciliationError.NO_ITEMS_SELECTED,
                        "a return needs at least one item",
                    )
                receipt_items = {i.id: i for i in self._repo.get_receipt_items(receipt.id)}
                returned = self.returned_so_far(receipt.id)
                return_id = uuid4()
                built: list[ReturnItem] = []
                for entry in items:
                    item = self._build_item(return_id, entry, receipt_items)
                    self._check_available(item, receipt_items, returned)
                    returned[item.receipt_item_id] = (
                        returned.get(item.receipt_item_id, ZERO) + item.quantity_returned
                    )
                    built.append(item)

                now = self._clock.now()
                receipt_return = ReceiptReturn(
                    id=return_id,
                    return_number=self._repo.next_number(self._config.number_prefix),
                    goods_receipt_id=receipt.id,
                    supplier_id=receipt.supplier_id,
                    status=ReturnStatus.DRAFT,
                    return_reason=return_reason,
                    total_value=self._total(built),
                    notes=notes,
                    created_at=now,
                    updated_at=now,
                    created_by=actor,
                )
                saved = self._repo.save_return(receipt_return, built)
            logger.info(
                "receipt_return_created",
                extra={
                    "return_id": str(saved.id),
                    "return_number": saved.return_number,
                    "goods_receipt_id": str(receipt.id),
                    "line_count": len(built),
                    "total_value": str(saved.total_value),
                },
            )
            return ReturnDocument(saved, tuple(built))

    def add_item(self, return_id: UUID, entry: Any) -> ReturnDocument:
        """Add one item and recompute ``total_value``."""
        with self._repo.transaction():
            receipt_return = self._load_mutable(return_id)
            receipt_items = {
                i.id: i for i in self._repo.get_receipt_items(receipt_return.goods_receipt_id)
            }
            item = self._build_item(return_id, entry, receipt_items)
            self._check_available(
                item, receipt_items, self.returned_so_far(receipt_return.goods_receipt_id)
            )
            items = [*self._repo.get_return_items(return_id), item]
            saved = self._save_with_total(receipt_return, items)
        logger.info(
            "receipt_return_item_added",
            extra={"return_id": str(return_id), "item_id": str(item.id)},
        )
        return ReturnDocument(saved, tuple(items))

    def update_item(
        self,
        return_id: UUID,
        item_id: UUID,
        quantity_returned: Any = _UNSET,
        unit_cost: Any = _UNSET,
        return_reason: Any = _UNSET,
        condition_notes: Any = _UNSET,
    ) -> ReturnDocument:
        """Change fields of one item, then recompute ``total_value``."""
        with self._repo.transaction():
            receipt_return = self._load_mutable(return_id)
            items = self._repo.get_return_items(return_id)
            current = next((i for i in items if i.id == item_id), None)
            if current is None:
                raise NotFoundError("ReturnItem", item_id)

            changes: dict[str, Any] = {}
            if quantity_returned is not _UNSET:
                changes["quantity_returned"] = self._quantity(quantity_returned)
            if unit_cost is not _UNSET:
                changes["unit_cost"] = self._unit_cost(unit_cost)
            if return_reason is not _UNSET:
                changes["return_reason"] = return_reason
            if condition_notes is not _UNSET:
                changes["condition_notes"] = condition_notes
            updated_item = replace(current, **changes)
            updated_item = replace(
                updated_item,
                total_cost=line_total(
                    updated_item.unit_cost,
                    updated_item.quantity_returned,
                    self._config.money_places,
                ),
            )

            receipt_items = {
                i.id: i for i in self._repo.get_receipt_items(receipt_return.goods_receipt_id)
            }
            self._check_available(
                updated_item,
                receipt_items,
                self.returned_so_far(
                    receipt_return.goods_receipt_id, exclude_item_ids=frozenset({item_id})
                ),
            )
            items = [updated_item if i.id == item_id else i for i in items]
            saved = self._save_with_total(receipt_return, items)
        logger.info(
            "receipt_return_item_updated",
            extra={
                "return_id": str(return_id),
                "item_id": str(item_id),
                "changed_fields": sorted(changes),
            },
        )
        return ReturnDocument(saved, tuple(items))

    def delete_item(self, return_id: UUID, item_id: UUID) -> ReturnDocument:
        """Remove one item and recompute ``total_value``."""
        with self._repo.transaction():
            receipt_return = self._load_mutable(return_id)
            items = self._repo.get_return_items(return_id)
            if not any(i.id == item_id for i in items):
                raise NotFoundError("ReturnItem", item_id)
            self._repo.delete_return_item(item_id)
            remaining = [i for i in items if i.id != item_id]
            updated = replace(
                receipt_return,
                total_value=self._total(remaining),
                updated_at=self._clock.now(),
            )
            saved = self._repo.save_return(updated, expected_version=receipt_return.version)
        logger.info(
            "receipt_return_item_deleted",
            extra={"return_id": str(return_id), "item_id": str(item_id)},
        )
        return ReturnDocument(saved, tuple(remaining))

    # =========================================================================
    # Status and notes
    # =========================================================================

    def transition(
        self,
        return_id: UUID,
        target: ReturnStatus | str,
        actor: str | None = None,
        reason: str | None = None,
    ) -> ReturnDocument:
        with self._repo.transaction():
            receipt_return = self._load(return_id)
            updated, result = transition_document(
                self._states,
                receipt_return,
                target,
                DocumentKind.RETURN,
                ReturnStatus,
                actor=actor,
                at=self._clock.now(),
            )
            if reason:
                updated = replace(
                    updated,
                    notes=append_note(
                        receipt_return.notes,
                        f"[Status changed to {result.new_status}: {reason}]",
                    ),
                )
            saved = self._repo.save_return(updated, expected_version=receipt_return.version)
        logger.info(
            "receipt_return_status_changed",
            extra={
                "return_id": str(return_id),
                "from_status": result.previous_status,
                "to_status": result.new_status,
            },
        )
        return self.get(saved.id)

    def update_notes(self, return_id: UUID, notes: str) -> ReturnDocument:
        """Replace the free-text notes.  Allowed in every status."""
        with self._repo.transaction():
            receipt_return = self._load(return_id)
            updated = replace(receipt_return, notes=notes, updated_at=self._clock.now())
            saved = self._repo.save_return(updated, expected_version=receipt_return.version)
        return self.get(saved.id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, return_id: UUID) -> ReceiptReturn:
        return require(self._repo.get_return(return_id), "ReceiptReturn", return_id)

    def _load_mutable(self, return_id: UUID) -> ReceiptReturn:
        receipt_return = self._load(return_id)
        if not self._states.is_mutable(receipt_return.status, DocumentKind.RETURN):
            raise InvalidTransitionError(
                DocumentKind.RETURN.value,
                receipt_return.status.value,
                receipt_return.status.value,
                "items are locked in this status",
            )
        return receipt_return

    @staticmethod
    def _quantity(value: Any) -> Decimal:
        quantity = to_decimal(value, default=None)
        if quantity is None:
            raise ValidationError("quantity_returned", "must be a number")
        if quantity < ZERO:
            raise ValidationError("quantity_returned", "cannot be negative")
        return quantity

    @staticmethod
    def _unit_cost(value: Any, default: Decimal | None = ZERO) -> Decimal | None:
        cost = to_decimal(value, default=default)
        if cost is not None and cost < ZERO:
            raise ValidationError("unit_cost", "cannot be negative")
        return cost

    def _build_item(
        self, return_id: UUID, entry: Any, receipt_items: Mapping[UUID, ReceiptItem]
    ) -> ReturnItem:
        receipt_item_id = _field(entry, "receipt_item_id")
        if receipt_item_id is None:
            raise ValidationError("receipt_item_id", "is required")
        receipt_item = receipt_items.get(receipt_item_id)
        if receipt_item is None:
            raise NotFoundError("ReceiptItem", receipt_item_id)

        quantity = self._quantity(_field(entry, "quantity_returned"))
        unit_cost = self._unit_cost(_field(entry, "unit_cost"), default=None)
        # zero or missing falls back to the receipt line cost
        if not is_positive(unit_cost):
            unit_cost = receipt_item.unit_cost
        return ReturnItem(
            id=uuid4(),
            return_id=return_id,
            receipt_item_id=receipt_item.id,
            item_id=receipt_item.item_id,
            description=_field(entry, "description") or receipt_item.description,
            quantity_returned=quantity,
            unit_cost=unit_cost,
            total_cost=line_total(unit_cost, quantity, self._config.money_places),
            return_reason=_field(entry, "return_reason"),
            condition_notes=_field(entry, "condition_notes"),
        )

    @staticmethod
    def _check_available(
        item: ReturnItem,
        receipt_items: Mapping[UUID, ReceiptItem],
        returned: Mapping[UUID, Decimal],
    ) -> None:
        receipt_item = receipt_items.get(item.receipt_item_id)
        if receipt_item is None:
            raise NotFoundError("ReceiptItem", item.receipt_item_id)
        available = receipt_item.quantity_received - returned.get(receipt_item.id, ZERO)
        if item.quantity_returned > available:
            logger.warning(
                "receipt_return_exceeds_received",
                extra={
                    "receipt_item_id": str(receipt_item.id),
                    "quantity_returned": str(item.quantity_returned),
                    "quantity_received": str(receipt_item.quantity_received),
                    "available": str(available),
                },
            )
            raise ReconciliationError(
                ReconciliationError.EXCEEDS_RECEIVED,
                f"cannot return {item.quantity_returned}, only {available} available",
                receipt_item_id=receipt_item.id,
                quantity_received=receipt_item.quantity_received,
                available=available,
            )

    def _total(self, items: Sequence[ReturnItem]) -> Decimal:
        return return_total_value(
            (i.total_cost for i in items), self._config.money_places
        )

    def _save_with_total(
        self, receipt_return: ReceiptReturn, items: Sequence[ReturnItem]
    ) -> ReceiptReturn:
        updated = replace(
            receipt_return,
            total_value=self._total(items),
            updated_at=self._clock.now(),
        )
        return self._repo.save_return(
            updated, items, expected_version=receipt_return.version
        )
