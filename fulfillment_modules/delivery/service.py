"""
Delivery Module Service (``fulfillment_modules.delivery.service``).

Responsibility
--------------
Creates delivery notes against sales orders and drives them through
picking, completion and confirmation.  All quantity arithmetic is delegated
to ``QuantityReconciler``; all status changes go through
``StatusStateMachine`` with the delivery table.

Architecture position
---------------------
**Modules layer** -- thin ERP glue.  ``DeliveryFulfillmentTracker`` is the
sole public entry point for delivery operations.  It reads and writes
through an injected ``DocumentRepository`` and takes time from an injected
``Clock``.

Invariants enforced
-------------------
* Per line ``0 <= delivered_qty <= ordered_qty``, and the delivered sum over
  all non-cancelled deliveries of a sales order line never exceeds the
  ordered quantity.
* ``delivery_type`` is recomputed from the current item set on every item
  edit.
* Picking and confirmation stamps are first-time only.
* Each public method is one repository transaction: it either writes
  everything or nothing.

Failure modes
-------------
* ``NotFoundError`` -- unknown sales order, sales order line, delivery or
  delivery line.
* ``ReconciliationError("NoQuantitySelected")`` -- nothing left to deliver.
* ``InvalidTransitionError`` -- status change not in the delivery table,
  confirmation before picking, double confirmation, edits on a cancelled
  delivery.
* ``ConflictError`` -- the delivery changed underneath this operation.

Usage::

    tracker = DeliveryFulfillmentTracker(repository, clock=clock)
    doc = tracker.create_delivery(order.id, {line.id: Decimal("5")}, actor="alice")
    tracker.start_picking(doc.delivery.id, actor="bob")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from fulfillment_engines.quantity import FulfillmentType, QuantityReconciler
from fulfillment_engines.status import StatusStateMachine
from fulfillment_engines.totals import line_total
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_kernel.domain.values import ZERO, to_decimal
from fulfillment_kernel.exceptions import InvalidTransitionError, NotFoundError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules._document_helpers import (
    append_note,
    require,
    transition_document,
)
from fulfillment_modules.delivery.config import DeliveryConfig
from fulfillment_modules.delivery.models import (
    DeliveryItem,
    DeliveryNote,
    DeliveryStatus,
)

logger = get_logger("modules.delivery.service")


@dataclass(frozen=True)
class DeliveryDocument:
    """A delivery note together with its current lines."""
    delivery: DeliveryNote
    items: tuple[DeliveryItem, ...]

    @property
    def delivered_total(self) -> Decimal:
        return sum((i.delivered_qty for i in self.items), ZERO)


class DeliveryFulfillmentTracker:
    """
    Delivery note lifecycle over a document repository.

    Contract
    --------
    * Every public method returns a ``DeliveryDocument`` snapshot of what
      was written.
    * Engine errors propagate; the repository transaction is rolled back.

    Non-goals
    ---------
    * Does NOT move stock or post inventory movements.
    """

    def __init__(
        self,
        repository: Any,
        state_machine: StatusStateMachine | None = None,
        clock: Clock | None = None,
        config: DeliveryConfig | None = None,
        reconciler: QuantityReconciler | None = None,
    ):
        if state_machine is None:
            from fulfillment_modules import default_state_machine

            state_machine = default_state_machine()
        self._repo = repository
        self._states = state_machine
        self._clock = clock or SystemClock()
        self._config = config or DeliveryConfig.with_defaults()
        self._reconciler = reconciler or QuantityReconciler()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, delivery_id: UUID) -> DeliveryDocument:
        delivery = require(self._repo.get_delivery(delivery_id), "DeliveryNote", delivery_id)
        return DeliveryDocument(delivery, tuple(self._repo.get_delivery_items(delivery_id)))

    def delivered_so_far(
        self, sales_order_id: UUID, exclude_delivery_id: UUID | None = None
    ) -> dict[UUID, Decimal]:
        """Delivered quantity per sales order line over non-cancelled deliveries."""
        totals: dict[UUID, Decimal] = {}
        for delivery in self._repo.list_deliveries_for_order(sales_order_id):
            if delivery.status is DeliveryStatus.CANCELLED:
                continue
            if delivery.id == exclude_delivery_id:
                continue
            for item in self._repo.get_delivery_items(delivery.id):
                totals[item.sales_order_item_id] = (
                    totals.get(item.sales_order_item_id, ZERO) + item.delivered_qty
                )
        return totals

    # =========================================================================
    # Creation
    # =========================================================================

    def create_delivery(
        self,
        sales_order_id: UUID,
        requested: Mapping[UUID, Any],
        actor: str | None = None,
    ) -> DeliveryDocument:
        """Create a delivery note for the requested quantities of a sales order.

        Each request is clamped to what is still undelivered on its line.
        The delivery is Full (status Pending) when it covers the whole
        order, otherwise Partial (status Partial).  Lines clamped to zero
        are not created.

        Raises:
            NotFoundError: unknown sales order or sales order line.
            ReconciliationError: ``NoQuantitySelected`` when every clamped
                quantity is zero.
        """
        with LogContext.bind(document_kind=DocumentKind.DELIVERY.value, actor_id=actor):
            with self._repo.transaction():
                order = require(
                    self._repo.get_sales_order(sales_order_id), "SalesOrder", sales_order_id
                )
                so_items = self._repo.get_sales_order_items(order.id)
                known = {item.id for item in so_items}
                for so_item_id in requested:
                    if so_item_id not in known:
                        raise NotFoundError("SalesOrderItem", so_item_id)

                clamped = self._reconciler.clamp_lines(
                    {item.id: item.ordered_qty for item in so_items},
                    {key: to_decimal(qty) for key, qty in requested.items()},
                    self.delivered_so_far(order.id),
                )
                delivery_type = self._reconciler.classify(
                    [item.ordered_qty for item in so_items], clamped.values()
                )

                now = self._clock.now()
                delivery_id = uuid4()
                items = tuple(
                    DeliveryItem(
                        id=uuid4(),
                        delivery_id=delivery_id,
                        sales_order_item_id=so_item.id,
                        item_id=so_item.item_id,
                        line_number=so_item.line_number,
                        description=so_item.description,
                        ordered_qty=so_item.ordered_qty,
                        picked_qty=clamped[so_item.id],
                        delivered_qty=clamped[so_item.id],
                        unit_price=so_item.unit_price,
                        total_price=line_total(so_item.unit_price, clamped[so_item.id]),
                    )
                    for so_item in so_items
                    if clamped[so_item.id] > ZERO
                )
                status = (
                    DeliveryStatus.PENDING
                    if delivery_type is FulfillmentType.FULL
                    else DeliveryStatus.PARTIAL
                )
                delivery = DeliveryNote(
                    id=delivery_id,
                    delivery_number=self._repo.next_number(self._config.number_prefix),
                    sales_order_id=order.id,
                    status=status,
                    delivery_type=delivery_type,
                    created_at=now,
                    updated_at=now,
                    created_by=actor,
                )
                saved = self._repo.save_delivery(delivery, items)

            logger.info(
                "delivery_created",
                extra={
                    "delivery_id": str(saved.id),
                    "delivery_number": saved.delivery_number,
                    "sales_order_id": str(order.id),
                    "delivery_type": saved.delivery_type.value,
                    "status": saved.status.value,
                    "line_count": len(items),
                },
            )
            return DeliveryDocument(saved, items)

    # =========================================================================
    # Status changes
    # =========================================================================

    def start_picking(self, delivery_id: UUID, actor: str | None = None) -> DeliveryDocument:
        """Move to Partial and stamp ``picking_started``.

        A delivery created as Partial has not started picking yet; for it
        only the stamp is written.
        """
        with self._repo.transaction():
            delivery = self._load(delivery_id)
            now = self._clock.now()
            if (
                delivery.status is DeliveryStatus.PARTIAL
                and delivery.picking_started_at is None
            ):
                updated = replace(
                    delivery,
                    picking_started_by=actor,
                    picking_started_at=now,
                    updated_at=now,
                )
            else:
                updated, _ = self._transition(delivery, DeliveryStatus.PARTIAL, actor, now)
            saved = self._save(delivery, updated)
        logger.info(
            "delivery_picking_started",
            extra={"delivery_id": str(delivery_id), "status": saved.status.value},
        )
        return self._document(saved)

    def complete_picking(
        self,
        delivery_id: UUID,
        actor: str | None = None,
        notes: str | None = None,
    ) -> DeliveryDocument:
        """Move to Complete; stamps picking completion and, if unset, confirmation."""
        with self._repo.transaction():
            delivery = self._load(delivery_id)
            now = self._clock.now()
            updated, _ = self._transition(delivery, DeliveryStatus.COMPLETE, actor, now)
            if notes is not None:
                updated = replace(updated, picking_notes=notes)
            saved = self._save(delivery, updated)
        logger.info(
            "delivery_picking_completed",
            extra={
                "delivery_id": str(delivery_id),
                "confirmed": saved.is_confirmed,
            },
        )
        return self._document(saved)

    def confirm_delivery(
        self, delivery_id: UUID, receiver_name: str, actor: str | None = None
    ) -> DeliveryDocument:
        """Record the receiver's confirmation and end in Complete.

        ``receiver_name`` goes on the confirmation stamp only.  When the
        delivery was still being picked, the picking completion is stamped
        with ``actor``.

        Raises:
            InvalidTransitionError: already confirmed, still Pending (unless
                ``allow_confirm_from_pending``), or cancelled.
        """
        with self._repo.transaction():
            delivery = self._load(delivery_id)
            now = self._clock.now()
            current = delivery.status.value
            target = DeliveryStatus.COMPLETE.value
            if delivery.is_confirmed:
                raise InvalidTransitionError(
                    DocumentKind.DELIVERY.value, current, target, "delivery already confirmed"
                )
            if delivery.status is DeliveryStatus.COMPLETE:
                updated = replace(
                    delivery,
                    delivery_confirmed_by=receiver_name,
                    delivery_confirmed_at=now,
                    actual_delivery_date=now,
                    updated_at=now,
                )
            elif (
                delivery.status is DeliveryStatus.PENDING
                and not self._config.allow_confirm_from_pending
            ):
                raise InvalidTransitionError(
                    DocumentKind.DELIVERY.value, current, target, "picking has not started"
                )
            else:
                updated, _ = self._transition(delivery, DeliveryStatus.COMPLETE, actor, now)
                updated = replace(updated, delivery_confirmed_by=receiver_name)
            saved = self._save(delivery, updated)
        logger.info(
            "delivery_confirmed",
            extra={"delivery_id": str(delivery_id), "receiver": receiver_name},
        )
        return self._document(saved)

    def change_status(
        self,
        delivery_id: UUID,
        target: DeliveryStatus | str,
        actor: str | None = None,
        reason: str | None = None,
    ) -> DeliveryDocument:
        """Generic status change; a reason is appended to the notes."""
        with self._repo.transaction():
            delivery = self._load(delivery_id)
            now = self._clock.now()
            updated, result = self._transition(delivery, target, actor, now)
            if reason:
                updated = replace(
                    updated,
                    notes=append_note(
                        delivery.notes, f"[Status changed to {result.new_status}: {reason}]"
                    ),
                )
            elif updated.status is DeliveryStatus.CANCELLED:
                updated = replace(
                    updated,
                    notes=append_note(
                        delivery.notes, f"[Cancelled: {self._config.default_cancel_reason}]"
                    ),
                )
            saved = self._save(delivery, updated)
        return self._document(saved)

    # =========================================================================
    # Edits
    # =========================================================================

    def edit_items(
        self,
        delivery_id: UUID,
        quantities: Mapping[UUID, Any],
        actor: str | None = None,
    ) -> DeliveryDocument:
        """Change delivered quantities of existing lines.

        Each quantity is clamped to ``[0, max(picked_qty, ordered_qty)]`` and
        to what other deliveries of the same order leave open.  Lines not
        named in ``quantities`` keep their value.  Applying the same map
        twice yields the same result.

        Raises:
            NotFoundError: a key is not a line of this delivery.
            InvalidTransitionError: the delivery is cancelled.
            ReconciliationError: ``NoQuantitySelected`` when every line
                would be zero.
        """
        with LogContext.bind(
            document_id=str(delivery_id),
            document_kind=DocumentKind.DELIVERY.value,
            actor_id=actor,
        ):
            with self._repo.transaction():
                delivery = self._load(delivery_id)
                if not self._states.is_mutable(delivery.status, DocumentKind.DELIVERY):
                    raise InvalidTransitionError(
                        DocumentKind.DELIVERY.value,
                        delivery.status.value,
                        delivery.status.value,
                        "quantities are locked in this status",
                    )
                items = self._repo.get_delivery_items(delivery_id)
                known = {item.id for item in items}
                for item_id in quantities:
                    if item_id not in known:
                        raise NotFoundError("DeliveryItem", item_id)

                so_items = {
                    i.id: i for i in self._repo.get_sales_order_items(delivery.sales_order_id)
                }
                others = self.delivered_so_far(
                    delivery.sales_order_id, exclude_delivery_id=delivery_id
                )
                edited = []
                for item in items:
                    if item.id not in quantities:
                        edited.append(item)
                        continue
                    bound = max(item.picked_qty, item.ordered_qty)
                    so_item = so_items.get(item.sales_order_item_id)
                    if so_item is not None:
                        bound = min(
                            bound,
                            self._reconciler.remaining(
                                so_item.ordered_qty,
                                others.get(item.sales_order_item_id, ZERO),
                            ),
                        )
                    qty = self._reconciler.clamp(bound, quantities[item.id])
                    edited.append(
                        replace(
                            item,
                            delivered_qty=qty,
                            total_price=line_total(item.unit_price, qty),
                        )
                    )

                ordered = [i.ordered_qty for i in so_items.values()] or [
                    i.ordered_qty for i in items
                ]
                delivery_type = self._reconciler.classify(
                    ordered, [i.delivered_qty for i in edited]
                )
                now = self._clock.now()
                updated = replace(delivery, delivery_type=delivery_type, updated_at=now)
                saved = self._save(delivery, updated, edited)

            logger.info(
                "delivery_items_edited",
                extra={
                    "delivery_id": str(delivery_id),
                    "edited_lines": len(quantities),
                    "delivery_type": delivery_type.value,
                },
            )
            return DeliveryDocument(saved, tuple(edited))

    def update_notes(self, delivery_id: UUID, notes: str) -> DeliveryDocument:
        """Replace the free-text notes.  Allowed in every status."""
        with self._repo.transaction():
            delivery = self._load(delivery_id)
            updated = replace(delivery, notes=notes, updated_at=self._clock.now())
            saved = self._save(delivery, updated)
        return self._document(saved)

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, delivery_id: UUID) -> DeliveryNote:
        return require(self._repo.get_delivery(delivery_id), "DeliveryNote", delivery_id)

    def _transition(self, delivery, target, actor, at):
        return transition_document(
            self._states,
            delivery,
            target,
            DocumentKind.DELIVERY,
            DeliveryStatus,
            actor=actor,
            at=at,
        )

    def _save(self, original: DeliveryNote, updated: DeliveryNote, items=None) -> DeliveryNote:
        return self._repo.save_delivery(
            updated, items, expected_version=original.version
        )

    def _document(self, delivery: DeliveryNote) -> DeliveryDocument:
        return DeliveryDocument(delivery, tuple(self._repo.get_delivery_items(delivery.id)))
