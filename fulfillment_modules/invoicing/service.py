"""
Invoicing Module Service (``fulfillment_modules.invoicing.service``).

Responsibility
--------------
Generates customer invoices from delivery notes (or, for proformas, straight
from a sales order), regenerates them, and moves them through send, payment
and cancellation.  Line fields are resolved by ``LineResolver``; header
totals by ``InvoiceTotals`` with the rate of a pluggable ``TaxPolicy``.

Architecture position
---------------------
**Modules layer** -- thin ERP glue.  ``InvoiceGenerator`` is the sole public
entry point for invoice operations.

Invariants enforced
-------------------
* ``subtotal == sum(line.total_price)``;
  ``total_amount == subtotal + tax_amount``.
* Lines resolving to quantity zero are dropped; an invoice never has zero
  lines.
* Regeneration from unchanged inputs yields identical totals.
* A delivery without lines is invoiced from its sales order lines, each
  taken as delivered in full; those invoice lines carry no
  ``delivery_item_id`` and are selected by sales order item id.
* Paid invoices are always paid in full (``paid_amount == total_amount``).

Failure modes
-------------
* ``NotFoundError`` -- unknown delivery, sales order or invoice.
* ``ReconciliationError("NoItemsSelected")`` -- nothing left to invoice.
* ``InvalidTransitionError`` -- status change not in the invoice table, or
  regeneration of a paid/cancelled invoice.

Usage::

    generator = InvoiceGenerator(repository, clock=clock)
    doc = generator.generate_from_delivery(delivery_id, InvoiceType.STANDARD)
    generator.send(doc.invoice.id, actor="alice")
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from fulfillment_engines.resolution import LineResolver
from fulfillment_engines.status import StatusStateMachine
from fulfillment_engines.totals import InvoiceTotals, TaxPolicy, line_total
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_kernel.domain.values import ZERO
from fulfillment_kernel.exceptions import InvalidTransitionError, ReconciliationError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules._document_helpers import (
    append_note,
    require,
    transition_document,
)
from fulfillment_modules.delivery.models import DeliveryItem, DeliveryStatus
from fulfillment_modules.invoicing.config import InvoicingConfig
from fulfillment_modules.invoicing.models import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoiceType,
)

logger = get_logger("modules.invoicing.service")


@dataclass(frozen=True)
class InvoiceDocument:
    """An invoice together with its current lines."""
    invoice: Invoice
    items: tuple[InvoiceItem, ...]


class InvoiceGenerator:
    """
    Invoice generation and lifecycle over a document repository.

    Contract
    --------
    * Every public method returns an ``InvoiceDocument`` snapshot of what
      was written.
    * Tax comes from ``tax_policy`` (defaults to the configured flat rates).
    """

    def __init__(
        self,
        repository: Any,
        state_machine: StatusStateMachine | None = None,
        clock: Clock | None = None,
        config: InvoicingConfig | None = None,
        tax_policy: TaxPolicy | None = None,
        resolver: LineResolver | None = None,
    ):
        if state_machine is None:
            from fulfillment_modules import default_state_machine

            state_machine = default_state_machine()
        self._repo = repository
        self._states = state_machine
        self._clock = clock or SystemClock()
        self._config = config or InvoicingConfig.with_defaults()
        self._tax_policy = tax_policy or self._config.tax_policy()
        self._resolver = resolver or LineResolver(
            self._config.generic_descriptions, self._config.money_places
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, invoice_id: UUID) -> InvoiceDocument:
        invoice = self._load(invoice_id)
        return InvoiceDocument(invoice, tuple(self._repo.get_invoice_items(invoice_id)))

    def effective_status(
        self, invoice: Invoice, now: datetime | None = None
    ) -> InvoiceStatus:
        """Stored status, or Overdue for a sent invoice past due."""
        return invoice.effective_status(now or self._clock.now())

    # =========================================================================
    # Generation
    # =========================================================================

    def generate_from_delivery(
        self,
        delivery_id: UUID,
        invoice_type: InvoiceType | str = InvoiceType.STANDARD,
        selected_item_ids: Iterable[UUID] | None = None,
        actor: str | None = None,
    ) -> InvoiceDocument:
        """Invoice all lines of a delivery, or the selected subset.

        Unknown ids in ``selected_item_ids`` are ignored.  A delivery with no
        stored lines is invoiced from its sales order lines at the ordered
        quantity; the selection then refers to sales order item ids.

        Raises:
            NotFoundError: unknown delivery.
            InvalidTransitionError: the delivery is cancelled.
            ReconciliationError: ``NoItemsSelected`` when no line with a
                positive quantity remains.
        """
        invoice_type = InvoiceType(
            invoice_type.value if isinstance(invoice_type, InvoiceType) else invoice_type
        )
        with LogContext.bind(document_kind=DocumentKind.INVOICE.value, actor_id=actor):
            with self._repo.transaction():
                delivery = require(
                    self._repo.get_delivery(delivery_id), "DeliveryNote", delivery_id
                )
                if delivery.status is DeliveryStatus.CANCELLED:
                    raise InvalidTransitionError(
                        DocumentKind.INVOICE.value,
                        delivery.status.value,
                        InvoiceStatus.DRAFT.value,
                        "delivery is cancelled",
                    )
                so_items = self._repo.get_sales_order_items(delivery.sales_order_id)
                sources, from_delivery = self._delivery_sources(
                    delivery.id, so_items, selected_item_ids
                )
                saved, items = self._create(
                    invoice_type=invoice_type,
                    sales_order_id=delivery.sales_order_id,
                    delivery_id=delivery.id,
                    sources=sources,
                    sales_order_items=so_items,
                    from_delivery=from_delivery,
                    actor=actor,
                )
            self._log_generated(saved, items)
            return InvoiceDocument(saved, items)

    def generate_proforma_from_order(
        self, sales_order_id: UUID, actor: str | None = None
    ) -> InvoiceDocument:
        """Proforma invoice for every ordered line of a sales order."""
        with LogContext.bind(document_kind=DocumentKind.INVOICE.value, actor_id=actor):
            with self._repo.transaction():
                order = require(
                    self._repo.get_sales_order(sales_order_id), "SalesOrder", sales_order_id
                )
                so_items = self._repo.get_sales_order_items(order.id)
                saved, items = self._create(
                    invoice_type=InvoiceType.PROFORMA,
                    sales_order_id=order.id,
                    delivery_id=None,
                    sources=so_items,
                    sales_order_items=so_items,
                    from_delivery=False,
                    actor=actor,
                    currency=order.currency,
                )
            self._log_generated(saved, items)
            return InvoiceDocument(saved, items)

    def regenerate(
        self,
        invoice_id: UUID,
        selected_item_ids: Iterable[UUID] | None = None,
        actor: str | None = None,
    ) -> InvoiceDocument:
        """Rebuild the lines and totals of an invoice from its source.

        Without ``selected_item_ids`` the delivery lines already on the
        invoice are used (all lines when none are linked).  Dates and the
        invoice number are kept.

        Raises:
            InvalidTransitionError: the invoice is Paid or Cancelled.
        """
        with LogContext.bind(
            document_id=str(invoice_id),
            document_kind=DocumentKind.INVOICE.value,
            actor_id=actor,
        ):
            with self._repo.transaction():
                invoice = self._load(invoice_id)
                if not self._states.is_mutable(invoice.status, DocumentKind.INVOICE):
                    raise InvalidTransitionError(
                        DocumentKind.INVOICE.value,
                        invoice.status.value,
                        invoice.status.value,
                        "lines are locked in this status",
                    )
                so_items = self._repo.get_sales_order_items(invoice.sales_order_id)
                if invoice.delivery_id is None:
                    sources: Sequence[Any] = so_items
                    from_delivery = False
                else:
                    if selected_item_ids is None:
                        # lines built from the sales order link no delivery item
                        linked = {
                            line.delivery_item_id or line.sales_order_item_id
                            for line in self._repo.get_invoice_items(invoice.id)
                        } - {None}
                        selected_item_ids = linked or None
                    sources, from_delivery = self._delivery_sources(
                        invoice.delivery_id, so_items, selected_item_ids
                    )

                lines = self._build_lines(invoice.id, sources, so_items, from_delivery)
                totals = self._totals(invoice.invoice_type, lines)
                updated = replace(
                    invoice,
                    tax_rate=totals.tax_rate,
                    subtotal=totals.subtotal,
                    tax_amount=totals.tax_amount,
                    total_amount=totals.total_amount,
                    updated_at=self._clock.now(),
                )
                saved = self._repo.save_invoice(
                    updated, lines, expected_version=invoice.version
                )
            logger.info(
                "invoice_regenerated",
                extra={
                    "invoice_id": str(saved.id),
                    "line_count": len(lines),
                    "total_amount": str(saved.total_amount),
                },
            )
            return InvoiceDocument(saved, lines)

    # =========================================================================
    # Status changes
    # =========================================================================

    def send(self, invoice_id: UUID, actor: str | None = None) -> InvoiceDocument:
        return self._change(invoice_id, InvoiceStatus.SENT, actor)

    def mark_paid(self, invoice_id: UUID, actor: str | None = None) -> InvoiceDocument:
        """Sent -> Paid, settling the whole amount."""
        return self._change(invoice_id, InvoiceStatus.PAID, actor)

    def cancel(
        self, invoice_id: UUID, actor: str | None = None, reason: str | None = None
    ) -> InvoiceDocument:
        return self._change(invoice_id, InvoiceStatus.CANCELLED, actor, reason)

    def change_status(
        self,
        invoice_id: UUID,
        target: InvoiceStatus | str,
        actor: str | None = None,
        reason: str | None = None,
    ) -> InvoiceDocument:
        return self._change(invoice_id, target, actor, reason)

    def update_notes(self, invoice_id: UUID, notes: str) -> InvoiceDocument:
        """Replace the free-text notes.  Allowed in every status."""
        with self._repo.transaction():
            invoice = self._load(invoice_id)
            updated = replace(invoice, notes=notes, updated_at=self._clock.now())
            saved = self._repo.save_invoice(updated, expected_version=invoice.version)
        return self.get(saved.id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, invoice_id: UUID) -> Invoice:
        return require(self._repo.get_invoice(invoice_id), "Invoice", invoice_id)

    def _delivery_sources(
        self,
        delivery_id: UUID,
        sales_order_items: Sequence[Any],
        selected_item_ids: Iterable[UUID] | None,
    ) -> tuple[list, bool]:
        """Delivery lines to invoice, and whether they are real delivery lines.

        A delivery stored without lines stands in for its whole sales order:
        every order line counts as picked and delivered in full, and
        ``selected_item_ids`` then names sales order item ids.
        """
        delivery_items = self._repo.get_delivery_items(delivery_id)
        if delivery_items:
            return self._select(delivery_items, selected_item_ids), True
        logger.info(
            "invoice_lines_from_sales_order",
            extra={
                "delivery_id": str(delivery_id),
                "sales_order_line_count": len(sales_order_items),
            },
        )
        stand_ins = [
            DeliveryItem(
                id=so_item.id,
                delivery_id=delivery_id,
                sales_order_item_id=so_item.id,
                line_number=so_item.line_number,
                description=so_item.description,
                ordered_qty=so_item.ordered_qty,
                picked_qty=so_item.ordered_qty,
                delivered_qty=so_item.ordered_qty,
                unit_price=so_item.unit_price,
                total_price=(
                    so_item.total_price
                    if so_item.total_price is not None
                    else line_total(
                        so_item.unit_price, so_item.ordered_qty, self._config.money_places
                    )
                ),
                item_id=so_item.item_id,
            )
            for so_item in sales_order_items
        ]
        return self._select(stand_ins, selected_item_ids), False

    @staticmethod
    def _select(items: Sequence[Any], selected_item_ids: Iterable[UUID] | None) -> list:
        if selected_item_ids is None:
            return list(items)
        wanted = set(selected_item_ids)
        return [item for item in items if item.id in wanted]

    def _build_lines(
        self,
        invoice_id: UUID,
        sources: Sequence[Any],
        sales_order_items: Sequence[Any],
        from_delivery: bool = True,
    ) -> tuple[InvoiceItem, ...]:
        lines: list[InvoiceItem] = []
        for position, source in enumerate(sources):
            resolved = self._resolver.resolve(source, sales_order_items, position)
            if resolved.quantity.value <= ZERO:
                logger.debug(
                    "invoice_line_dropped",
                    extra={"source_id": str(source.id), "reason": "zero quantity"},
                )
                continue
            lines.append(
                InvoiceItem(
                    id=uuid4(),
                    invoice_id=invoice_id,
                    line_number=len(lines) + 1,
                    description=resolved.description.value,
                    quantity=resolved.quantity.value,
                    unit_price=resolved.unit_price.value,
                    total_price=resolved.total_price.value,
                    delivery_item_id=source.id if from_delivery else None,
                    sales_order_item_id=resolved.sales_order_item_id,
                    quantity_source=resolved.quantity.source.value,
                    unit_price_source=resolved.unit_price.source.value,
                    description_source=resolved.description.source.value,
                )
            )
        if not lines:
            raise ReconciliationError(
                ReconciliationError.NO_ITEMS_SELECTED,
                "select at least one item with a quantity to invoice",
                source_count=len(sources),
            )
        return tuple(lines)

    def _totals(self, invoice_type: InvoiceType, lines: Sequence[InvoiceItem]) -> InvoiceTotals:
        return InvoiceTotals.compute(
            (line.total_price for line in lines),
            tax_rate_percent=self._tax_policy.rate_for(invoice_type),
            places=self._config.money_places,
        )

    def _create(
        self,
        *,
        invoice_type: InvoiceType,
        sales_order_id: UUID,
        delivery_id: UUID | None,
        sources: Sequence[Any],
        sales_order_items: Sequence[Any],
        from_delivery: bool,
        actor: str | None,
        currency: str | None = None,
    ) -> tuple[Invoice, tuple[InvoiceItem, ...]]:
        invoice_id = uuid4()
        lines = self._build_lines(
            invoice_id, sources, sales_order_items, from_delivery
        )
        totals = self._totals(invoice_type, lines)
        now = self._clock.now()
        prefix = (
            self._config.proforma_prefix
            if invoice_type is InvoiceType.PROFORMA
            else self._config.number_prefix
        )
        invoice = Invoice(
            id=invoice_id,
            invoice_number=self._repo.next_number(prefix),
            invoice_type=invoice_type,
            sales_order_id=sales_order_id,
            delivery_id=delivery_id,
            status=InvoiceStatus.DRAFT,
            invoice_date=now,
            due_date=now + timedelta(days=self._config.payment_terms_days),
            tax_rate=totals.tax_rate,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            currency=currency or self._config.currency,
            created_at=now,
            updated_at=now,
            created_by=actor,
        )
        return self._repo.save_invoice(invoice, lines), lines

    def _change(
        self,
        invoice_id: UUID,
        target: InvoiceStatus | str,
        actor: str | None,
        reason: str | None = None,
    ) -> InvoiceDocument:
        with LogContext.bind(
            document_id=str(invoice_id),
            document_kind=DocumentKind.INVOICE.value,
            actor_id=actor,
        ):
            with self._repo.transaction():
                invoice = self._load(invoice_id)
                updated, result = transition_document(
                    self._states,
                    invoice,
                    target,
                    DocumentKind.INVOICE,
                    InvoiceStatus,
                    actor=actor,
                    at=self._clock.now(),
                )
                if updated.status is InvoiceStatus.PAID:
                    updated = replace(updated, paid_amount=updated.total_amount)
                if reason:
                    updated = replace(
                        updated,
                        notes=append_note(
                            invoice.notes, f"[Status changed to {result.new_status}: {reason}]"
                        ),
                    )
                saved = self._repo.save_invoice(updated, expected_version=invoice.version)
            logger.info(
                "invoice_status_changed",
                extra={
                    "invoice_id": str(invoice_id),
                    "from_status": result.previous_status,
                    "to_status": result.new_status,
                },
            )
            return self.get(saved.id)

    @staticmethod
    def _log_generated(invoice: Invoice, items: Sequence[InvoiceItem]) -> None:
        logger.info(
            "invoice_generated",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "invoice_type": invoice.invoice_type.value,
                "line_count": len(items),
                "subtotal": str(invoice.subtotal),
                "tax_amount": str(invoice.tax_amount),
                "total_amount": str(invoice.total_amount),
            },
        )
