"""
FulfillmentEngine -- facade for API handlers.

Responsibility:
    Accepts raw request payloads, parses them into typed requests, and
    drives the module services.  Every call returns an ``EngineResult``:
    either the written document or the ``EngineError`` that refused the
    operation, with its machine-readable code.

Architecture position:
    Services -- stateful orchestration over a ``DocumentRepository``.
    Builds one ``DeliveryFulfillmentTracker``, ``InvoiceGenerator``,
    ``ReceiptReturnProcessor`` and ``ReceivingService`` from a single
    ``EngineConfig`` so that every module shares the clock, the state
    machine and the repository.

Invariants enforced:
    - Each operation is one repository transaction (owned by the module
      service); a refused operation leaves the repository unchanged.
    - Every operation runs inside a ``LogContext`` carrying a fresh
      correlation id.

Failure modes:
    - ``EngineError`` subclasses are caught and returned as a failed
      ``EngineResult``.  Anything else (programming errors, database
      outages) propagates to the caller.

Usage:
    engine = FulfillmentEngine(InMemoryRepository(), clock=clock)
    result = engine.generate_delivery(
        {"sales_order_id": str(order.id), "quantities": {str(line.id): "5"}}
    )
    if not result.is_success:
        return {"code": result.code, "message": result.message}
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from fulfillment_config.schema import EngineConfig
from fulfillment_engines.status import StatusStateMachine
from fulfillment_engines.totals import TaxPolicy
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import DocumentKind
from fulfillment_kernel.exceptions import EngineError, ValidationError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules import default_state_machine
from fulfillment_modules.delivery.config import DeliveryConfig
from fulfillment_modules.delivery.service import DeliveryFulfillmentTracker
from fulfillment_modules.invoicing.config import InvoicingConfig
from fulfillment_modules.invoicing.service import InvoiceGenerator
from fulfillment_modules.receiving.service import ReceivingService
from fulfillment_modules.returns.config import ReturnsConfig
from fulfillment_modules.returns.service import ReceiptReturnProcessor
from fulfillment_services.requests import (
    DeliveryRequest,
    InvoiceRequest,
    ReturnRequest,
    parse_uuid,
)

logger = get_logger("services.engine")


class EngineResultStatus(str, Enum):
    """Outcome of a facade operation."""

    SUCCESS = "success"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    RECONCILIATION_FAILED = "reconciliation_failed"
    TRANSITION_REJECTED = "transition_rejected"
    CONFLICT = "conflict"
    FAILED = "failed"


_STATUS_BY_CODE = {
    "VALIDATION_ERROR": EngineResultStatus.VALIDATION_FAILED,
    "NOT_FOUND": EngineResultStatus.NOT_FOUND,
    "RECONCILIATION_ERROR": EngineResultStatus.RECONCILIATION_FAILED,
    "INVALID_TRANSITION": EngineResultStatus.TRANSITION_REJECTED,
    "CONFLICT": EngineResultStatus.CONFLICT,
}


@dataclass(frozen=True)
class EngineResult:
    """Result of a facade operation."""

    status: EngineResultStatus
    document: Any = None
    error: EngineError | None = None
    correlation_id: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status is EngineResultStatus.SUCCESS

    @property
    def code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @property
    def message(self) -> str | None:
        return str(self.error) if self.error is not None else None

    @property
    def reason(self) -> str | None:
        """``ReconciliationError.reason`` when that is the failure."""
        return getattr(self.error, "reason", None)

    @classmethod
    def failed(cls, error: EngineError, correlation_id: str | None = None) -> "EngineResult":
        return cls(
            status=_STATUS_BY_CODE.get(error.code, EngineResultStatus.FAILED),
            error=error,
            correlation_id=correlation_id,
        )


def _delivery_config(config: EngineConfig) -> DeliveryConfig:
    return DeliveryConfig(
        number_prefix=config.prefix("delivery"),
        allow_confirm_from_pending=config.allow_confirm_from_pending,
        default_cancel_reason=config.default_cancel_reason,
    )


def _invoicing_config(config: EngineConfig) -> InvoicingConfig:
    return InvoicingConfig(
        tax_rates=dict(config.tax_rates),
        payment_terms_days=config.payment_terms_days,
        money_places=config.money_places,
        generic_descriptions=config.generic_descriptions,
        number_prefix=config.prefix("invoice"),
        proforma_prefix=config.prefix("proforma"),
        currency=config.currency,
    )


def _returns_config(config: EngineConfig) -> ReturnsConfig:
    return ReturnsConfig(
        number_prefix=config.prefix("return"),
        money_places=config.money_places,
    )


class FulfillmentEngine:
    """
    Single entry point for handlers that speak in payload dicts.

    Contract:
        ``generate_delivery``, ``generate_invoice``, ``process_return`` and
        ``transition`` never raise ``EngineError``; they return it inside
        an ``EngineResult``.  The underlying services are exposed as
        ``deliveries``, ``invoices``, ``returns`` and ``receiving`` for
        callers that want typed calls and exceptions.
    """

    def __init__(
        self,
        repository: Any,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        state_machine: StatusStateMachine | None = None,
        tax_policy: TaxPolicy | None = None,
    ):
        self._repo = repository
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig.with_defaults()
        self._states = state_machine or default_state_machine()

        self.deliveries = DeliveryFulfillmentTracker(
            repository,
            state_machine=self._states,
            clock=self._clock,
            config=_delivery_config(self._config),
        )
        self.invoices = InvoiceGenerator(
            repository,
            state_machine=self._states,
            clock=self._clock,
            config=_invoicing_config(self._config),
            tax_policy=tax_policy,
        )
        self.returns = ReceiptReturnProcessor(
            repository,
            state_machine=self._states,
            clock=self._clock,
            config=_returns_config(self._config),
        )
        self.receiving = ReceivingService(
            repository,
            state_machine=self._states,
            clock=self._clock,
            number_prefix=self._config.prefix("receipt"),
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    # =========================================================================
    # Operations
    # =========================================================================

    def generate_delivery(self, payload: Mapping[str, Any]) -> EngineResult:
        def run() -> Any:
            request = DeliveryRequest.from_payload(payload)
            return self.deliveries.create_delivery(
                request.sales_order_id, request.quantities, actor=request.actor
            )

        return self._execute("generate_delivery", DocumentKind.DELIVERY, payload, run)

    def generate_invoice(self, payload: Mapping[str, Any]) -> EngineResult:
        def run() -> Any:
            request = InvoiceRequest.from_payload(payload)
            if request.delivery_id is None:
                return self.invoices.generate_proforma_from_order(
                    request.sales_order_id, actor=request.actor
                )
            return self.invoices.generate_from_delivery(
                request.delivery_id,
                invoice_type=request.invoice_type,
                selected_item_ids=request.selected_item_ids,
                actor=request.actor,
            )

        return self._execute("generate_invoice", DocumentKind.INVOICE, payload, run)

    def process_return(self, payload: Mapping[str, Any]) -> EngineResult:
        def run() -> Any:
            request = ReturnRequest.from_payload(payload)
            return self.returns.create_return(
                request.goods_receipt_id,
                request.items,
                return_reason=request.return_reason,
                actor=request.actor,
                notes=request.notes,
            )

        return self._execute("process_return", DocumentKind.RETURN, payload, run)

    def transition(
        self,
        document_id: UUID | str,
        kind: DocumentKind | str,
        target_status: Any,
        actor: str | None = None,
        reason: str | None = None,
    ) -> EngineResult:
        """Move a document of ``kind`` to ``target_status``."""

        def run() -> Any:
            doc_id = parse_uuid(document_id, "document_id")
            try:
                doc_kind = DocumentKind.parse(kind)
            except ValueError:
                raise ValidationError("kind", f"unknown document kind {kind!r}") from None
            if doc_kind is DocumentKind.DELIVERY:
                return self.deliveries.change_status(doc_id, target_status, actor, reason)
            if doc_kind is DocumentKind.INVOICE:
                return self.invoices.change_status(doc_id, target_status, actor, reason)
            if doc_kind is DocumentKind.RETURN:
                return self.returns.transition(doc_id, target_status, actor, reason)
            return self.receiving.change_status(doc_id, target_status, actor, reason)

        return self._execute(
            "transition",
            None,
            {"document_id": document_id, "actor": actor},
            run,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _execute(
        self,
        operation: str,
        kind: DocumentKind | None,
        payload: Mapping[str, Any],
        run: Callable[[], Any],
    ) -> EngineResult:
        correlation_id = str(uuid4())
        actor = payload.get("actor") if isinstance(payload, Mapping) else None
        with LogContext.bind(
            correlation_id=correlation_id,
            document_kind=kind.value if kind is not None else None,
            actor_id=actor,
        ):
            try:
                document = run()
            except EngineError as exc:
                logger.warning(
                    "engine_operation_refused",
                    extra={
                        "operation": operation,
                        "error_code": exc.code,
                        "reason": getattr(exc, "reason", None),
                    },
                )
                return EngineResult.failed(exc, correlation_id)
            logger.info("engine_operation_completed", extra={"operation": operation})
            return EngineResult(
                status=EngineResultStatus.SUCCESS,
                document=document,
                correlation_id=correlation_id,
            )
