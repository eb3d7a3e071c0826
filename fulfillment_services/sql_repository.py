"""
SqlAlchemyRepository -- ``DocumentRepository`` over a SQLAlchemy session.

Responsibility:
    Maps the frozen DTOs of every module to their ORM rows and back.
    Document headers use SQLAlchemy's ``version_id_col``: an UPDATE against
    a row whose version moved on raises ``StaleDataError``, surfaced here as
    ``ConflictError``.

Architecture position:
    Services -- imperative shell infrastructure.  Owns the transaction
    boundary of each engine operation through ``transaction()``.

Invariants enforced:
    - The outermost ``transaction()`` commits on success and rolls back on
      any exception; nested blocks join the outer one.
    - Document numbers come from a locked counter row, never from
      ``max() + 1``.

Failure modes:
    - ConflictError: expected version mismatch, stale UPDATE, or a
      duplicate insert.
    - NotFoundError: update of a header that does not exist.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from fulfillment_kernel.exceptions import ConflictError, NotFoundError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_modules.delivery.orm import DeliveryItemModel, DeliveryNoteModel
from fulfillment_modules.invoicing.orm import InvoiceItemModel, InvoiceModel
from fulfillment_modules.receiving.orm import GoodsReceiptModel, ReceiptItemModel
from fulfillment_modules.returns.orm import ReceiptReturnModel, ReturnItemModel
from fulfillment_modules.sales.orm import SalesOrderItemModel, SalesOrderModel
from fulfillment_services.orm import DocumentSequenceModel
from fulfillment_services.repository import format_number

logger = get_logger("services.sql_repository")


class SqlAlchemyRepository:
    """
    Session-backed document repository.

    Contract:
        Constructed with one ``Session``; not shared across threads.  All
        returned values are DTOs, never ORM instances.

    Usage:
        with session_scope() as session:
            repo = SqlAlchemyRepository(session)
            tracker = DeliveryFulfillmentTracker(repo)
    """

    def __init__(self, session: Session):
        self._session = session
        self._depth = 0

    # -- transactions ---------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["SqlAlchemyRepository"]:
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield self
            if outermost:
                self._session.commit()
        except Exception:
            if outermost:
                self._session.rollback()
                logger.warning("repository_transaction_rolled_back")
            raise
        finally:
            self._depth -= 1

    # -- helpers --------------------------------------------------------

    def _flush(self, entity_type: str, entity_id: UUID) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise ConflictError(entity_type, entity_id) from exc
        except IntegrityError as exc:
            raise ConflictError(entity_type, entity_id) from exc

    def _save_header(
        self, model_cls: Any, entity_type: str, dto: Any, expected_version: int | None
    ) -> Any:
        if expected_version is None:
            if self._session.get(model_cls, dto.id) is not None:
                raise ConflictError(entity_type, dto.id)
            model = model_cls.from_dto(dto)
            self._session.add(model)
            return model

        model = self._session.get(model_cls, dto.id, populate_existing=True)
        if model is None:
            raise NotFoundError(entity_type, dto.id)
        if model.version != expected_version:
            logger.warning(
                "repository_version_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(dto.id),
                    "expected_version": expected_version,
                    "actual_version": model.version,
                },
            )
            raise ConflictError(entity_type, dto.id, expected_version, model.version)
        model.apply_dto(dto)
        # Every save is a new version, even when no column value changed.
        flag_modified(model, "updated_at")
        return model

    def _replace_children(
        self, model_cls: Any, parent_column: Any, parent_id: UUID, items: Sequence[Any]
    ) -> None:
        existing = {
            m.id: m
            for m in self._session.scalars(select(model_cls).where(parent_column == parent_id))
        }
        for dto in items:
            model = existing.pop(dto.id, None)
            if model is None:
                self._session.add(model_cls.from_dto(dto))
            else:
                model.apply_dto(dto)
        for model in existing.values():
            self._session.delete(model)

    def _children(self, model_cls: Any, parent_column: Any, parent_id: UUID, order_by=None) -> list:
        stmt = select(model_cls).where(parent_column == parent_id)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def _get(self, model_cls: Any, entity_id: UUID) -> Any:
        model = self._session.get(model_cls, entity_id)
        return model.to_dto() if model is not None else None

    def _save(
        self,
        header_cls: Any,
        item_cls: Any,
        parent_column: Any,
        entity_type: str,
        dto: Any,
        items: Sequence[Any] | None,
        expected_version: int | None,
    ) -> Any:
        model = self._save_header(header_cls, entity_type, dto, expected_version)
        if items is not None:
            self._replace_children(item_cls, parent_column, dto.id, items)
        self._flush(entity_type, dto.id)
        return model.to_dto()

    # -- sales orders ---------------------------------------------------

    def add_sales_order(self, order, items) -> None:
        if self._session.get(SalesOrderModel, order.id) is not None:
            raise ConflictError("SalesOrder", order.id)
        self._session.add(SalesOrderModel.from_dto(order))
        for item in items:
            self._session.add(SalesOrderItemModel.from_dto(item))
        self._flush("SalesOrder", order.id)

    def get_sales_order(self, sales_order_id: UUID):
        return self._get(SalesOrderModel, sales_order_id)

    def get_sales_order_items(self, sales_order_id: UUID) -> list:
        return self._children(
            SalesOrderItemModel,
            SalesOrderItemModel.sales_order_id,
            sales_order_id,
            SalesOrderItemModel.line_number,
        )

    # -- deliveries -----------------------------------------------------

    def get_delivery(self, delivery_id: UUID):
        return self._get(DeliveryNoteModel, delivery_id)

    def get_delivery_items(self, delivery_id: UUID) -> list:
        return self._children(
            DeliveryItemModel,
            DeliveryItemModel.delivery_id,
            delivery_id,
            DeliveryItemModel.line_number,
        )

    def list_deliveries_for_order(self, sales_order_id: UUID) -> list:
        stmt = (
            select(DeliveryNoteModel)
            .where(DeliveryNoteModel.sales_order_id == sales_order_id)
            .order_by(DeliveryNoteModel.created_at, DeliveryNoteModel.delivery_number)
        )
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def save_delivery(self, delivery, items=None, *, expected_version=None):
        return self._save(
            DeliveryNoteModel,
            DeliveryItemModel,
            DeliveryItemModel.delivery_id,
            "DeliveryNote",
            delivery,
            items,
            expected_version,
        )

    # -- invoices -------------------------------------------------------

    def get_invoice(self, invoice_id: UUID):
        return self._get(InvoiceModel, invoice_id)

    def get_invoice_items(self, invoice_id: UUID) -> list:
        return self._children(
            InvoiceItemModel,
            InvoiceItemModel.invoice_id,
            invoice_id,
            InvoiceItemModel.line_number,
        )

    def save_invoice(self, invoice, items=None, *, expected_version=None):
        return self._save(
            InvoiceModel,
            InvoiceItemModel,
            InvoiceItemModel.invoice_id,
            "Invoice",
            invoice,
            items,
            expected_version,
        )

    # -- goods receipts -------------------------------------------------

    def get_goods_receipt(self, goods_receipt_id: UUID):
        return self._get(GoodsReceiptModel, goods_receipt_id)

    def get_receipt_items(self, goods_receipt_id: UUID) -> list:
        return self._children(
            ReceiptItemModel,
            ReceiptItemModel.goods_receipt_id,
            goods_receipt_id,
            ReceiptItemModel.line_number,
        )

    def save_goods_receipt(self, receipt, items=None, *, expected_version=None):
        return self._save(
            GoodsReceiptModel,
            ReceiptItemModel,
            ReceiptItemModel.goods_receipt_id,
            "GoodsReceipt",
            receipt,
            items,
            expected_version,
        )

    # -- returns --------------------------------------------------------

    def get_return(self, return_id: UUID):
        return self._get(ReceiptReturnModel, return_id)

    def get_return_items(self, return_id: UUID) -> list:
        return self._children(
            ReturnItemModel,
            ReturnItemModel.return_id,
            return_id,
            ReturnItemModel.created_at,
        )

    def list_returns_for_receipt(self, goods_receipt_id: UUID) -> list:
        stmt = (
            select(ReceiptReturnModel)
            .where(ReceiptReturnModel.goods_receipt_id == goods_receipt_id)
            .order_by(ReceiptReturnModel.created_at, ReceiptReturnModel.return_number)
        )
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def save_return(self, receipt_return, items=None, *, expected_version=None):
        return self._save(
            ReceiptReturnModel,
            ReturnItemModel,
            ReturnItemModel.return_id,
            "ReceiptReturn",
            receipt_return,
            items,
            expected_version,
        )

    def delete_return_item(self, item_id: UUID) -> None:
        model = self._session.get(ReturnItemModel, item_id)
        if model is None:
            raise NotFoundError("ReturnItem", item_id)
        self._session.delete(model)
        self._flush("ReturnItem", item_id)

    # -- numbering ------------------------------------------------------

    def next_number(self, prefix: str) -> str:
        """Allocate the next number for ``prefix`` from its locked counter row."""
        counter = self._session.execute(
            select(DocumentSequenceModel)
            .where(DocumentSequenceModel.name == prefix)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = DocumentSequenceModel(name=prefix, current_value=0)
            self._session.add(counter)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "document_number_allocated",
            extra={"prefix": prefix, "value": counter.current_value},
        )
        return format_number(prefix, counter.current_value)
