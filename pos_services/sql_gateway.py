"""
Module: pos_services.sql_gateway
Responsibility: ReconciliationGateway backed by the SQLAlchemy record store
    (pos_kernel.models).  Used as the backend of record by the demo script
    and the integration tests; a networked backend implements the same
    contract.
Architecture position: Services.  Imports kernel db/models and the wire
    mapper.  The lifecycle manager only sees the ReconciliationGateway ABC.

Invariants enforced:
    - create_or_draft is idempotent on (location_id, consecutive_key) among
      open records.
    - persist never resurrects a deleted order: an unknown backend id raises
      BackendOrderNotFoundError.
    - Writes to a completed record are ignored (stale persist after capture).
    - A sale is recorded only when the tenders settle the amount due.

Failure modes:
    - BackendUnavailableError wrapping any SQLAlchemyError.
    - BackendOrderNotFoundError for unknown backend ids.
    - PaymentIncompleteError when tenders do not cover the amount due.

Calls run inline on the event loop: the record store is local and each
call is a short transaction.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pos_engines.tender import settle
from pos_kernel.db.engine import session_scope
from pos_kernel.domain.catalog import ClientRef, WarehouseRef
from pos_kernel.domain.order import Order, OrderStatus
from pos_kernel.domain.session import ValidationConfig
from pos_kernel.exceptions import (
    BackendOrderNotFoundError,
    BackendUnavailableError,
    PaymentIncompleteError,
)
from pos_kernel.logging_config import get_logger
from pos_kernel.models.order_record import OrderRecord, OrderRecordStatus
from pos_kernel.models.sale_record import SaleRecord
from pos_kernel.models.validation_settings import ValidationSettingsRecord
from pos_services.gateway import (
    BackendRef,
    CaptureResult,
    PaymentRequest,
    ReconciliationGateway,
)
from pos_services.wire import (
    SCHEMA_VERSION,
    order_to_payload,
    payload_to_order,
    payment_to_payload,
)

logger = get_logger("services.sql_gateway")


def _parse_backend_id(backend_id: str) -> UUID:
    try:
        return UUID(backend_id)
    except ValueError:
        raise BackendOrderNotFoundError(backend_id) from None


class SqlReconciliationGateway(ReconciliationGateway):
    """
    Record-store gateway.

    Args:
        session_factory: SQLAlchemy sessionmaker bound to the record store
        terminal_id: Key of the terminal's validation settings row
    """

    def __init__(self, session_factory: sessionmaker[Session], terminal_id: str = "default"):
        self._session_factory = session_factory
        self._terminal_id = terminal_id

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error(
                "record_store_failure",
                extra={"operation": operation, "error": str(exc)},
            )
            raise BackendUnavailableError(operation, str(exc)) from exc

    def _get_record(self, session: Session, backend_id: str) -> OrderRecord:
        record = session.get(OrderRecord, _parse_backend_id(backend_id))
        if record is None:
            raise BackendOrderNotFoundError(backend_id)
        return record

    def _open_draft(self, session: Session, order: Order) -> OrderRecord | None:
        location_filter = (
            OrderRecord.location_id.is_(None)
            if order.location_id is None
            else OrderRecord.location_id == order.location_id
        )
        return session.scalars(
            select(OrderRecord).where(
                OrderRecord.consecutive_key == order.local_id,
                location_filter,
                OrderRecord.status == OrderRecordStatus.PENDING.value,
            )
        ).first()

    def _insert(self, session: Session, order: Order) -> OrderRecord:
        record = OrderRecord(
            consecutive_key=order.local_id,
            location_id=order.location_id,
            status=OrderRecordStatus.PENDING.value,
            schema_version=SCHEMA_VERSION,
            payload=order_to_payload(order),
            revision=1,
        )
        session.add(record)
        session.flush()
        return record

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_or_draft(self, order: Order) -> BackendRef:
        with self._transaction("create_or_draft") as session:
            record = self._open_draft(session, order)
            if record is not None:
                logger.info("draft_reused", extra={"backend_id": str(record.id)})
                return BackendRef(backend_id=str(record.id))

            record = self._insert(session, order)
            logger.info(
                "draft_created",
                extra={"backend_id": str(record.id), "consecutive_key": order.local_id},
            )
            return BackendRef(backend_id=str(record.id))

    async def persist(self, order: Order) -> BackendRef:
        if order.backend_id is None:
            return await self.create_or_draft(order)

        with self._transaction("persist") as session:
            record = self._get_record(session, order.backend_id)
            if not record.is_open:
                logger.warning(
                    "stale_persist_ignored",
                    extra={"backend_id": order.backend_id, "status": record.status},
                )
                return BackendRef(backend_id=str(record.id))

            record.location_id = order.location_id
            record.schema_version = SCHEMA_VERSION
            record.payload = order_to_payload(order)
            record.revision = record.revision + 1
            logger.debug(
                "order_persisted",
                extra={"backend_id": order.backend_id, "revision": record.revision},
            )
            return BackendRef(backend_id=str(record.id))

    async def fetch_by_location(self, location_id: str) -> Order | None:
        with self._transaction("fetch_by_location") as session:
            record = session.scalars(
                select(OrderRecord)
                .where(
                    OrderRecord.location_id == location_id,
                    OrderRecord.status == OrderRecordStatus.PENDING.value,
                )
                .order_by(OrderRecord.created_at.desc())
            ).first()
            if record is None:
                return None
            return payload_to_order(record.payload, backend_id=str(record.id))

    async def fetch_by_id(self, backend_id: str) -> Order:
        with self._transaction("fetch_by_id") as session:
            record = self._get_record(session, backend_id)
            return payload_to_order(record.payload, backend_id=str(record.id))

    async def delete(self, backend_id: str) -> bool:
        with self._transaction("delete") as session:
            record = session.get(OrderRecord, _parse_backend_id(backend_id))
            if record is None or not record.is_open:
                logger.warning("delete_refused", extra={"backend_id": backend_id})
                return False
            session.delete(record)
            logger.info("order_deleted", extra={"backend_id": backend_id})
            return True

    async def capture_payment(self, order: Order, payment: PaymentRequest) -> CaptureResult:
        if order.backend_id is None:
            raise BackendUnavailableError("capture_payment", "order has no backend id")

        summary = settle(order.totals.amount_due, payment.tenders)
        if not summary.is_settled:
            raise PaymentIncompleteError(
                order.local_id,
                str(summary.amount_due.amount),
                str(summary.remaining.amount),
            )

        with self._transaction("capture_payment") as session:
            record = self._get_record(session, order.backend_id)
            sale = SaleRecord(
                order_id=record.id,
                currency=order.currency.code,
                amount_due=summary.amount_due.amount,
                total_paid=summary.total_paid.amount,
                change=summary.change.amount,
                invoice_consecutive=payment.invoice_consecutive,
                resolution_id=payment.resolution_id,
                observation=payment.observation or None,
                manual_date=payment.manual_date,
                payments=payment_to_payload(
                    order,
                    payment.tenders,
                    summary,
                    invoice_consecutive=payment.invoice_consecutive,
                    resolution_id=payment.resolution_id,
                    observation=payment.observation,
                    manual_date=payment.manual_date,
                )["pagos"],
            )
            session.add(sale)
            session.flush()

            sale_id = str(sale.id)
            record.status = OrderRecordStatus.COMPLETED.value
            record.sale_id = sale_id
            record.payload = order_to_payload(_completed(order, sale_id))
            record.revision = record.revision + 1

            logger.info(
                "payment_captured",
                extra={
                    "backend_id": order.backend_id,
                    "sale_id": sale_id,
                    "total_paid": str(summary.total_paid.amount),
                    "change": str(summary.change.amount),
                },
            )
            return CaptureResult(sale_id=sale_id, backend_id=str(record.id))

    # ------------------------------------------------------------------
    # Validation settings
    # ------------------------------------------------------------------

    async def fetch_validation_config(self) -> ValidationConfig | None:
        with self._transaction("fetch_validation_config") as session:
            row = session.scalars(
                select(ValidationSettingsRecord).where(
                    ValidationSettingsRecord.terminal_id == self._terminal_id
                )
            ).first()
            if row is None:
                return None
            return _validation_from_row(row)

    def store_validation_config(self, config: ValidationConfig) -> None:
        """Create or replace this terminal's settings row (seeding and admin use)."""
        with self._transaction("store_validation_config") as session:
            row = session.scalars(
                select(ValidationSettingsRecord).where(
                    ValidationSettingsRecord.terminal_id == self._terminal_id
                )
            ).first()
            if row is None:
                row = ValidationSettingsRecord(terminal_id=self._terminal_id)
                session.add(row)

            client = config.default_client
            warehouse = config.default_warehouse
            row.prices_include_vat = config.prices_include_vat
            row.default_client_id = client.client_id if client else None
            row.default_client_name = client.name if client else None
            row.default_client_tax_id = client.tax_id if client else None
            row.default_warehouse_id = warehouse.warehouse_id if warehouse else None
            row.default_warehouse_name = warehouse.name if warehouse else None


def _completed(order: Order, sale_id: str) -> Order:
    return replace(order, status=OrderStatus.COMPLETED, sale_id=sale_id)


def _validation_from_row(row: ValidationSettingsRecord) -> ValidationConfig:
    client = None
    if row.default_client_id is not None:
        client = ClientRef(
            client_id=row.default_client_id,
            name=row.default_client_name or "",
            tax_id=row.default_client_tax_id,
        )
    warehouse = None
    if row.default_warehouse_id is not None:
        warehouse = WarehouseRef(
            warehouse_id=row.default_warehouse_id,
            name=row.default_warehouse_name or "",
        )
    return ValidationConfig(
        prices_include_vat=row.prices_include_vat,
        default_client=client,
        default_warehouse=warehouse,
    )
