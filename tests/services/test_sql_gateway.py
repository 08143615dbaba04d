"""
Tests for SqlReconciliationGateway over an in-memory SQLite record store.

Covers:
- Idempotent drafts
- Persist: revisions, unknown ids, stale writes after capture
- Lookup by location and id
- Delete confirmation
- Payment capture and the sale record
- Validation settings
- A full manager session over the record store
- Claim and load over a malformed stored document
"""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from pos_engines.tender import TenderEntry
from pos_kernel.db.engine import get_session
from pos_kernel.domain.catalog import ClientRef, WarehouseRef
from pos_kernel.domain.order import Order, OrderStatus
from pos_kernel.domain.session import SessionConfig, ValidationConfig
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import (
    BackendOrderNotFoundError,
    MalformedPayloadError,
    PaymentIncompleteError,
)
from pos_kernel.models import OrderRecord, OrderRecordStatus, SaleRecord
from pos_services.gateway import PaymentRequest
from pos_services.order_lifecycle import OrderLifecycleManager


@pytest.fixture
def sql_manager(sql_gateway, clock, currency, notifications):
    """Factory: manager over the record store with exclusive pricing."""

    def _make():
        return OrderLifecycleManager(
            sql_gateway,
            SessionConfig(currency=currency, validation=ValidationConfig(prices_include_vat=False)),
            clock=clock,
            notifier=lambda order_id, exc: notifications.append((order_id, exc)),
        )

    return _make


@pytest.fixture
def bare_order(clock, currency, table):
    return Order(
        local_id="order-1",
        created_at=clock.now(),
        currency=currency,
        location_name=table.name,
        location=table,
    )


def _record(backend_id):
    session = get_session()
    try:
        return session.get(OrderRecord, UUID(backend_id))
    finally:
        session.close()


def _corrupt(backend_id, **fields):
    """Overwrite payload fields of a stored record, bypassing the gateway."""
    session = get_session()
    try:
        record = session.get(OrderRecord, UUID(backend_id))
        record.payload = {**record.payload, **fields}
        session.commit()
    finally:
        session.close()


def _pay(amount):
    return PaymentRequest(
        tenders=(TenderEntry("efectivo", Money.of(amount, "COP")),),
        invoice_consecutive="FE-10",
        resolution_id="18760000001",
        manual_date=datetime(2024, 1, 2, tzinfo=UTC),
    )


class TestDrafts:

    def test_create_is_idempotent(self, sql_gateway, bare_order):
        first = asyncio.run(sql_gateway.create_or_draft(bare_order))
        second = asyncio.run(sql_gateway.create_or_draft(bare_order))

        assert first.backend_id == second.backend_id

    def test_distinct_orders_get_distinct_ids(self, sql_gateway, bare_order):
        first = asyncio.run(sql_gateway.create_or_draft(bare_order))
        second = asyncio.run(sql_gateway.create_or_draft(replace(bare_order, local_id="order-2")))

        assert first.backend_id != second.backend_id

    def test_draft_stores_versioned_payload(self, sql_gateway, bare_order):
        ref = asyncio.run(sql_gateway.create_or_draft(bare_order))

        record = _record(ref.backend_id)
        assert record.status == OrderRecordStatus.PENDING.value
        assert record.schema_version == 1
        assert record.payload["id"] == "order-1"
        assert record.revision == 1


class TestPersist:

    def test_persist_bumps_revision(self, sql_gateway, bare_order):
        ref = asyncio.run(sql_gateway.create_or_draft(bare_order))
        moved = replace(bare_order, backend_id=ref.backend_id, location_name="Terraza")

        asyncio.run(sql_gateway.persist(moved))

        record = _record(ref.backend_id)
        assert record.revision == 2
        assert record.payload["ubicacion_nombre"] == "Terraza"

    def test_persist_without_backend_id_creates(self, sql_gateway, bare_order):
        ref = asyncio.run(sql_gateway.persist(bare_order))

        assert _record(ref.backend_id).consecutive_key == "order-1"

    def test_unknown_backend_id(self, sql_gateway, bare_order):
        with pytest.raises(BackendOrderNotFoundError):
            asyncio.run(sql_gateway.persist(replace(bare_order, backend_id=str(uuid4()))))

    def test_malformed_backend_id(self, sql_gateway):
        with pytest.raises(BackendOrderNotFoundError):
            asyncio.run(sql_gateway.fetch_by_id("not-a-uuid"))


class TestLookupAndDelete:

    def test_fetch_by_location(self, sql_gateway, bare_order):
        ref = asyncio.run(sql_gateway.create_or_draft(bare_order))

        found = asyncio.run(sql_gateway.fetch_by_location("4"))

        assert found.backend_id == ref.backend_id
        assert found.local_id == "order-1"
        assert asyncio.run(sql_gateway.fetch_by_location("99")) is None

    def test_fetch_by_id(self, sql_gateway, bare_order):
        ref = asyncio.run(sql_gateway.create_or_draft(bare_order))

        found = asyncio.run(sql_gateway.fetch_by_id(ref.backend_id))

        assert found.location_id == "4"
        assert found.status == OrderStatus.PENDING

    def test_delete(self, sql_gateway, bare_order):
        ref = asyncio.run(sql_gateway.create_or_draft(bare_order))

        assert asyncio.run(sql_gateway.delete(ref.backend_id)) is True
        assert asyncio.run(sql_gateway.fetch_by_location("4")) is None
        assert asyncio.run(sql_gateway.delete(ref.backend_id)) is False


class TestCapture:

    def _taxed_order(self, sql_manager, catalog, table):
        async def build():
            manager = sql_manager()
            order = await manager.claim_location(table)
            manager.add_line(order, catalog["taxed"])
            await manager.drain()
            return manager, manager.get(order.local_id)

        return asyncio.run(build())

    def test_capture_records_sale(self, sql_gateway, sql_manager, catalog, table):
        _, order = self._taxed_order(sql_manager, catalog, table)

        result = asyncio.run(sql_gateway.capture_payment(order, _pay("120000")))

        session = get_session()
        try:
            sale = session.scalars(select(SaleRecord)).one()
            assert str(sale.id) == result.sale_id
            assert sale.amount_due == Decimal("119000")
            assert sale.change == Decimal("1000")
            assert sale.invoice_consecutive == "FE-10"
            assert sale.payments == [{"id": "efectivo", "valor": "120000"}]
        finally:
            session.close()

        record = _record(order.backend_id)
        assert record.status == OrderRecordStatus.COMPLETED.value
        assert record.sale_id == result.sale_id
        assert record.payload["estado"] == "completado"

    def test_underpayment_rejected(self, sql_gateway, sql_manager, catalog, table):
        _, order = self._taxed_order(sql_manager, catalog, table)

        with pytest.raises(PaymentIncompleteError):
            asyncio.run(sql_gateway.capture_payment(order, _pay("1000")))

        assert _record(order.backend_id).status == OrderRecordStatus.PENDING.value

    def test_stale_persist_after_capture_ignored(self, sql_gateway, sql_manager, catalog, table):
        _, order = self._taxed_order(sql_manager, catalog, table)
        asyncio.run(sql_gateway.capture_payment(order, _pay("119000")))
        revision = _record(order.backend_id).revision

        asyncio.run(sql_gateway.persist(order))

        record = _record(order.backend_id)
        assert record.revision == revision
        assert record.payload["estado"] == "completado"

    def test_completed_order_cannot_be_deleted(self, sql_gateway, sql_manager, catalog, table):
        _, order = self._taxed_order(sql_manager, catalog, table)
        asyncio.run(sql_gateway.capture_payment(order, _pay("119000")))

        assert asyncio.run(sql_gateway.delete(order.backend_id)) is False


class TestValidationSettings:

    def test_none_until_stored(self, sql_gateway):
        assert asyncio.run(sql_gateway.fetch_validation_config()) is None

    def test_store_and_fetch(self, sql_gateway):
        config = ValidationConfig(
            prices_include_vat=True,
            default_client=ClientRef(client_id="2", name="Consumidor final", tax_id="222222222222"),
            default_warehouse=WarehouseRef(warehouse_id="1", name="Principal"),
        )

        sql_gateway.store_validation_config(config)
        sql_gateway.store_validation_config(config)

        assert asyncio.run(sql_gateway.fetch_validation_config()) == config


class TestManagerSession:
    """The lifecycle manager end to end over the record store."""

    def test_second_terminal_claims_same_order(self, sql_manager, catalog, table):
        async def scenario():
            first = sql_manager()
            order = await first.claim_location(table)
            first.add_line(order, catalog["taxed"])
            first.add_line(order, catalog["reduced"], Decimal("2"))
            await first.drain()

            second = sql_manager()
            claimed = await second.claim_location(table)
            return first.get(order.local_id), claimed

        held, claimed = asyncio.run(scenario())

        assert claimed.backend_id == held.backend_id
        assert claimed.lines == held.lines
        assert claimed.totals == held.totals

    def test_pay_and_complete(self, sql_manager, catalog, table, notifications):
        async def scenario():
            manager = sql_manager()
            order = await manager.claim_location(table)
            order = manager.add_line(order, catalog["service"])
            completed = await manager.capture_payment(order, _pay("487500"))
            return manager, completed

        manager, completed = asyncio.run(scenario())

        assert completed.status == OrderStatus.COMPLETED
        assert completed.sale_id is not None
        assert manager.occupied_locations() == frozenset()
        assert notifications == []

    def test_delete_pending_order(self, sql_manager, sql_gateway, table):
        async def scenario():
            manager = sql_manager()
            order = await manager.claim_location(table)
            deleted = await manager.delete_order(order)
            return deleted, await sql_gateway.fetch_by_location("4")

        deleted, remote = asyncio.run(scenario())

        assert deleted is True
        assert remote is None

    def test_claim_falls_back_on_malformed_record(
        self, sql_manager, sql_gateway, bare_order, table, notifications
    ):
        ref = asyncio.run(sql_gateway.create_or_draft(bare_order))
        _corrupt(ref.backend_id, estado="abierta")

        async def scenario():
            manager = sql_manager()
            claimed = await manager.claim_location(table)
            await manager.drain()
            return manager, claimed

        manager, claimed = asyncio.run(scenario())

        assert claimed.local_id != bare_order.local_id
        assert claimed.location_id == "4"
        assert manager.get(claimed.local_id).backend_id not in (None, ref.backend_id)
        assert [(key, type(exc)) for key, exc in notifications] == [("4", MalformedPayloadError)]

    def test_load_malformed_record_raises(self, sql_manager, sql_gateway, bare_order):
        ref = asyncio.run(sql_gateway.create_or_draft(bare_order))
        _corrupt(ref.backend_id, moneda=None)

        with pytest.raises(MalformedPayloadError):
            asyncio.run(sql_manager().load_order(ref.backend_id))
