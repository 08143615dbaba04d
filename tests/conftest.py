"""
Shared fixtures for the POS order-ledger test suite.

ScriptedGateway is an in-memory ReconciliationGateway whose failures and
pauses are set per test:

    gateway.fail.add("delete")        # next delete raises BackendUnavailableError
    gateway.gate = asyncio.Event()    # every call waits until gate.set()
"""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from pos_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from pos_kernel.domain.catalog import LocationRef, Product, TaxProfile
from pos_kernel.domain.clock import DeterministicClock
from pos_kernel.domain.session import SessionConfig, ValidationConfig
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import BackendOrderNotFoundError, BackendUnavailableError
from pos_kernel.logging_config import LogContext, reset_logging
from pos_services.gateway import BackendRef, CaptureResult, ReconciliationGateway
from pos_services.order_lifecycle import OrderLifecycleManager
from pos_services.sql_gateway import SqlReconciliationGateway


class ScriptedGateway(ReconciliationGateway):
    """In-memory backend with injectable failures."""

    def __init__(self):
        self.calls: list[str] = []
        self.fail: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.snapshots: dict[str, object] = {}
        self.drafts: dict[tuple, str] = {}
        self.remote_by_location: dict[str, object] = {}
        self.delete_result = True
        self.sale_id: str | None = "sale-1"
        self.validation: ValidationConfig | None = None
        self.captured: list[tuple] = []
        self._next_id = 0

    async def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if self.gate is not None:
            await self.gate.wait()
        if operation in self.fail:
            raise BackendUnavailableError(operation, "injected failure")

    async def create_or_draft(self, order):
        await self._call("create_or_draft")
        key = (order.location_id, order.local_id)
        if key not in self.drafts:
            self._next_id += 1
            self.drafts[key] = f"b-{self._next_id}"
        backend_id = self.drafts[key]
        self.snapshots[backend_id] = replace(order, backend_id=backend_id)
        return BackendRef(backend_id=backend_id)

    async def persist(self, order):
        await self._call("persist")
        if order.backend_id not in self.snapshots:
            raise BackendOrderNotFoundError(order.backend_id)
        self.snapshots[order.backend_id] = order
        return BackendRef(backend_id=order.backend_id)

    async def fetch_by_location(self, location_id):
        await self._call("fetch_by_location")
        return self.remote_by_location.get(location_id)

    async def fetch_by_id(self, backend_id):
        await self._call("fetch_by_id")
        if backend_id not in self.snapshots:
            raise BackendOrderNotFoundError(backend_id)
        return self.snapshots[backend_id]

    async def delete(self, backend_id):
        await self._call("delete")
        if self.delete_result:
            self.snapshots.pop(backend_id, None)
        return self.delete_result

    async def capture_payment(self, order, payment):
        await self._call("capture_payment")
        self.captured.append((order, payment))
        return CaptureResult(sale_id=self.sale_id, backend_id=order.backend_id)

    async def fetch_validation_config(self):
        await self._call("fetch_validation_config")
        return self.validation


@pytest.fixture(autouse=True)
def _clean_log_context():
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def currency():
    return Currency("COP")


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2024, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def make_manager(gateway, clock, currency, notifications):
    """Factory: OrderLifecycleManager over the scripted gateway."""

    def _make(prices_include_vat=False, **validation):
        session = SessionConfig(
            currency=currency,
            validation=ValidationConfig(prices_include_vat=prices_include_vat, **validation),
        )
        return OrderLifecycleManager(
            gateway,
            session,
            clock=clock,
            notifier=lambda order_id, exc: notifications.append((order_id, exc)),
        )

    return _make


@pytest.fixture
def catalog():
    """Products priced in COP."""
    return {
        "taxed": Product(
            product_id="p-19", code="A1", name="Taxed item",
            unit_price=Money.of("100000", "COP"),
            tax_profile=TaxProfile(vat_rate=Decimal("19")),
        ),
        "reduced": Product(
            product_id="p-5", code="B1", name="Reduced item",
            unit_price=Money.of("10000", "COP"),
            tax_profile=TaxProfile(vat_rate=Decimal("5")),
        ),
        "exempt": Product(
            product_id="p-0", code="C1", name="Exempt item",
            unit_price=Money.of("5000", "COP"),
        ),
        "service": Product(
            product_id="p-svc", code="S1", name="Service",
            unit_price=Money.of("500000", "COP"),
            tax_profile=TaxProfile(
                withholding_rate=Decimal("2.5"),
                withholding_base=Money.of("300000", "COP"),
            ),
        ),
    }


@pytest.fixture
def table():
    return LocationRef(location_id="4", code="M4", name="Mesa 4")


@pytest.fixture
def sql_gateway():
    """SqlReconciliationGateway over a fresh in-memory SQLite store."""
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield SqlReconciliationGateway(get_session_factory(), terminal_id="caja-01")
    reset_engine()
