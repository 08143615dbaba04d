"""
Module: pos_services.gateway
Responsibility: The narrow contract through which the lifecycle manager
    persists and loads orders against the backend of record.
Architecture position: Services.  The only seam that performs backend I/O;
    every other component works on in-memory snapshots.

Contract:
    - All methods are coroutines; callers never block the event loop on them.
    - Failures surface as ReconciliationError subclasses.  A missing order is
      BackendOrderNotFoundError (fetch_by_id) or None (fetch_by_location).
    - Payloads crossing the seam are built by pos_services.wire, so numeric
      values travel as decimal strings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from pos_engines.tender import TenderEntry
from pos_kernel.domain.order import Order
from pos_kernel.domain.session import ValidationConfig


@dataclass(frozen=True)
class BackendRef:
    """Identifier the backend assigned to an order."""

    backend_id: str


@dataclass(frozen=True)
class PaymentRequest:
    """Payment capture input: tenders plus invoice metadata."""

    tenders: tuple[TenderEntry, ...]
    invoice_consecutive: str | None = None
    resolution_id: str | None = None
    observation: str = ""
    manual_date: datetime | None = None


@dataclass(frozen=True)
class CaptureResult:
    """
    Outcome of a payment capture.

    ``sale_id`` may be None when the backend accepted the call but did not
    link a sale; completing the order then fails with MissingSaleIdError.
    """

    sale_id: str | None
    backend_id: str


class ReconciliationGateway(ABC):
    """Backend of record for orders, sales and session validation settings."""

    @abstractmethod
    async def create_or_draft(self, order: Order) -> BackendRef:
        """
        Create the backend draft for ``order``.

        Idempotent on (location id, consecutive key): repeating the call for
        the same pair returns the existing draft's id.
        """

    @abstractmethod
    async def persist(self, order: Order) -> BackendRef:
        """Write the full snapshot, upserting by ``order.backend_id`` when set."""

    @abstractmethod
    async def fetch_by_location(self, location_id: str) -> Order | None:
        """Open order the backend holds for a location, if any."""

    @abstractmethod
    async def fetch_by_id(self, backend_id: str) -> Order:
        """
        Load an order by backend id.

        Raises:
            BackendOrderNotFoundError: No such order.
        """

    @abstractmethod
    async def delete(self, backend_id: str) -> bool:
        """Delete an open order. Returns False when the backend refused."""

    @abstractmethod
    async def capture_payment(self, order: Order, payment: PaymentRequest) -> CaptureResult:
        """Register the payment and close the backend order."""

    @abstractmethod
    async def fetch_validation_config(self) -> ValidationConfig | None:
        """Session validation settings, or None when none are stored."""
