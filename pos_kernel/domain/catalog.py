"""
Catalog -- read-only inputs and denormalized reference snapshots.

Products come from the catalog collaborator and are never mutated here.
Client, warehouse and location references are value copies taken at bind
time; consumers must re-bind to see upstream changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from pos_kernel.domain.values import Money


@dataclass(frozen=True)
class TaxProfile:
    """
    Tax settings attached to a product.

    Rates are percentages (19 means 19%). A withholding rate comes with the
    minimum order total ("base") above which it applies.
    """

    vat_rate: Decimal | None = None
    withholding_rate: Decimal | None = None
    withholding_base: Money | None = None


@dataclass(frozen=True)
class Product:
    """Catalog product as seen by the order ledger."""

    product_id: str
    code: str
    name: str
    unit_price: Money
    tax_profile: TaxProfile = TaxProfile()

    @property
    def display_name(self) -> str:
        """Line label, ``"<code> - <name>"``."""
        return f"{self.code} - {self.name}" if self.code else self.name


@dataclass(frozen=True)
class ClientRef:
    """Client snapshot embedded in an order."""

    client_id: str
    name: str
    tax_id: str | None = None


@dataclass(frozen=True)
class WarehouseRef:
    """Warehouse snapshot embedded in an order."""

    warehouse_id: str
    name: str
    consecutive_series: str | None = None


@dataclass(frozen=True)
class LocationRef:
    """Physical sale location (table, counter, bar seat) snapshot."""

    location_id: str
    code: str
    name: str
