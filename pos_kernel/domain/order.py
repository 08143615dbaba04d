"""
Order -- immutable order and order-line snapshots.

Responsibility:
    Defines OrderLine, OrderTotals and Order. All three are frozen; the
    lifecycle manager produces new snapshots with ``dataclasses.replace``
    and the UI only ever holds snapshots.

Invariants:
    - OrderLine monetary fields are produced by the tax engine only.
    - Order.totals always equals the aggregator's recomputation from
      Order.lines; no aggregate is edited on its own.
    - Sequence numbers are stable identifiers, not positions: removing a
      line never renumbers the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pos_kernel.domain.catalog import (
    ClientRef,
    LocationRef,
    Product,
    TaxProfile,
    WarehouseRef,
)
from pos_kernel.domain.values import Currency, Money


class OrderStatus(str, Enum):
    """Order lifecycle state. COMPLETED is terminal."""

    PENDING = "pending"
    COMPLETED = "completed"


@dataclass(frozen=True)
class OrderLine:
    """One product line in an order."""

    sequence: int
    product_id: str
    name: str
    quantity: Decimal
    unit_cost: Money
    discount_percent: Decimal
    discount_value: Money
    discount_amount: Money
    subtotal: Money
    vat_rate: Decimal
    vat_amount: Money
    withholding_rate: Decimal
    withholding_amount: Money
    total: Money
    note: str = ""

    @property
    def gross(self) -> Money:
        """quantity x unit_cost, before discount."""
        return self.unit_cost * self.quantity

    def product_view(self) -> Product:
        """Rebuild the pricing inputs this line was computed from."""
        return Product(
            product_id=self.product_id,
            code="",
            name=self.name,
            unit_price=self.unit_cost,
            tax_profile=TaxProfile(
                vat_rate=self.vat_rate,
                withholding_rate=self.withholding_rate,
            ),
        )


@dataclass(frozen=True)
class OrderTotals:
    """Order-level aggregates derived from the lines."""

    subtotal: Money
    discount_total: Money
    vat_total: Money
    withholding: Money
    total: Money
    vat_breakdown: dict[Decimal, Money] = field(default_factory=dict)

    @classmethod
    def zero(cls, currency: Currency | str) -> OrderTotals:
        zero = Money.zero(currency)
        return cls(
            subtotal=zero,
            discount_total=zero,
            vat_total=zero,
            withholding=zero,
            total=zero,
        )

    @property
    def amount_due(self) -> Money:
        """Amount to collect: withholding is retained by the buyer."""
        return self.total - self.withholding


@dataclass(frozen=True)
class Order:
    """
    Sale order snapshot.

    ``backend_id`` stays None until the first successful persist;
    ``sale_id`` is set only when payment capture completes the order.
    """

    local_id: str
    created_at: datetime
    currency: Currency
    location_name: str
    status: OrderStatus = OrderStatus.PENDING
    lines: tuple[OrderLine, ...] = ()
    totals: OrderTotals | None = None
    backend_id: str | None = None
    sale_id: str | None = None
    location: LocationRef | None = None
    client: ClientRef | None = None
    warehouse: WarehouseRef | None = None

    def __post_init__(self) -> None:
        if self.totals is None:
            object.__setattr__(self, "totals", OrderTotals.zero(self.currency))

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    @property
    def location_id(self) -> str | None:
        return self.location.location_id if self.location else None

    @property
    def next_sequence(self) -> int:
        return max((line.sequence for line in self.lines), default=0) + 1

    def line(self, sequence: int) -> OrderLine | None:
        for candidate in self.lines:
            if candidate.sequence == sequence:
                return candidate
        return None

    def line_for_product(self, product_id: str) -> OrderLine | None:
        for candidate in self.lines:
            if candidate.product_id == product_id:
                return candidate
        return None
