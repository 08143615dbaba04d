"""
Module: pos_kernel.models.sale_record
Responsibility: ORM persistence for captured payments.  One SaleRecord per
    completed order; its id is the sale identifier returned to terminals.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one sale per order (uq_pos_sale_order).
    - Amounts are Numeric(38, 9) via the base type map; tenders are stored
      as the wire document with decimal-string amounts.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase


class SaleRecord(TrackedBase):
    """Captured sale linked to its backend order."""

    __tablename__ = "pos_sales"

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_pos_sale_order"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("pos_orders.id"), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    amount_due: Mapped[Decimal]
    total_paid: Mapped[Decimal]
    change: Mapped[Decimal]

    invoice_consecutive: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolution_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    observation: Mapped[str | None] = mapped_column(String(500), nullable=True)
    manual_date: Mapped[datetime | None] = mapped_column(nullable=True)

    payments: Mapped[list] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<SaleRecord {self.id} order={self.order_id} paid={self.total_paid}>"
