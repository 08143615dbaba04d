"""
Module: pos_kernel.models.order_record
Responsibility: ORM persistence for the backend's copy of a sale order.
    The record stores the versioned wire payload verbatim plus the columns
    the backend queries by (consecutive key, location, status).
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from domain/, engines, or services.

Invariants enforced:
    - (location_id, consecutive_key) identifies at most one open draft; the
      gateway looks this pair up before inserting, which makes draft
      creation idempotent.
    - payload always holds a complete order document; partial updates are
      not stored.

Failure modes:
    - IntegrityError on duplicate sale_id.
"""

from enum import Enum

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase


class OrderRecordStatus(str, Enum):
    """Backend order state, named as the backend names it."""

    PENDING = "pendiente"
    COMPLETED = "completado"


class OrderRecord(TrackedBase):
    """
    Backend order document.

    ``id`` is the backend id handed back to terminals.
    """

    __tablename__ = "pos_orders"

    __table_args__ = (
        UniqueConstraint("sale_id", name="uq_pos_order_sale"),
        Index("idx_pos_order_location_status", "location_id", "status"),
        Index("idx_pos_order_consecutive", "consecutive_key"),
    )

    # Terminal-generated local id of the order
    consecutive_key: Mapped[str] = mapped_column(String(64), nullable=False)

    location_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OrderRecordStatus.PENDING.value,
    )

    sale_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    schema_version: Mapped[int] = mapped_column(Integer, nullable=False)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Monotonic write counter; bumped on every persist
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @property
    def is_open(self) -> bool:
        return self.status == OrderRecordStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<OrderRecord {self.id} {self.consecutive_key} [{self.status}]>"
