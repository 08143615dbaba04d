"""
Module: pos_kernel.models.validation_settings
Responsibility: ORM persistence for per-terminal sale validation settings
    (VAT-inclusive pricing flag, default client and warehouse).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase


class ValidationSettingsRecord(TrackedBase):
    """One settings row per terminal."""

    __tablename__ = "pos_validation_settings"

    __table_args__ = (
        UniqueConstraint("terminal_id", name="uq_pos_validation_terminal"),
    )

    terminal_id: Mapped[str] = mapped_column(String(64), nullable=False)

    prices_include_vat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    default_client_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    default_client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_client_tax_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    default_warehouse_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    default_warehouse_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
