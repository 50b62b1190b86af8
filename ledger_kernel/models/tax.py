"""
Module: ledger_kernel.models.tax
Responsibility: Tax codes and their dated rates.
Architecture position: Kernel > Models.  May import from db/ only.

A TaxCode owns any number of TaxRate rows.  The applicable rate on a given
day is the one with the latest effective_from not after that day whose
effective_to is empty or not before it (TaxRateSelector.rate_on).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import RateUnits


class TaxCode(TrackedBase):
    __tablename__ = "tax_codes"

    __table_args__ = (UniqueConstraint("code", name="uq_tax_code"),)

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    rates: Mapped[list["TaxRate"]] = relationship(
        back_populates="tax_code",
        cascade="all, delete-orphan",
        order_by="TaxRate.effective_from",
        lazy="selectin",
    )


class TaxRate(TrackedBase):
    """Percentage rate (e.g. 15.0000 for 15%) valid over a date range."""

    __tablename__ = "tax_rates"

    __table_args__ = (
        Index("idx_tax_rate_effective", "tax_code_id", "effective_from"),
    )

    tax_code_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tax_codes.id", ondelete="CASCADE"),
        nullable=False,
    )

    rate: Mapped[Decimal] = mapped_column(RateUnits(), nullable=False)

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)

    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    tax_code: Mapped["TaxCode"] = relationship(back_populates="rates")
