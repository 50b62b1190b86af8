"""
Module: ledger_kernel.models.party
Responsibility: Customer and vendor master data read by the posting core.
Architecture position: Kernel > Models.  May import from db/ only.

current_balance on both is the party's open amount: receivable for a
customer, payable for a vendor.  It moves in the same transaction as the
postings that change it.
"""

from decimal import Decimal

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import MinorUnits, ZERO


class Customer(TrackedBase):
    __tablename__ = "customers"

    __table_args__ = (UniqueConstraint("code", name="uq_customer_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    current_balance: Mapped[Decimal] = mapped_column(
        MinorUnits(), nullable=False, default=ZERO
    )


class Vendor(TrackedBase):
    __tablename__ = "vendors"

    __table_args__ = (UniqueConstraint("code", name="uq_vendor_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    current_balance: Mapped[Decimal] = mapped_column(
        MinorUnits(), nullable=False, default=ZERO
    )
