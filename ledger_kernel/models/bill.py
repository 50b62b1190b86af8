"""
Module: ledger_kernel.models.bill
Responsibility: ORM persistence for vendor bills and their items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - total = subtotal + tax_amount.
    - balance_due = total - paid_amount.
    - journal_entry_id is the bill's posting entry, set once on
      VERIFIED -> POSTED.
    - version is the optimistic concurrency counter.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MinorUnits, RateUnits, ZERO, enum_type


class BillStatus(str, Enum):
    DRAFT = "draft"
    VERIFIED = "verified"
    POSTED = "posted"
    CANCELLED = "cancelled"


class Bill(TrackedBase):
    """Vendor bill header."""

    __tablename__ = "bills"

    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_bill_number"),
        Index("idx_bill_vendor", "vendor_id"),
        Index("idx_bill_status", "status"),
    )

    bill_number: Mapped[str] = mapped_column(String(30), nullable=False)

    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("vendors.id"), nullable=False
    )

    bill_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    tax_amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    total: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    paid_amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    balance_due: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    status: Mapped[BillStatus] = mapped_column(
        enum_type(BillStatus),
        nullable=False,
        default=BillStatus.DRAFT,
    )

    verified_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["BillItem"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.line_no",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Bill {self.bill_number} {self.status.value} total={self.total}>"


class BillItem(TrackedBase):
    __tablename__ = "bill_items"

    bill_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(RateUnits(), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False)

    tax_code_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("tax_codes.id"), nullable=True
    )

    tax_rate: Mapped[Decimal] = mapped_column(RateUnits(), nullable=False, default=ZERO)

    tax_amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    line_total: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False)

    bill: Mapped["Bill"] = relationship(back_populates="items")
