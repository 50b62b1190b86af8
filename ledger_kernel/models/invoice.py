"""
Module: ledger_kernel.models.invoice
Responsibility: ORM persistence for customer invoices and their items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - total = subtotal + tax_amount - discount.
    - balance_due = total - paid_amount, recomputed on every change.
    - journal_entry_id is the single revenue-recognition entry of the
      invoice; once set it never changes (revenue is recognized once).
    - version is the optimistic concurrency counter (SQLAlchemy
      version_id_col): a stale write raises StaleDataError at flush.
    - Items are editable only while status is DRAFT (InvoiceWorkflow).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MinorUnits, RateUnits, ZERO, enum_type


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    VERIFIED = "verified"
    APPROVED = "approved"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"


class Invoice(TrackedBase):
    """Customer invoice header."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoice_number"),
        Index("idx_invoice_customer", "customer_id"),
        Index("idx_invoice_status", "status"),
    )

    invoice_number: Mapped[str] = mapped_column(String(30), nullable=False)

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id"), nullable=False
    )

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    tax_amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    discount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    total: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    paid_amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    balance_due: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    status: Mapped[InvoiceStatus] = mapped_column(
        enum_type(InvoiceStatus),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )

    verified_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.line_no",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def revenue_recognized(self) -> bool:
        return self.journal_entry_id is not None

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.status.value} total={self.total}>"


class InvoiceItem(TrackedBase):
    __tablename__ = "invoice_items"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(RateUnits(), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False)

    tax_code_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("tax_codes.id"), nullable=True
    )

    # Rate in force when the item was last recalculated
    tax_rate: Mapped[Decimal] = mapped_column(RateUnits(), nullable=False, default=ZERO)

    tax_amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    line_total: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="items")
