"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for payments received from customers and
    payments made to vendors.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - amount > 0 (checked by PaymentService before insert).
    - method is a closed enumeration; each member maps to exactly one cash
      or bank account through configuration.
    - journal_entry_id is the entry that first journaled the payment's cash.
      A payment tendered together with a new invoice has none until the
      invoice's revenue is recognized; every other payment gets one in the
      transaction that records it.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MinorUnits, enum_type


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK = "bank"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    ONLINE_PAYMENT = "online_payment"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    OTHER = "other"


class PaymentReceived(TrackedBase):
    __tablename__ = "payments_received"

    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payment_received_number"),
        Index("idx_payment_received_invoice", "invoice_id"),
        Index("idx_payment_received_customer", "customer_id"),
    )

    payment_number: Mapped[str] = mapped_column(String(30), nullable=False)

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id"), nullable=False
    )

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False)

    method: Mapped[PaymentMethod] = mapped_column(enum_type(PaymentMethod), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    tendered_at_issue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )


class PaymentMade(TrackedBase):
    __tablename__ = "payments_made"

    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payment_made_number"),
        Index("idx_payment_made_bill", "bill_id"),
        Index("idx_payment_made_vendor", "vendor_id"),
    )

    payment_number: Mapped[str] = mapped_column(String(30), nullable=False)

    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("vendors.id"), nullable=False
    )

    bill_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("bills.id"), nullable=True
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False)

    method: Mapped[PaymentMethod] = mapped_column(enum_type(PaymentMethod), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
