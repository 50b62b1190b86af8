"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines, the
    balanced records from which the ledger is built.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - entry_number is unique (uq_journal_entry_number) and allocated from a
      locked counter row, never from MAX()+1.
    - A posted entry and its lines are immutable (ORM listeners in
      db/immutability.py).
    - Each line carries exactly one non-zero side; debits equal credits per
      entry.  Both are checked by JournalEntryEngine before anything is
      written.

Failure modes:
    - IntegrityError on duplicate entry_number.
    - ImmutabilityViolationError on UPDATE/DELETE of a posted entry or line.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MinorUnits, ZERO, enum_type

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Transitions are one-way: DRAFT -> POSTED.
    """

    DRAFT = "draft"
    POSTED = "posted"


class JournalSource(str, Enum):
    """Kind of document that produced a journal entry."""

    MANUAL = "manual"
    INVOICE = "invoice"
    BILL = "bill"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_MADE = "payment_made"
    YEAR_END_CLOSE = "year_end_close"


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    Contract:
        Created DRAFT, moved to POSTED exactly once by JournalEntryEngine.post().
        Once POSTED the row and its lines never change again.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("entry_number", name="uq_journal_entry_number"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_source", "source_type", "source_id"),
    )

    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[JournalEntryStatus] = mapped_column(
        enum_type(JournalEntryStatus),
        nullable=False,
        default=JournalEntryStatus.DRAFT,
    )

    source_type: Mapped[JournalSource] = mapped_column(
        enum_type(JournalSource, length=30),
        nullable=False,
        default=JournalSource.MANUAL,
    )

    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_seq",
        lazy="selectin",
    )

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} {self.status.value}>"


class JournalLine(TrackedBase):
    """
    One debit or credit line of a journal entry.

    Guarantees:
        - debit >= 0 and credit >= 0, exactly one of them non-zero.
        - line_seq orders lines within the entry.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    credit: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<JournalLine {self.line_seq} Dr {self.debit} Cr {self.credit}>"
