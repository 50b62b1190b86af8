"""
Module: ledger_kernel.models.ledger
Responsibility: ORM persistence for ledger entries, the append-only
    per-account record of posted movements.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: rows are never updated or deleted (db/immutability.py).
    - balance is the account's running balance immediately after this row,
      in posting order (posting_seq).
    - posting_seq is unique and strictly increasing across the whole ledger;
      it is allocated from the "ledger_posting" counter row.

Audit relevance:
    Replaying debit - credit over an account's rows in posting_seq order
    reproduces Account.current_balance exactly.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MinorUnits, ZERO


class LedgerEntry(TrackedBase):
    """One immutable ledger movement produced from one posted journal line."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("posting_seq", name="uq_ledger_posting_seq"),
        UniqueConstraint("journal_line_id", name="uq_ledger_journal_line"),
        Index("idx_ledger_account_date", "account_id", "entry_date", "posting_seq"),
        Index("idx_ledger_entry", "journal_entry_id"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    journal_line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_lines.id"),
        nullable=False,
    )

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    reference: Mapped[str] = mapped_column(String(100), nullable=False)

    debit: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    credit: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False, default=ZERO)

    balance: Mapped[Decimal] = mapped_column(MinorUnits(), nullable=False)

    posting_seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry #{self.posting_seq} Dr {self.debit} Cr {self.credit} "
            f"bal {self.balance}>"
        )
