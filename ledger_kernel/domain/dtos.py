"""
Data transfer objects for the ledger kernel (``ledger_kernel.domain.dtos``).

Frozen dataclasses passed into the journal engine and returned by
selectors.  No ORM instances cross these boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO, to_decimal


@dataclass(frozen=True)
class LineSpec:
    """One requested journal line, addressed by account code.

    Amounts are converted to Decimal as given; the journal engine
    rejects any amount finer than a cent.
    """

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit", to_decimal(self.debit))
        object.__setattr__(self, "credit", to_decimal(self.credit))

    @classmethod
    def dr(cls, account_code: str, amount: Decimal, description: str | None = None) -> LineSpec:
        return cls(account_code, debit=amount, description=description)

    @classmethod
    def cr(cls, account_code: str, amount: Decimal, description: str | None = None) -> LineSpec:
        return cls(account_code, credit=amount, description=description)


@dataclass(frozen=True)
class LedgerLineView:
    """A ledger entry with a display running balance."""

    ledger_entry_id: UUID
    journal_entry_id: UUID
    entry_date: date
    description: str
    reference: str
    debit: Decimal
    credit: Decimal
    stored_balance: Decimal
    running_balance: Decimal
    posting_seq: int
