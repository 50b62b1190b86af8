"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: cached and replayed account
    balances, per-account ledger listings with running balances, and
    aggregated movements by account for reporting and year-end closing.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - replay_balance() is computed from ledger entries only and must equal
      Account.current_balance; tests and the reconciliation check compare
      the two.
    - Ordering of ledger listings is entry_date, then posting_seq (the
      global insertion order), so entries posted on the same day list in
      the order they were written.

Failure modes:
    - AccountNotFoundError when the account id does not exist.
    - Empty results (zero sums) when nothing has been posted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import LedgerLineView
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.journal import JournalEntry, JournalSource
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountMovement:
    """Summed ledger activity of one account over a query window."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net(self) -> Decimal:
        """Debit minus credit."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class AccountLedger:
    """Ledger listing of one account with opening and closing balances."""

    account_id: UUID
    account_code: str
    account_name: str
    start_date: date | None
    end_date: date | None
    opening_balance: Decimal
    lines: tuple[LedgerLineView, ...]

    @property
    def closing_balance(self) -> Decimal:
        return self.lines[-1].running_balance if self.lines else self.opening_balance


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Read-only access to ledger entries and balances.

    Guarantees:
        - All sums are exact Decimal values (integer cents in SQL).
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def account_balance(self, account_id: UUID) -> Decimal:
        """Cached running balance (Account.current_balance)."""
        return self._account(account_id).current_balance

    def replay_balance(self, account_id: UUID, as_of_date: date | None = None) -> Decimal:
        """Sum of debit - credit over the account's ledger entries."""
        query = select(
            func.sum(LedgerEntry.debit),
            func.sum(LedgerEntry.credit),
        ).where(LedgerEntry.account_id == account_id)
        if as_of_date is not None:
            query = query.where(LedgerEntry.entry_date <= as_of_date)
        debit_total, credit_total = self.session.execute(query).one()
        return (debit_total or ZERO) - (credit_total or ZERO)

    def last_snapshot_balance(self, account_id: UUID) -> Decimal:
        """Balance column of the most recently written ledger entry."""
        balance = self.session.execute(
            select(LedgerEntry.balance)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.posting_seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return balance if balance is not None else ZERO

    def entries_for_account(
        self,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AccountLedger:
        """
        Ledger entries of one account, oldest first, with running balance.

        The running balance starts from the account's balance before
        ``start_date`` (zero when no start date is given) and adds
        debit - credit row by row.
        """
        account = self._account(account_id)

        opening = ZERO
        if start_date is not None:
            debit_total, credit_total = self.session.execute(
                select(func.sum(LedgerEntry.debit), func.sum(LedgerEntry.credit))
                .where(LedgerEntry.account_id == account_id)
                .where(LedgerEntry.entry_date < start_date)
            ).one()
            opening = (debit_total or ZERO) - (credit_total or ZERO)

        query = (
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.entry_date, LedgerEntry.posting_seq)
        )
        if start_date is not None:
            query = query.where(LedgerEntry.entry_date >= start_date)
        if end_date is not None:
            query = query.where(LedgerEntry.entry_date <= end_date)

        running = opening
        lines: list[LedgerLineView] = []
        for row in self.session.execute(query).scalars():
            running = running + row.debit - row.credit
            lines.append(
                LedgerLineView(
                    ledger_entry_id=row.id,
                    journal_entry_id=row.journal_entry_id,
                    entry_date=row.entry_date,
                    description=row.description,
                    reference=row.reference,
                    debit=row.debit,
                    credit=row.credit,
                    stored_balance=row.balance,
                    running_balance=running,
                    posting_seq=row.posting_seq,
                )
            )

        return AccountLedger(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening,
            lines=tuple(lines),
        )

    def movements(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        account_types: tuple[AccountType, ...] | None = None,
        exclude_sources: tuple[JournalSource, ...] = (),
    ) -> list[AccountMovement]:
        """
        Debit and credit totals per account over a date window.

        Only accounts with at least one ledger entry in the window appear.
        Ordered by account code.  ``exclude_sources`` drops entries whose
        journal entry came from those sources (e.g. year-end closing for a
        profit and loss view).
        """
        query = (
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                func.sum(LedgerEntry.debit).label("debit_total"),
                func.sum(LedgerEntry.credit).label("credit_total"),
            )
            .join(LedgerEntry, LedgerEntry.account_id == Account.id)
            .group_by(Account.id, Account.code, Account.name, Account.account_type)
            .order_by(Account.code)
        )
        if start_date is not None:
            query = query.where(LedgerEntry.entry_date >= start_date)
        if end_date is not None:
            query = query.where(LedgerEntry.entry_date <= end_date)
        if account_types:
            query = query.where(Account.account_type.in_(account_types))
        if exclude_sources:
            query = query.join(JournalEntry, JournalEntry.id == LedgerEntry.journal_entry_id).where(
                JournalEntry.source_type.not_in(exclude_sources)
            )

        return [
            AccountMovement(
                account_id=row.id,
                account_code=row.code,
                account_name=row.name,
                account_type=row.account_type,
                debit_total=row.debit_total or ZERO,
                credit_total=row.credit_total or ZERO,
            )
            for row in self.session.execute(query).all()
        ]

    def total_debits_credits(self) -> tuple[Decimal, Decimal]:
        """Whole-ledger totals; equal whenever every posted entry balanced."""
        debit_total, credit_total = self.session.execute(
            select(func.sum(LedgerEntry.debit), func.sum(LedgerEntry.credit))
        ).one()
        return debit_total or ZERO, credit_total or ZERO
