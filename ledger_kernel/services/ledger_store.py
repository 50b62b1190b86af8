"""
LedgerStore -- append-only ledger writes and running account balances.

Responsibility:
    Turns the lines of a journal entry that is being posted into immutable
    ledger entries, each carrying the account's balance right after it, and
    moves Account.current_balance accordingly.  Also answers balance and
    account-ledger queries (delegating reads to LedgerSelector).

Architecture position:
    Kernel > Services.  Called only by JournalEntryEngine.post(); nothing
    else creates ledger entries or changes current_balance.

Invariants enforced:
    - new balance = previous balance + debit - credit, per line, in line
      order.
    - All ledger entries of one journal entry are written in the caller's
      transaction; a failure anywhere rolls all of them back together with
      the balance changes.
    - Accounts are row-locked in a fixed order (by id) before any write,
      so concurrent postings touching the same accounts cannot deadlock
      and cannot lose an update.
    - posting_seq comes from the "ledger_posting" counter row, giving one
      global, gap-free write order.
    - Balance is re-validated before writing; an unbalanced entry never
      reaches the ledger.

Failure modes:
    - UnbalancedEntryError: debits != credits.
    - AccountNotFoundError: a line references a missing account.
"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import BALANCE_WRITE_FLAG
from ledger_kernel.db.types import ZERO
from ledger_kernel.exceptions import AccountNotFoundError, UnbalancedEntryError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.selectors.ledger_selector import AccountLedger, LedgerSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_store")


class LedgerStore(BaseService[LedgerEntry]):
    """
    The only writer of ledger entries and account balances.

    Non-goals:
        - Does NOT change journal entry status (JournalEntryEngine does).
        - Does NOT commit.
    """

    def __init__(self, session: Session):
        super().__init__(session)
        self._sequences = SequenceService(session)
        self._selector = LedgerSelector(session)

    @contextmanager
    def _balance_write(self) -> Iterator[None]:
        self.session.info[BALANCE_WRITE_FLAG] = True
        try:
            yield
            self.session.flush()
        finally:
            self.session.info.pop(BALANCE_WRITE_FLAG, None)

    def _lock_accounts(self, account_ids: set[UUID]) -> dict[UUID, Account]:
        ordered = sorted(account_ids, key=str)
        rows = self.session.execute(
            select(Account)
            .where(Account.id.in_(ordered))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        accounts = {a.id: a for a in rows}
        for account_id in ordered:
            if account_id not in accounts:
                raise AccountNotFoundError(str(account_id))
        return accounts

    def append_entries(self, journal_entry: JournalEntry, actor_id: UUID) -> list[LedgerEntry]:
        """
        Write one ledger entry per journal line and update balances.

        Preconditions:
            - ``journal_entry`` has been moved to POSTED by the caller in
              this transaction.

        Postconditions:
            - One LedgerEntry per line, with balance snapshots.
            - Every touched account's current_balance equals the last
              snapshot written for it.

        Raises:
            UnbalancedEntryError: debits != credits.
            AccountNotFoundError: unknown account on a line.
        """
        lines = sorted(journal_entry.lines, key=lambda line: line.line_seq)
        debits = sum((line.debit for line in lines), ZERO)
        credits = sum((line.credit for line in lines), ZERO)
        if debits != credits:
            raise UnbalancedEntryError(debits, credits)

        accounts = self._lock_accounts({line.account_id for line in lines})
        reference = journal_entry.reference or journal_entry.entry_number

        written: list[LedgerEntry] = []
        with self._balance_write():
            for line in lines:
                account = accounts[line.account_id]
                new_balance = account.current_balance + line.debit - line.credit
                entry = LedgerEntry(
                    account_id=account.id,
                    journal_entry_id=journal_entry.id,
                    journal_line_id=line.id,
                    entry_date=journal_entry.entry_date,
                    description=line.description or journal_entry.description,
                    reference=reference,
                    debit=line.debit,
                    credit=line.credit,
                    balance=new_balance,
                    posting_seq=self._sequences.next_value(SequenceService.LEDGER_POSTING),
                    created_by_id=actor_id,
                )
                self.session.add(entry)
                account.current_balance = new_balance
                account.updated_by_id = actor_id
                written.append(entry)

        logger.info(
            "ledger_entries_appended",
            extra={
                "entry_number": journal_entry.entry_number,
                "line_count": len(written),
                "total": debits,
            },
        )
        return written

    def account_balance(self, account_id: UUID) -> Decimal:
        return self._selector.account_balance(account_id)

    def replay_balance(self, account_id: UUID) -> Decimal:
        return self._selector.replay_balance(account_id)

    def entries_for_account(
        self,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AccountLedger:
        return self._selector.entries_for_account(account_id, start_date, end_date)
