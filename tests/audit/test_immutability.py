"""
ORM-level immutability enforcement.

Posted journal entries, their lines, ledger entries, cached account
balances and closed fiscal years refuse changes at flush time, whatever
code path attempts them.

Each test finishes its BackOffice calls before touching the bare session:
on SQLite an open session transaction holds the write lock.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.models.account import Account
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.models.ledger import LedgerEntry

ENTRY_DATE = date(2026, 2, 1)


def _lines() -> list[LineSpec]:
    return [LineSpec.dr("1000", Decimal("75.00")), LineSpec.cr("3000", Decimal("75.00"))]


@pytest.fixture
def posted_entry(back_office, admin, seeded):
    return back_office.create_and_post_journal_entry(ENTRY_DATE, "Capital", _lines(), admin)


class TestPostedJournalEntry:
    def test_field_change_blocked(self, posted_entry, session):
        entry = session.get(JournalEntry, posted_entry.id)
        entry.description = "Rewritten history"
        with pytest.raises(ImmutabilityViolationError, match="description"):
            session.flush()

    def test_delete_blocked(self, posted_entry, session):
        entry = session.get(JournalEntry, posted_entry.id)
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_line_amount_change_blocked(self, posted_entry, session):
        line = session.execute(
            select(JournalLine).where(JournalLine.journal_entry_id == posted_entry.id)
        ).scalars().first()
        assert line.entry.is_posted
        line.debit = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_draft_entry_is_editable(self, back_office, admin, seeded, session):
        draft = back_office.create_journal_entry(ENTRY_DATE, "Capital", _lines(), admin)
        entry = session.get(JournalEntry, draft.id)
        entry.description = "Still a draft"
        session.flush()
        assert entry.description == "Still a draft"


class TestLedgerEntries:
    def test_update_blocked(self, posted_entry, session):
        row = session.execute(
            select(LedgerEntry).where(LedgerEntry.journal_entry_id == posted_entry.id)
        ).scalars().first()
        row.description = "edited"
        with pytest.raises(ImmutabilityViolationError, match="append-only"):
            session.flush()

    def test_delete_blocked(self, posted_entry, session):
        row = session.execute(
            select(LedgerEntry).where(LedgerEntry.journal_entry_id == posted_entry.id)
        ).scalars().first()
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAccountBalance:
    def test_direct_balance_write_blocked(self, posted_entry, session):
        account = session.execute(select(Account).where(Account.code == "1000")).scalar_one()
        account.current_balance = Decimal("1000000.00")
        with pytest.raises(ImmutabilityViolationError, match="ledger posting"):
            session.flush()

    def test_other_account_fields_editable(self, posted_entry, session):
        account = session.execute(select(Account).where(Account.code == "1000")).scalar_one()
        account.name = "Petty Cash"
        session.flush()
        assert account.current_balance == Decimal("75.00")


class TestClosedFiscalYear:
    def test_reopening_blocked(self, back_office, admin, fy2026, session):
        back_office.close_fiscal_year(fy2026.id, admin)

        year = session.get(FiscalYear, fy2026.id)
        year.is_locked = False
        with pytest.raises(ImmutabilityViolationError, match="is_locked"):
            session.flush()

    def test_open_year_can_be_locked(self, fy2026, session):
        year = session.get(FiscalYear, fy2026.id)
        year.is_locked = True
        session.flush()


class TestListenerRegistration:
    def test_unregistered_listeners_allow_writes(self, posted_entry, session):
        unregister_immutability_listeners()
        try:
            entry = session.get(JournalEntry, posted_entry.id)
            entry.description = "Allowed without listeners"
            session.flush()
        finally:
            register_immutability_listeners()

    def test_registration_is_idempotent(self, posted_entry, session):
        register_immutability_listeners()
        register_immutability_listeners()
        entry = session.get(JournalEntry, posted_entry.id)
        entry.reference = "X"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
