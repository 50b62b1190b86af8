"""
Journal entry validation, numbering and posting.

Covers:
- Line rules: at least two lines, one positive side per line, balance
- Gap-free "JE{year}{seq}" numbering that a rejected entry does not consume
- DRAFT -> POSTED with ledger entries and balance updates
- Edits and deletes allowed only while DRAFT
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    AlreadyPostedError,
    EntryLockedError,
    InsufficientLinesError,
    InvalidLineAmountError,
    JournalEntryNotFoundError,
    UnbalancedEntryError,
)
from ledger_kernel.models.journal import JournalEntryStatus, JournalSource
from ledger_kernel.services.journal_engine import validate_lines

ENTRY_DATE = date(2026, 1, 20)


def _owner_investment(amount: str = "100.00") -> list[LineSpec]:
    return [
        LineSpec.dr("1000", Decimal(amount), "Cash in"),
        LineSpec.cr("3000", Decimal(amount), "Owner investment"),
    ]


class TestValidateLines:
    """Pure line checks, no database."""

    def test_single_line_rejected(self):
        with pytest.raises(InsufficientLinesError) as exc_info:
            validate_lines([LineSpec.dr("1000", Decimal("10"))])
        assert exc_info.value.line_count == 1

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidLineAmountError, match="negative"):
            validate_lines([
                LineSpec("1000", debit=Decimal("-10")),
                LineSpec.cr("3000", Decimal("10")),
            ])

    def test_both_sides_on_one_line_rejected(self):
        with pytest.raises(InvalidLineAmountError) as exc_info:
            validate_lines([
                LineSpec("1000", debit=Decimal("10"), credit=Decimal("10")),
                LineSpec.cr("3000", Decimal("10")),
            ])
        assert exc_info.value.line_index == 0

    def test_zero_line_rejected(self):
        with pytest.raises(InvalidLineAmountError, match="non-zero"):
            validate_lines([
                LineSpec.dr("1000", Decimal("10")),
                LineSpec.cr("3000", Decimal("10")),
                LineSpec("5200"),
            ])

    def test_sub_cent_amount_rejected_before_balancing(self):
        with pytest.raises(InvalidLineAmountError, match="whole cents") as exc_info:
            validate_lines([
                LineSpec.dr("5200", Decimal("33.333")),
                LineSpec.dr("5200", Decimal("33.333")),
                LineSpec.dr("5200", Decimal("33.334")),
                LineSpec.cr("1000", Decimal("100")),
            ])
        assert exc_info.value.line_index == 0
        assert exc_info.value.debit == Decimal("33.333")

    def test_unbalanced_rejected_with_totals(self):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            validate_lines([LineSpec.dr("1000", Decimal("100")), LineSpec.cr("3000", Decimal("90"))])
        assert exc_info.value.debits == Decimal("100.00")
        assert exc_info.value.credits == Decimal("90.00")

    def test_balanced_returns_total(self):
        total = validate_lines([
            LineSpec.dr("5200", Decimal("60")),
            LineSpec.dr("5300", Decimal("40")),
            LineSpec.cr("1100", Decimal("100")),
        ])
        assert total == Decimal("100.00")


class TestCreateEntry:
    def test_draft_created_with_first_number(self, back_office, admin, seeded):
        entry = back_office.create_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)

        assert entry.entry_number == "JE2026000001"
        assert entry.status == JournalEntryStatus.DRAFT
        assert entry.source_type == JournalSource.MANUAL
        assert [line.line_seq for line in entry.lines] == [1, 2]
        assert entry.is_balanced

    def test_numbers_are_consecutive(self, back_office, admin, seeded):
        numbers = [
            back_office.create_journal_entry(ENTRY_DATE, f"Entry {i}", _owner_investment(), admin).entry_number
            for i in range(3)
        ]
        assert numbers == ["JE2026000001", "JE2026000002", "JE2026000003"]

    def test_lookup_by_number(self, back_office, admin, seeded):
        entry = back_office.create_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)
        assert back_office.get_journal_entry_by_number("JE2026000001").id == entry.id
        with pytest.raises(JournalEntryNotFoundError):
            back_office.get_journal_entry_by_number("JE2026999999")

    def test_numbering_restarts_per_year(self, back_office, admin, seeded):
        back_office.create_journal_entry(ENTRY_DATE, "2026", _owner_investment(), admin)
        entry = back_office.create_journal_entry(date(2027, 2, 1), "2027", _owner_investment(), admin)
        assert entry.entry_number == "JE2027000001"

    def test_unbalanced_entry_persists_nothing(self, back_office, admin, seeded):
        lines = [LineSpec.dr("1000", Decimal("100")), LineSpec.cr("3000", Decimal("90"))]
        with pytest.raises(UnbalancedEntryError):
            back_office.create_journal_entry(ENTRY_DATE, "Bad", lines, admin)

        # The rejected entry did not take a number.
        entry = back_office.create_journal_entry(ENTRY_DATE, "Good", _owner_investment(), admin)
        assert entry.entry_number == "JE2026000001"
        assert back_office.account_balance("1000") == Decimal("0")

    def test_sub_cent_entry_persists_nothing(self, back_office, admin, seeded):
        lines = [LineSpec.dr("5200", Decimal("10.005")), LineSpec.cr("1000", Decimal("10.005"))]
        with pytest.raises(InvalidLineAmountError, match="whole cents"):
            back_office.create_journal_entry(ENTRY_DATE, "Split expense", lines, admin)

        entry = back_office.create_journal_entry(ENTRY_DATE, "Good", _owner_investment(), admin)
        assert entry.entry_number == "JE2026000001"

    def test_unknown_account(self, back_office, admin, seeded):
        lines = [LineSpec.dr("9999", Decimal("10")), LineSpec.cr("3000", Decimal("10"))]
        with pytest.raises(AccountNotFoundError):
            back_office.create_journal_entry(ENTRY_DATE, "Bad", lines, admin)

    def test_inactive_account(self, back_office, admin, seeded):
        back_office.set_account_active("5200", False, admin)
        lines = [LineSpec.dr("5200", Decimal("10")), LineSpec.cr("1000", Decimal("10"))]
        with pytest.raises(AccountInactiveError):
            back_office.create_journal_entry(ENTRY_DATE, "Rent", lines, admin)

    def test_rejection_logged(self, back_office, admin, seeded, captured_logs):
        lines = [LineSpec.dr("1000", Decimal("100")), LineSpec.cr("3000", Decimal("90"))]
        with pytest.raises(UnbalancedEntryError):
            back_office.create_journal_entry(ENTRY_DATE, "Bad", lines, admin)

        rejected = [r for r in captured_logs() if r["message"] == "journal_entry_rejected"]
        assert rejected and rejected[0]["reason"] == "UNBALANCED_ENTRY"


class TestPostEntry:
    def test_post_moves_balances(self, back_office, admin, seeded):
        entry = back_office.create_journal_entry(ENTRY_DATE, "Capital", _owner_investment("2500.00"), admin)
        posted = back_office.post_journal_entry(entry.id, admin)

        assert posted.status == JournalEntryStatus.POSTED
        assert posted.posted_by_id == admin.actor_id
        assert posted.posted_at is not None
        assert back_office.account_balance("1000") == Decimal("2500.00")
        assert back_office.account_balance("3000") == Decimal("-2500.00")

    def test_ledger_rows_written_per_line(self, back_office, admin, seeded):
        back_office.create_and_post_journal_entry(
            ENTRY_DATE, "Rent and utilities",
            [
                LineSpec.dr("5200", Decimal("800")),
                LineSpec.dr("5300", Decimal("200")),
                LineSpec.cr("1100", Decimal("1000")),
            ],
            admin,
        )
        bank = back_office.account_ledger("1100")
        assert len(bank.lines) == 1
        assert bank.lines[0].credit == Decimal("1000.00")
        assert bank.lines[0].stored_balance == Decimal("-1000.00")
        assert bank.closing_balance == Decimal("-1000.00")

    def test_second_post_rejected(self, back_office, admin, seeded):
        entry = back_office.create_and_post_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)

        with pytest.raises(AlreadyPostedError) as exc_info:
            back_office.post_journal_entry(entry.id, admin)
        assert exc_info.value.entry_number == "JE2026000001"
        assert back_office.account_balance("1000") == Decimal("100.00")
        assert len(back_office.account_ledger("1000").lines) == 1

    def test_post_unknown_entry(self, back_office, admin, seeded):
        with pytest.raises(JournalEntryNotFoundError):
            back_office.post_journal_entry(uuid4(), admin)

    def test_cached_balance_matches_replay(self, back_office, admin, seeded):
        for amount in ("10.10", "20.20", "30.30"):
            back_office.create_and_post_journal_entry(ENTRY_DATE, "Capital", _owner_investment(amount), admin)
        assert back_office.account_balance("1000") == Decimal("60.60")
        assert back_office.replay_balance("1000") == Decimal("60.60")


class TestDraftEditing:
    def test_update_replaces_lines(self, back_office, admin, seeded):
        entry = back_office.create_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)
        updated = back_office.update_journal_entry(
            entry.id, admin,
            description="Capital, corrected",
            lines=_owner_investment("150.00"),
        )
        assert updated.description == "Capital, corrected"
        assert updated.total_debits == Decimal("150.00")
        assert len(updated.lines) == 2

    def test_update_revalidates_lines(self, back_office, admin, seeded):
        entry = back_office.create_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)
        with pytest.raises(UnbalancedEntryError):
            back_office.update_journal_entry(
                entry.id, admin,
                lines=[LineSpec.dr("1000", Decimal("5")), LineSpec.cr("3000", Decimal("4"))],
            )
        assert back_office.get_journal_entry(entry.id).total_debits == Decimal("100.00")

    def test_delete_draft(self, back_office, admin, seeded):
        entry = back_office.create_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)
        back_office.delete_journal_entry(entry.id, admin)
        with pytest.raises(JournalEntryNotFoundError):
            back_office.get_journal_entry(entry.id)

    def test_posted_entry_cannot_be_updated(self, back_office, admin, seeded):
        entry = back_office.create_and_post_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)
        with pytest.raises(EntryLockedError) as exc_info:
            back_office.update_journal_entry(entry.id, admin, description="changed")
        assert exc_info.value.status == "posted"

    def test_posted_entry_cannot_be_deleted(self, back_office, admin, seeded):
        entry = back_office.create_and_post_journal_entry(ENTRY_DATE, "Capital", _owner_investment(), admin)
        with pytest.raises(EntryLockedError):
            back_office.delete_journal_entry(entry.id, admin)
        assert back_office.get_journal_entry(entry.id).status == JournalEntryStatus.POSTED
