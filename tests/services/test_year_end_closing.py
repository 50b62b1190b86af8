"""Year-end close: revenue and expense into retained earnings, then lock."""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    FiscalYearAlreadyClosedError,
    LockedFiscalYearError,
    PermissionDeniedError,
)
from ledger_kernel.models.journal import JournalEntryStatus, JournalSource

YEAR_START = date(2026, 1, 1)
YEAR_END = date(2026, 12, 31)


def entry_lines(back_office, entry_id) -> dict[str, tuple[Decimal, Decimal]]:
    entry = back_office.get_journal_entry(entry_id)
    return {line.account.code: (line.debit, line.credit) for line in entry.lines}


class TestCloseProfitableYear:
    @pytest.fixture
    def closed_year(self, back_office, admin, approved_invoice, posted_bill, fy2026):
        return back_office.close_fiscal_year(fy2026.id, admin)

    def test_closing_entry_zeroes_income_accounts(self, back_office, closed_year):
        assert closed_year.closing_entry_id is not None
        entry = back_office.get_journal_entry(closed_year.closing_entry_id)

        assert entry.status == JournalEntryStatus.POSTED
        assert entry.source_type == JournalSource.YEAR_END_CLOSE
        assert entry.entry_date == YEAR_END
        assert entry.is_balanced
        assert entry_lines(back_office, entry.id) == {
            "4000": (Decimal("1000.00"), Decimal("0")),
            "5000": (Decimal("0"), Decimal("400.00")),
            "3100": (Decimal("0"), Decimal("600.00")),
        }
        assert back_office.account_balance("4000") == Decimal("0")
        assert back_office.account_balance("5000") == Decimal("0")
        assert back_office.account_balance("3100") == Decimal("-600.00")

    def test_year_closed_and_locked(self, closed_year):
        assert closed_year.is_closed
        assert closed_year.is_locked

    def test_no_posting_after_close(self, back_office, admin, closed_year):
        with pytest.raises(LockedFiscalYearError):
            back_office.create_and_post_journal_entry(
                date(2026, 6, 1), "Late adjustment",
                [LineSpec.dr("5200", Decimal("10")), LineSpec.cr("1000", Decimal("10"))],
                admin,
            )

    def test_profit_and_loss_still_reports_activity(self, back_office, closed_year):
        report = back_office.profit_and_loss(YEAR_START, YEAR_END)
        assert report.total_revenue == Decimal("1000.00")
        assert report.total_expenses == Decimal("400.00")
        assert report.net_profit == Decimal("600.00")

    def test_balance_sheet_moves_earnings_to_retained(self, back_office, closed_year):
        report = back_office.balance_sheet(YEAR_END)
        equity = {line.account_code: line.amount for line in report.equity.lines}

        assert report.current_earnings == Decimal("0")
        assert equity == {"3100": Decimal("600.00")}
        assert report.is_balanced

    def test_trial_balance_still_balanced(self, back_office, closed_year):
        assert back_office.trial_balance().is_balanced

    def test_second_close_refused(self, back_office, admin, closed_year):
        with pytest.raises(FiscalYearAlreadyClosedError):
            back_office.close_fiscal_year(closed_year.id, admin)

    def test_close_is_audited(self, audit_sink, closed_year):
        assert "fiscal_year_closed" in audit_sink.actions()

    def test_closing_entry_traces_to_year(self, back_office, closed_year):
        entries = back_office.journal_entries_for_source(JournalSource.YEAR_END_CLOSE, closed_year.id)
        assert [entry.id for entry in entries] == [closed_year.closing_entry_id]
        assert entries[0].reference == "CLOSE-FY 2026"


class TestCloseOtherYears:
    def test_loss_debits_retained_earnings(self, back_office, admin, posted_bill, fy2026):
        closed = back_office.close_fiscal_year(fy2026.id, admin)
        assert entry_lines(back_office, closed.closing_entry_id) == {
            "5000": (Decimal("0"), Decimal("400.00")),
            "3100": (Decimal("400.00"), Decimal("0")),
        }
        assert back_office.account_balance("3100") == Decimal("400.00")

    def test_year_without_activity(self, back_office, admin, fy2026):
        closed = back_office.close_fiscal_year(fy2026.id, admin)
        assert closed.is_closed
        assert closed.closing_entry_id is None

    def test_balance_sheet_activity_is_not_closed(self, back_office, admin, fy2026):
        back_office.create_and_post_journal_entry(
            date(2026, 3, 1), "Owner investment",
            [LineSpec.dr("1000", Decimal("250")), LineSpec.cr("3000", Decimal("250"))],
            admin,
        )
        closed = back_office.close_fiscal_year(fy2026.id, admin)
        assert closed.closing_entry_id is None
        assert back_office.account_balance("1000") == Decimal("250.00")

    def test_manager_cannot_close(self, back_office, manager, approved_invoice, fy2026):
        with pytest.raises(PermissionDeniedError):
            back_office.close_fiscal_year(fy2026.id, manager)
        year = back_office.get_fiscal_year("FY 2026")
        assert not year.is_closed
        assert not year.is_locked
        assert back_office.account_balance("4000") == Decimal("-1000.00")

    def test_next_year_stays_open(self, back_office, admin, approved_invoice, fy2026):
        back_office.seed_defaults(admin, year=2027)
        back_office.close_fiscal_year(fy2026.id, admin)

        entry = back_office.create_and_post_journal_entry(
            date(2027, 1, 5), "Rent",
            [LineSpec.dr("5200", Decimal("300")), LineSpec.cr("1100", Decimal("300"))],
            admin,
        )
        assert entry.entry_number == "JE2027000001"
        report = back_office.profit_and_loss(date(2027, 1, 1), date(2027, 12, 31))
        assert report.total_expenses == Decimal("300.00")
        assert report.total_revenue == Decimal("0")
