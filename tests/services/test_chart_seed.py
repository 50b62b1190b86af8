"""Default chart of accounts, fiscal year and VAT seeding."""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.exceptions import AccountNotFoundError, DuplicateCodeError, InvalidAccountParentError
from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_services import DEFAULT_CHART


class TestSeedDefaults:
    def test_first_run_creates_everything(self, seeded):
        assert seeded.accounts_created == tuple(code for code, _, _ in DEFAULT_CHART)
        assert seeded.fiscal_year_created == "FY 2026"
        assert seeded.tax_code_created == "VAT"

    def test_second_run_is_a_no_op(self, back_office, admin, seeded):
        again = back_office.seed_defaults(admin, year=2026)
        assert again.accounts_created == ()
        assert again.fiscal_year_created is None
        assert again.tax_code_created is None

    def test_year_defaults_to_clock(self, back_office, admin):
        result = back_office.seed_defaults(admin)
        assert result.fiscal_year_created == "FY 2026"
        year = back_office.get_fiscal_year("FY 2026")
        assert (year.start_date, year.end_date) == (date(2026, 1, 1), date(2026, 12, 31))

    def test_later_year_adds_only_the_year(self, back_office, admin, seeded):
        result = back_office.seed_defaults(admin, year=2027)
        assert result.accounts_created == ()
        assert result.fiscal_year_created == "FY 2027"
        assert result.tax_code_created is None

    @pytest.mark.parametrize(
        "code, account_type, normal",
        [
            ("1200", AccountType.ASSET, NormalBalance.DEBIT),
            ("2100", AccountType.LIABILITY, NormalBalance.CREDIT),
            ("3100", AccountType.EQUITY, NormalBalance.CREDIT),
            ("4300", AccountType.REVENUE, NormalBalance.CREDIT),
            ("5500", AccountType.EXPENSE, NormalBalance.DEBIT),
        ],
    )
    def test_normal_balance_follows_type(self, back_office, seeded, code, account_type, normal):
        account = back_office.get_account(code)
        assert account.account_type == account_type
        assert account.normal_balance == normal
        assert account.current_balance == Decimal("0")
        assert account.is_active


class TestAccountMaintenance:
    def test_create_child_account(self, back_office, admin, seeded):
        account = back_office.create_account("1010", "Petty Cash", AccountType.ASSET, admin, parent_code="1000")
        assert account.parent_id == back_office.get_account("1000").id

    def test_duplicate_code(self, back_office, admin, seeded):
        with pytest.raises(DuplicateCodeError):
            back_office.create_account("1000", "Cash again", "asset", admin)

    def test_unknown_parent(self, back_office, admin, seeded):
        with pytest.raises(AccountNotFoundError):
            back_office.create_account("1010", "Petty Cash", "asset", admin, parent_code="0999")

    def test_self_parent_rejected(self, back_office, admin, seeded):
        with pytest.raises(InvalidAccountParentError, match="own parent"):
            back_office.set_account_parent("1000", "1000", admin)

    def test_cycle_rejected(self, back_office, admin, seeded):
        back_office.set_account_parent("1100", "1000", admin)
        back_office.set_account_parent("1200", "1100", admin)
        with pytest.raises(InvalidAccountParentError, match="descendant"):
            back_office.set_account_parent("1000", "1200", admin)

    def test_clear_parent(self, back_office, admin, seeded):
        back_office.set_account_parent("1100", "1000", admin)
        assert back_office.set_account_parent("1100", None, admin).parent_id is None
