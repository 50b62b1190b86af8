"""
Default chart of accounts and starter master data.

``seed_defaults`` creates whatever of the default chart, the calendar
fiscal year and the standard VAT code is missing.  Running it twice
changes nothing the second time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.tax import TaxCode
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_services.master_data import MasterDataService

logger = get_logger("services.chart_seed")


DEFAULT_CHART: tuple[tuple[str, str, AccountType], ...] = (
    ("1000", "Cash", AccountType.ASSET),
    ("1100", "Bank Account", AccountType.ASSET),
    ("1200", "Accounts Receivable", AccountType.ASSET),
    ("1300", "Tax Paid", AccountType.ASSET),
    ("1400", "Inventory", AccountType.ASSET),
    ("1500", "Fixed Assets", AccountType.ASSET),
    ("2000", "Accounts Payable", AccountType.LIABILITY),
    ("2100", "Tax Payable", AccountType.LIABILITY),
    ("2200", "Loans Payable", AccountType.LIABILITY),
    ("3000", "Owner Equity", AccountType.EQUITY),
    ("3100", "Retained Earnings", AccountType.EQUITY),
    ("4000", "Sales Revenue", AccountType.REVENUE),
    ("4100", "Service Revenue", AccountType.REVENUE),
    ("4200", "Other Income", AccountType.REVENUE),
    ("4300", "Sales Discounts", AccountType.REVENUE),
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE),
    ("5100", "Salaries", AccountType.EXPENSE),
    ("5200", "Rent", AccountType.EXPENSE),
    ("5300", "Utilities", AccountType.EXPENSE),
    ("5400", "Office Supplies", AccountType.EXPENSE),
    ("5500", "Depreciation", AccountType.EXPENSE),
)

DEFAULT_TAX_CODE = "VAT"
DEFAULT_TAX_RATE = Decimal("15")


@dataclass(frozen=True)
class SeedResult:
    accounts_created: tuple[str, ...]
    fiscal_year_created: str | None
    tax_code_created: str | None


def seed_defaults(
    session: Session,
    actor_id: UUID,
    clock: Clock | None = None,
    year: int | None = None,
) -> SeedResult:
    """
    Seed the default chart, fiscal year ``FY {year}`` and VAT 15%.

    ``year`` defaults to the clock's current year.  The VAT rate takes
    effect on the first day of that year.
    """
    clock = clock or SystemClock()
    year = year or clock.today().year
    accounts = AccountService(session, clock)
    fiscal_years = FiscalYearService(session, clock)
    master = MasterDataService(session, clock)

    created: list[str] = []
    for code, name, account_type in DEFAULT_CHART:
        if accounts.find_by_code(code) is None:
            accounts.create_account(code, name, account_type, actor_id)
            created.append(code)

    start = date(year, 1, 1)
    fiscal_year_created = None
    if fiscal_years.year_for_date(start) is None:
        fiscal_year = fiscal_years.create_year(f"FY {year}", start, date(year, 12, 31), actor_id)
        fiscal_year_created = fiscal_year.name

    tax_code_created = None
    existing = session.execute(
        select(TaxCode.id).where(TaxCode.code == DEFAULT_TAX_CODE)
    ).first()
    if existing is None:
        master.create_tax_code(DEFAULT_TAX_CODE, "Value added tax", DEFAULT_TAX_RATE, start, actor_id)
        tax_code_created = DEFAULT_TAX_CODE

    logger.info(
        "defaults_seeded",
        extra={
            "accounts_created": len(created),
            "fiscal_year": fiscal_year_created,
            "tax_code": tax_code_created,
        },
    )
    return SeedResult(
        accounts_created=tuple(created),
        fiscal_year_created=fiscal_year_created,
        tax_code_created=tax_code_created,
    )
