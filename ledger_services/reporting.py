"""
Reporting aggregator (``ledger_services.reporting``).

Responsibility
--------------
Read-only financial statements derived from the ledger: trial balance,
profit and loss, balance sheet and a per-account ledger listing.  Every
result is a frozen dataclass of plain values.

Architecture position
---------------------
Services layer.  Reads through ``LedgerSelector`` and ``AccountService``;
never posts, never writes.

Invariants enforced
-------------------
* All monetary amounts are ``Decimal`` at two places.
* ``is_balanced`` compares totals against ``LedgerConfig.report_tolerance``.
* Profit and loss ignores year-end closing entries, so a closed year still
  reports the activity it had.
* The balance sheet carries unclosed revenue less expense as current-period
  earnings inside equity, so it balances before and after year-end close.

Failure modes
-------------
* ``ValueError`` when a report window ends before it starts.
* ``AccountNotFoundError`` for an unknown account code in
  ``account_ledger``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import ZERO
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.journal import JournalSource
from ledger_kernel.selectors.ledger_selector import AccountLedger, LedgerSelector
from ledger_kernel.services.account_service import AccountService

logger = get_logger("services.reporting")


# =========================================================================
# Report models
# =========================================================================


@dataclass(frozen=True)
class TrialBalanceLine:
    """One account in the trial balance."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    debit: Decimal
    credit: Decimal

    @property
    def net(self) -> Decimal:
        return self.debit - self.credit

    @property
    def normal_balance(self) -> NormalBalance:
        return self.account_type.normal_balance

    @property
    def balance(self) -> Decimal:
        """Balance on the account's normal side; negative when it sits on the other side."""
        return _natural(self.account_type, self.net)


@dataclass(frozen=True)
class TrialBalance:
    as_of: date | None
    lines: tuple[TrialBalanceLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class StatementLine:
    """An account amount in its natural (positive) presentation."""

    account_id: UUID
    account_code: str
    account_name: str
    amount: Decimal


@dataclass(frozen=True)
class ProfitAndLoss:
    start_date: date
    end_date: date
    revenue: tuple[StatementLine, ...]
    expenses: tuple[StatementLine, ...]
    total_revenue: Decimal
    total_expenses: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class BalanceSheetSection:
    label: str
    lines: tuple[StatementLine, ...]
    total: Decimal


@dataclass(frozen=True)
class BalanceSheet:
    """
    Assets against liabilities plus equity.

    ``equity.total`` includes ``current_earnings``: revenue less expense
    not yet closed into retained earnings.
    """

    as_of: date
    assets: BalanceSheetSection
    liabilities: BalanceSheetSection
    equity: BalanceSheetSection
    current_earnings: Decimal
    is_balanced: bool

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return self.liabilities.total + self.equity.total


# =========================================================================
# Service
# =========================================================================


def _check_window(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValueError(f"report window ends ({end_date}) before it starts ({start_date})")


def _natural(account_type: AccountType, net: Decimal) -> Decimal:
    # Debit minus credit, presented positive on the account's normal side.
    if account_type.normal_balance == NormalBalance.DEBIT:
        return net
    return -net


class ReportingService:
    """
    Financial statement generation.

    All methods are read-only and run inside the caller's session.
    """

    def __init__(self, session: Session, config: LedgerConfig):
        self.session = session
        self._tolerance = config.report_tolerance
        self._ledger = LedgerSelector(session)
        self._accounts = AccountService(session)

    def _balanced(self, left: Decimal, right: Decimal) -> bool:
        return abs(left - right) < self._tolerance

    def _net_balances(self, as_of: date | None) -> dict[UUID, Decimal]:
        return {
            movement.account_id: movement.net
            for movement in self._ledger.movements(end_date=as_of)
        }

    def trial_balance(self, as_of: date | None = None) -> TrialBalance:
        """
        Trial balance of every active account.

        Without ``as_of`` the cached account balances are used; with it,
        balances are summed from ledger entries dated on or before it.
        A positive balance sits in the debit column and a negative one in
        the credit column, whatever the account's normal side; each line
        also reports ``normal_balance`` and its ``balance`` on that side.
        """
        accounts = self.session.execute(
            select(Account).where(Account.is_active.is_(True)).order_by(Account.code)
        ).scalars().all()
        replayed = self._net_balances(as_of) if as_of is not None else None

        lines: list[TrialBalanceLine] = []
        total_debit = ZERO
        total_credit = ZERO
        for account in accounts:
            if replayed is None:
                net = account.current_balance
            else:
                net = replayed.get(account.id, ZERO)
            debit = net if net > 0 else ZERO
            credit = -net if net < 0 else ZERO
            total_debit += debit
            total_credit += credit
            lines.append(
                TrialBalanceLine(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    account_type=account.account_type,
                    debit=debit,
                    credit=credit,
                )
            )

        report = TrialBalance(
            as_of=as_of,
            lines=tuple(lines),
            total_debit=total_debit,
            total_credit=total_credit,
            is_balanced=self._balanced(total_debit, total_credit),
        )
        logger.info(
            "report_generated",
            extra={
                "report_type": "trial_balance",
                "as_of": as_of,
                "account_count": len(lines),
                "total_debit": total_debit,
                "total_credit": total_credit,
                "is_balanced": report.is_balanced,
            },
        )
        if not report.is_balanced:
            logger.error(
                "trial_balance_out_of_balance",
                extra={"total_debit": total_debit, "total_credit": total_credit},
            )
        return report

    def profit_and_loss(self, start_date: date, end_date: date) -> ProfitAndLoss:
        """Revenue and expense activity per account over [start, end]."""
        _check_window(start_date, end_date)
        movements = self._ledger.movements(
            start_date,
            end_date,
            account_types=(AccountType.REVENUE, AccountType.EXPENSE),
            exclude_sources=(JournalSource.YEAR_END_CLOSE,),
        )

        revenue: list[StatementLine] = []
        expenses: list[StatementLine] = []
        for movement in movements:
            line = StatementLine(
                account_id=movement.account_id,
                account_code=movement.account_code,
                account_name=movement.account_name,
                amount=_natural(movement.account_type, movement.net),
            )
            if movement.account_type == AccountType.REVENUE:
                revenue.append(line)
            else:
                expenses.append(line)

        total_revenue = sum((line.amount for line in revenue), ZERO)
        total_expenses = sum((line.amount for line in expenses), ZERO)
        report = ProfitAndLoss(
            start_date=start_date,
            end_date=end_date,
            revenue=tuple(revenue),
            expenses=tuple(expenses),
            total_revenue=total_revenue,
            total_expenses=total_expenses,
            net_profit=total_revenue - total_expenses,
        )
        logger.info(
            "report_generated",
            extra={
                "report_type": "profit_and_loss",
                "start_date": start_date,
                "end_date": end_date,
                "net_profit": report.net_profit,
            },
        )
        return report

    def balance_sheet(self, as_of: date) -> BalanceSheet:
        """Balance sheet from ledger entries dated on or before ``as_of``."""
        sections: dict[AccountType, list[StatementLine]] = {
            AccountType.ASSET: [],
            AccountType.LIABILITY: [],
            AccountType.EQUITY: [],
        }
        current_earnings = ZERO
        for movement in self._ledger.movements(end_date=as_of):
            if movement.account_type == AccountType.REVENUE:
                current_earnings += -movement.net
                continue
            if movement.account_type == AccountType.EXPENSE:
                current_earnings -= movement.net
                continue
            if movement.net == 0:
                continue
            sections[movement.account_type].append(
                StatementLine(
                    account_id=movement.account_id,
                    account_code=movement.account_code,
                    account_name=movement.account_name,
                    amount=_natural(movement.account_type, movement.net),
                )
            )

        def section(label: str, account_type: AccountType, extra: Decimal = ZERO) -> BalanceSheetSection:
            lines = tuple(sections[account_type])
            return BalanceSheetSection(
                label=label,
                lines=lines,
                total=sum((line.amount for line in lines), ZERO) + extra,
            )

        assets = section("Assets", AccountType.ASSET)
        liabilities = section("Liabilities", AccountType.LIABILITY)
        equity = section("Equity", AccountType.EQUITY, current_earnings)
        report = BalanceSheet(
            as_of=as_of,
            assets=assets,
            liabilities=liabilities,
            equity=equity,
            current_earnings=current_earnings,
            is_balanced=self._balanced(assets.total, liabilities.total + equity.total),
        )
        logger.info(
            "report_generated",
            extra={
                "report_type": "balance_sheet",
                "as_of": as_of,
                "total_assets": assets.total,
                "total_liabilities": liabilities.total,
                "total_equity": equity.total,
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def account_ledger(
        self,
        account_code: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AccountLedger:
        _check_window(start_date, end_date)
        account = self._accounts.get_by_code(account_code)
        return self._ledger.entries_for_account(account.id, start_date, end_date)
