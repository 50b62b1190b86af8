"""
Document posting rules -- business documents to balanced journal lines.

Responsibility:
    Pure builders that turn invoices, bills, payments and a year's revenue
    and expense activity into ``LineSpec`` lists, choosing accounts by the
    chart-of-accounts codes in ``LedgerConfig.accounts`` and the explicit
    payment-method table in ``LedgerConfig.payment_methods``.

Architecture position:
    Services layer.  Called by the invoice, bill, payment and year-end
    services, which hand the lines to JournalEntryEngine.create_and_post().
    No database access here except ``require_accounts``.

Invariants enforced:
    - Every builder returns lines whose debits equal their credits.
    - Zero-amount lines are never emitted.
    - Revenue for an invoice is built only by ``invoice_recognition``;
      payments against a recognized invoice only move cash and A/R.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.bill import Bill
from ledger_kernel.models.invoice import Invoice
from ledger_kernel.models.payment import PaymentMade, PaymentMethod, PaymentReceived
from ledger_kernel.selectors.ledger_selector import AccountMovement
from ledger_kernel.services.account_service import AccountService

logger = get_logger("services.posting_rules")


class PostingRules:
    """Journal line builders for every document kind."""

    def __init__(self, config: LedgerConfig):
        self._config = config
        self._codes = config.accounts

    def method_account(self, method: PaymentMethod | str) -> str:
        """Chart code that receives or pays out cash for ``method``."""
        return self._config.account_for_method(PaymentMethod(method).value)

    def require_accounts(self, accounts: AccountService, lines: Iterable[LineSpec]) -> None:
        """
        Fail before posting when the chart lacks any code the lines use.

        Raises:
            RequiredAccountsMissingError: naming every missing code.
        """
        accounts.require_codes({line.account_code for line in lines})

    @staticmethod
    def movement(lines: Iterable[LineSpec], account_code: str) -> Decimal:
        """Debit minus credit of ``lines`` on one account."""
        return sum(
            (line.debit - line.credit for line in lines if line.account_code == account_code),
            ZERO,
        )

    def receivable_movement(self, lines: Iterable[LineSpec]) -> Decimal:
        """Change in customer receivables the lines cause."""
        return self.movement(lines, self._codes.accounts_receivable)

    def payable_movement(self, lines: Iterable[LineSpec]) -> Decimal:
        """Change in vendor payables the lines cause (credit positive)."""
        return -self.movement(lines, self._codes.accounts_payable)

    # ------------------------------------------------------------------
    # Customer side
    # ------------------------------------------------------------------

    def invoice_recognition(
        self,
        invoice: Invoice,
        receipts: Sequence[PaymentReceived] = (),
    ) -> list[LineSpec]:
        """
        Revenue recognition entry for an invoice.

        ``receipts`` are payments whose cash is journaled by this entry
        (payments tendered at issue, or the payment settling an invoice
        whose revenue was never recognized).  Each becomes a debit on its
        method account; whatever they leave of the total is debited to
        Accounts Receivable.
        """
        lines: list[LineSpec] = []
        received = ZERO
        for payment in receipts:
            lines.append(
                LineSpec.dr(
                    self.method_account(payment.method),
                    payment.amount,
                    f"Payment {payment.payment_number}",
                )
            )
            received += payment.amount

        receivable = invoice.total - received
        if receivable > 0:
            lines.append(LineSpec.dr(self._codes.accounts_receivable, receivable, "Accounts receivable"))
        if invoice.discount > 0:
            lines.append(LineSpec.dr(self._codes.sales_discounts, invoice.discount, "Sales discount"))
        lines.append(LineSpec.cr(self._codes.revenue, invoice.subtotal, "Sales revenue"))
        if invoice.tax_amount > 0:
            lines.append(LineSpec.cr(self._codes.tax_payable, invoice.tax_amount, "Output tax"))
        return lines

    def payment_received(self, payment: PaymentReceived) -> list[LineSpec]:
        """Cash receipt settling receivables: Dr Cash/Bank, Cr A/R."""
        return [
            LineSpec.dr(self.method_account(payment.method), payment.amount, f"Payment {payment.payment_number}"),
            LineSpec.cr(self._codes.accounts_receivable, payment.amount, "Accounts receivable"),
        ]

    # ------------------------------------------------------------------
    # Vendor side
    # ------------------------------------------------------------------

    def bill_posting(self, bill: Bill) -> list[LineSpec]:
        """Dr Expense (subtotal), Dr Tax Paid (tax), Cr A/P (total)."""
        lines = [LineSpec.dr(self._codes.expense, bill.subtotal, "Purchases")]
        if bill.tax_amount > 0:
            lines.append(LineSpec.dr(self._codes.tax_paid, bill.tax_amount, "Input tax"))
        lines.append(LineSpec.cr(self._codes.accounts_payable, bill.total, "Accounts payable"))
        return lines

    def payment_made(self, payment: PaymentMade) -> list[LineSpec]:
        """Dr A/P, Cr Cash/Bank."""
        return [
            LineSpec.dr(self._codes.accounts_payable, payment.amount, "Accounts payable"),
            LineSpec.cr(self.method_account(payment.method), payment.amount, f"Payment {payment.payment_number}"),
        ]

    # ------------------------------------------------------------------
    # Year end
    # ------------------------------------------------------------------

    def year_end_closing(self, movements: Iterable[AccountMovement]) -> list[LineSpec]:
        """
        Close a year's revenue and expense activity into retained earnings.

        Each revenue account is debited by its net credit activity and each
        expense account credited by its net debit activity (reversed when
        the activity runs the other way).  The retained earnings line takes
        the difference: a credit for a profit, a debit for a loss.

        Returns an empty list when there is nothing to close.
        """
        lines: list[LineSpec] = []
        net_income = ZERO
        for movement in movements:
            if movement.account_type == AccountType.REVENUE:
                activity = movement.credit_total - movement.debit_total
                net_income += activity
            elif movement.account_type == AccountType.EXPENSE:
                activity = movement.net
                net_income -= activity
            else:
                continue
            if activity == 0:
                continue
            description = f"Close {movement.account_code} {movement.account_name}"
            lines.append(_closing_line(movement, activity, description))

        if not lines:
            return []
        if net_income > 0:
            lines.append(LineSpec.cr(self._codes.retained_earnings, net_income, "Net income for the year"))
        elif net_income < 0:
            lines.append(LineSpec.dr(self._codes.retained_earnings, -net_income, "Net loss for the year"))

        logger.debug(
            "closing_lines_built",
            extra={"line_count": len(lines), "net_income": net_income},
        )
        return lines


def _closing_line(movement: AccountMovement, activity: Decimal, description: str) -> LineSpec:
    # Positive activity is the account's normal side; closing takes the opposite side.
    code = movement.account_code
    if movement.account_type == AccountType.REVENUE:
        return LineSpec.dr(code, activity, description) if activity > 0 else LineSpec.cr(code, -activity, description)
    return LineSpec.cr(code, activity, description) if activity > 0 else LineSpec.dr(code, -activity, description)
