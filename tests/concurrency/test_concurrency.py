"""
Concurrent access through the BackOffice.

Threads share one BackOffice; every call opens its own session and
transaction.  A Barrier releases the workers together so the calls
genuinely overlap.  On SQLite the writers serialize on BEGIN IMMEDIATE;
on PostgreSQL (DATABASE_URL) the row locks do the same work.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier

import pytest

from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import AlreadyPostedError, LockedFiscalYearError, OverpaymentError
from ledger_kernel.models.invoice import InvoiceStatus
from ledger_services import ItemSpec

pytestmark = pytest.mark.slow_locks

ENTRY_DATE = date(2026, 1, 20)


def run_together(count: int, work) -> list:
    """Run ``work(i)`` on ``count`` threads released at once.

    Returns each result or the exception it raised, in submission order.
    """
    barrier = Barrier(count)

    def worker(i):
        barrier.wait()
        try:
            return work(i)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


class TestConcurrentNumbering:
    def test_invoice_numbers_are_gap_free(self, back_office, admin, customer):
        count = 50
        results = run_together(
            count,
            lambda i: back_office.create_invoice(
                customer.id, ENTRY_DATE, [ItemSpec(f"Item {i}", Decimal("1"), Decimal("10.00"))], admin,
            ),
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert errors == []
        numbers = sorted(invoice.invoice_number for invoice in results)
        assert numbers == [f"INV2026{seq:06d}" for seq in range(1, count + 1)]

    def test_journal_numbers_are_gap_free(self, back_office, admin, seeded):
        count = 50
        results = run_together(
            count,
            lambda i: back_office.create_journal_entry(
                ENTRY_DATE, f"Cash sale {i}",
                [LineSpec.dr("1000", Decimal("10")), LineSpec.cr("4000", Decimal("10"))],
                admin,
            ),
        )

        assert [r for r in results if isinstance(r, Exception)] == []
        numbers = sorted(entry.entry_number for entry in results)
        assert numbers == [f"JE2026{seq:06d}" for seq in range(1, count + 1)]

    def test_payment_numbers_are_gap_free(self, back_office, admin, customer):
        count = 50
        results = run_together(
            count,
            lambda i: back_office.receive_payment(
                customer.id, Decimal("10.00"), "cash", ENTRY_DATE, admin, reference=f"Deposit {i}",
            ),
        )

        assert [r for r in results if isinstance(r, Exception)] == []
        numbers = sorted(payment.payment_number for payment in results)
        assert numbers == [f"PR2026{seq:06d}" for seq in range(1, count + 1)]
        assert back_office.account_balance("1000") == Decimal("500.00")
        assert back_office.get_customer(customer.id).current_balance == Decimal("-500.00")

    def test_posted_journal_numbers_are_unique(self, back_office, admin, seeded):
        count = 20
        results = run_together(
            count,
            lambda i: back_office.create_and_post_journal_entry(
                ENTRY_DATE, f"Cash sale {i}",
                [LineSpec.dr("1000", Decimal("10")), LineSpec.cr("4000", Decimal("10"))],
                admin,
            ),
        )

        assert not [r for r in results if isinstance(r, Exception)]
        assert len({entry.entry_number for entry in results}) == count
        assert back_office.account_balance("1000") == Decimal("200.00")
        assert back_office.replay_balance("1000") == Decimal("200.00")


class TestConcurrentPosting:
    def test_double_post_posts_once(self, back_office, admin, seeded):
        entry = back_office.create_journal_entry(
            ENTRY_DATE, "Owner investment",
            [LineSpec.dr("1000", Decimal("500")), LineSpec.cr("3000", Decimal("500"))],
            admin,
        )

        results = run_together(2, lambda i: back_office.post_journal_entry(entry.id, admin))

        posted = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, AlreadyPostedError)]
        assert len(posted) == 1
        assert len(rejected) == 1
        assert back_office.account_balance("1000") == Decimal("500.00")
        assert len(back_office.account_ledger("1000").lines) == 1

    def test_parallel_postings_keep_balances_consistent(self, back_office, admin, seeded):
        count = 20
        results = run_together(
            count,
            lambda i: back_office.create_and_post_journal_entry(
                ENTRY_DATE, f"Transfer {i}",
                [LineSpec.dr("1100", Decimal(i + 1)), LineSpec.cr("1000", Decimal(i + 1))],
                admin,
            ),
        )

        assert not [r for r in results if isinstance(r, Exception)]
        expected = Decimal(sum(range(1, count + 1)))
        assert back_office.account_balance("1100") == expected
        assert back_office.account_balance("1000") == -expected
        ledger = back_office.account_ledger("1100")
        assert ledger.lines[-1].stored_balance == expected
        assert back_office.trial_balance().is_balanced


class TestConcurrentPayments:
    def test_payments_never_overpay(self, back_office, admin, approved_invoice):
        count = 6
        results = run_together(
            count,
            lambda i: back_office.receive_payment(
                approved_invoice.customer_id, Decimal("300"), "cash", ENTRY_DATE, admin,
                invoice_id=approved_invoice.id,
            ),
        )

        accepted = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, OverpaymentError)]
        assert len(accepted) == 3
        assert len(refused) == count - 3

        invoice = back_office.get_invoice(approved_invoice.id)
        assert invoice.paid_amount == Decimal("900.00")
        assert invoice.balance_due == Decimal("250.00")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert back_office.account_balance("1000") == Decimal("900.00")
        assert back_office.get_customer(approved_invoice.customer_id).current_balance == Decimal("250.00")


class TestConcurrentYearEnd:
    def test_close_accounts_for_every_committed_sale(self, back_office, admin, fy2026):
        count = 12

        def work(i):
            if i == 0:
                return back_office.close_fiscal_year(fy2026.id, admin)
            return back_office.create_and_post_journal_entry(
                date(2026, 6, 1), f"Cash sale {i}",
                [LineSpec.dr("1000", Decimal("10")), LineSpec.cr("4000", Decimal("10"))],
                admin,
            )

        closed, *sales = run_together(count, work)

        assert not isinstance(closed, Exception)
        posted = [r for r in sales if not isinstance(r, Exception)]
        refused = [r for r in sales if isinstance(r, LockedFiscalYearError)]
        assert len(posted) + len(refused) == count - 1
        assert back_office.account_balance("4000") == Decimal("0")
        assert back_office.account_balance("3100") == -Decimal("10.00") * len(posted)
        assert back_office.account_balance("1000") == Decimal("10.00") * len(posted)
