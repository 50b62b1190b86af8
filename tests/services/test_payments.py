"""
Payments received against invoices and on account.

Posting rules under test:
- Revenue already recognized: Dr Cash/Bank, Cr A/R
- Not recognized, payment settles the invoice: one entry carrying cash,
  revenue and tax
- Not recognized, partial payment: a receipt entry plus the recognition
  entry, each balanced
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    InvalidDocumentError,
    InvalidPaymentAmountError,
    InvalidStateTransitionError,
    OverpaymentError,
    PaymentNotFoundError,
)
from ledger_kernel.models.invoice import InvoiceStatus
from ledger_kernel.models.journal import JournalSource
from ledger_kernel.models.payment import PaymentMethod

PAYMENT_DATE = date(2026, 1, 25)


def entry_lines(back_office, entry_id) -> dict[str, tuple[Decimal, Decimal]]:
    entry = back_office.get_journal_entry(entry_id)
    assert entry.is_balanced
    return {line.account.code: (line.debit, line.credit) for line in entry.lines}


class TestPaymentOnApprovedInvoice:
    def test_full_payment(self, back_office, admin, approved_invoice):
        payment = back_office.receive_payment(
            approved_invoice.customer_id, Decimal("1150.00"), PaymentMethod.CASH, PAYMENT_DATE, admin,
            invoice_id=approved_invoice.id,
        )
        invoice = back_office.get_invoice(approved_invoice.id)

        assert payment.payment_number == "PR2026000001"
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.balance_due == Decimal("0")
        assert invoice.paid_amount == Decimal("1150.00")
        assert entry_lines(back_office, payment.journal_entry_id) == {
            "1000": (Decimal("1150.00"), Decimal("0")),
            "1200": (Decimal("0"), Decimal("1150.00")),
        }
        assert back_office.account_balance("1200") == Decimal("0")
        assert back_office.get_customer(approved_invoice.customer_id).current_balance == Decimal("0")

    def test_two_partial_payments(self, back_office, admin, approved_invoice):
        customer_id = approved_invoice.customer_id
        back_office.receive_payment(
            customer_id, Decimal("500"), "bank_transfer", PAYMENT_DATE, admin, invoice_id=approved_invoice.id,
        )
        partial = back_office.get_invoice(approved_invoice.id)
        assert partial.status == InvoiceStatus.PARTIALLY_PAID
        assert partial.balance_due == Decimal("650.00")
        assert back_office.account_balance("1100") == Decimal("500.00")

        back_office.receive_payment(
            customer_id, Decimal("650"), "cash", PAYMENT_DATE, admin, invoice_id=approved_invoice.id,
        )
        paid = back_office.get_invoice(approved_invoice.id)
        assert paid.status == InvoiceStatus.PAID
        assert back_office.account_balance("1200") == Decimal("0")
        assert [p.amount for p in back_office.payments_for_invoice(approved_invoice.id)] == [
            Decimal("500.00"), Decimal("650.00"),
        ]

    @pytest.mark.parametrize(
        "method, account",
        [("check", "1100"), ("credit_card", "1100"), ("online_payment", "1100"), ("other", "1000")],
    )
    def test_method_selects_account(self, back_office, admin, approved_invoice, method, account):
        back_office.receive_payment(
            approved_invoice.customer_id, Decimal("100"), method, PAYMENT_DATE, admin,
            invoice_id=approved_invoice.id,
        )
        assert back_office.account_balance(account) == Decimal("100.00")

    def test_overpayment_refused(self, back_office, admin, approved_invoice):
        with pytest.raises(OverpaymentError) as exc_info:
            back_office.receive_payment(
                approved_invoice.customer_id, Decimal("1150.01"), "cash", PAYMENT_DATE, admin,
                invoice_id=approved_invoice.id,
            )
        assert exc_info.value.balance_due == Decimal("1150.00")
        invoice = back_office.get_invoice(approved_invoice.id)
        assert invoice.status == InvoiceStatus.APPROVED
        assert back_office.account_balance("1000") == Decimal("0")
        assert back_office.payments_for_invoice(approved_invoice.id) == []

    def test_payment_on_paid_invoice_refused(self, back_office, admin, approved_invoice):
        back_office.receive_payment(
            approved_invoice.customer_id, Decimal("1150"), "cash", PAYMENT_DATE, admin,
            invoice_id=approved_invoice.id,
        )
        with pytest.raises(OverpaymentError):
            back_office.receive_payment(
                approved_invoice.customer_id, Decimal("1"), "cash", PAYMENT_DATE, admin,
                invoice_id=approved_invoice.id,
            )


class TestPaymentBeforeApproval:
    def test_full_payment_posts_one_entry(self, back_office, admin, draft_invoice):
        payment = back_office.receive_payment(
            draft_invoice.customer_id, Decimal("1150.00"), "cash", PAYMENT_DATE, admin,
            invoice_id=draft_invoice.id,
        )
        invoice = back_office.get_invoice(draft_invoice.id)

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.balance_due == Decimal("0")
        assert payment.journal_entry_id == invoice.journal_entry_id
        assert entry_lines(back_office, invoice.journal_entry_id) == {
            "1000": (Decimal("1150.00"), Decimal("0")),
            "4000": (Decimal("0"), Decimal("1000.00")),
            "2100": (Decimal("0"), Decimal("150.00")),
        }
        assert back_office.account_balance("1200") == Decimal("0")
        assert back_office.get_customer(draft_invoice.customer_id).current_balance == Decimal("0")

    def test_partial_payment_posts_two_entries(self, back_office, admin, draft_invoice):
        payment = back_office.receive_payment(
            draft_invoice.customer_id, Decimal("500.00"), "cash", PAYMENT_DATE, admin,
            invoice_id=draft_invoice.id,
        )
        invoice = back_office.get_invoice(draft_invoice.id)

        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert invoice.paid_amount == Decimal("500.00")
        assert invoice.balance_due == Decimal("650.00")
        assert payment.journal_entry_id != invoice.journal_entry_id

        receipt = back_office.get_journal_entry(payment.journal_entry_id)
        assert receipt.source_type == JournalSource.PAYMENT_RECEIVED
        assert entry_lines(back_office, receipt.id) == {
            "1000": (Decimal("500.00"), Decimal("0")),
            "1200": (Decimal("0"), Decimal("500.00")),
        }
        assert entry_lines(back_office, invoice.journal_entry_id) == {
            "1200": (Decimal("1150.00"), Decimal("0")),
            "4000": (Decimal("0"), Decimal("1000.00")),
            "2100": (Decimal("0"), Decimal("150.00")),
        }
        assert back_office.account_balance("1200") == Decimal("650.00")
        assert back_office.get_customer(draft_invoice.customer_id).current_balance == Decimal("650.00")

    def test_revenue_recognized_once(self, back_office, admin, draft_invoice):
        customer_id = draft_invoice.customer_id
        back_office.receive_payment(customer_id, Decimal("500"), "cash", PAYMENT_DATE, admin, invoice_id=draft_invoice.id)
        back_office.receive_payment(customer_id, Decimal("650"), "cash", PAYMENT_DATE, admin, invoice_id=draft_invoice.id)

        assert back_office.get_invoice(draft_invoice.id).status == InvoiceStatus.PAID
        assert back_office.account_balance("4000") == Decimal("-1000.00")
        assert back_office.account_balance("2100") == Decimal("-150.00")
        assert back_office.account_balance("1000") == Decimal("1150.00")
        assert back_office.account_balance("1200") == Decimal("0")

    def test_paid_draft_cannot_be_approved(self, back_office, admin, draft_invoice):
        back_office.receive_payment(
            draft_invoice.customer_id, Decimal("1150"), "cash", PAYMENT_DATE, admin, invoice_id=draft_invoice.id,
        )
        with pytest.raises(InvalidStateTransitionError):
            back_office.approve_invoice(draft_invoice.id, admin)


class TestPaymentRules:
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("0.004")])
    def test_non_positive_amount(self, back_office, admin, approved_invoice, amount):
        with pytest.raises(InvalidPaymentAmountError):
            back_office.receive_payment(
                approved_invoice.customer_id, amount, "cash", PAYMENT_DATE, admin,
                invoice_id=approved_invoice.id,
            )

    def test_unknown_method(self, back_office, admin, approved_invoice):
        with pytest.raises(InvalidDocumentError, match="payment method"):
            back_office.receive_payment(
                approved_invoice.customer_id, Decimal("10"), "barter", PAYMENT_DATE, admin,
                invoice_id=approved_invoice.id,
            )

    def test_cancelled_invoice_refuses_payment(self, back_office, admin, draft_invoice):
        back_office.cancel_invoice(draft_invoice.id, admin)
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            back_office.receive_payment(
                draft_invoice.customer_id, Decimal("10"), "cash", PAYMENT_DATE, admin,
                invoice_id=draft_invoice.id,
            )
        assert exc_info.value.current_state == "cancelled"

    def test_invoice_of_another_customer(self, back_office, admin, approved_invoice):
        other = back_office.create_customer("C002", "Other Co", admin)
        with pytest.raises(InvalidDocumentError, match="another customer"):
            back_office.receive_payment(
                other.id, Decimal("10"), "cash", PAYMENT_DATE, admin, invoice_id=approved_invoice.id,
            )


class TestPaymentOnAccount:
    def test_unallocated_payment_credits_receivables(self, back_office, admin, customer):
        payment = back_office.receive_payment(
            customer.id, Decimal("200.00"), "bank", PAYMENT_DATE, admin, reference="Advance",
        )
        assert payment.invoice_id is None
        assert payment.reference == "Advance"
        assert entry_lines(back_office, payment.journal_entry_id) == {
            "1100": (Decimal("200.00"), Decimal("0")),
            "1200": (Decimal("0"), Decimal("200.00")),
        }
        assert back_office.get_customer(customer.id).current_balance == Decimal("-200.00")


class TestPaymentLookup:
    def test_get_payment_received(self, back_office, admin, approved_invoice):
        payment = back_office.receive_payment(
            approved_invoice.customer_id, Decimal("100"), "check", PAYMENT_DATE, admin,
            invoice_id=approved_invoice.id, reference="CHQ-001",
        )
        loaded = back_office.get_payment_received(payment.id)
        assert loaded.payment_number == payment.payment_number
        assert loaded.method == PaymentMethod.CHECK
        assert loaded.reference == "CHQ-001"

    def test_receipt_entry_traces_to_payment(self, back_office, admin, approved_invoice):
        payment = back_office.receive_payment(
            approved_invoice.customer_id, Decimal("100"), "cash", PAYMENT_DATE, admin,
            invoice_id=approved_invoice.id,
        )
        entries = back_office.journal_entries_for_source(JournalSource.PAYMENT_RECEIVED, payment.id)
        assert [entry.id for entry in entries] == [payment.journal_entry_id]

    def test_unknown_payment(self, back_office, seeded):
        with pytest.raises(PaymentNotFoundError):
            back_office.get_payment_received(uuid4())
