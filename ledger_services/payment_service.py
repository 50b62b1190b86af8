"""
PaymentService -- payments received from customers and made to vendors.

Responsibility:
    Records a payment, journals its cash and moves the document and party
    balances, all in the caller's transaction.

Posting per payment received against an invoice:

    revenue already recognized        Dr Cash/Bank  / Cr A/R
    not recognized, payment settles   one entry: cash for this payment and
                                      any tendered payments, revenue and tax
    not recognized, partial payment   (a) Dr Cash/Bank / Cr A/R
                                      (b) revenue recognition, A/R for the
                                          receivable

    Revenue is therefore recognized once per invoice however many
    payments arrive.

Invariants enforced:
    - amount > 0 (InvalidPaymentAmountError).
    - amount <= balance_due of the document (OverpaymentError).
    - The document row is locked before it is read for the balance check;
      concurrent payments on one document serialize.
    - Document paid_amount, balance_due and status change in the same
      transaction as the journal entries and the party balance.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.roles import Actor
from ledger_kernel.exceptions import (
    InvalidDocumentError,
    InvalidPaymentAmountError,
    OverpaymentError,
    PaymentNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.bill import Bill
from ledger_kernel.models.invoice import Invoice, InvoiceStatus
from ledger_kernel.models.journal import JournalEntry, JournalSource
from ledger_kernel.models.payment import PaymentMade, PaymentMethod, PaymentReceived
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.journal_engine import JournalEntryEngine
from ledger_services.bill_workflow import BillService
from ledger_services.invoice_workflow import INVOICE_WORKFLOW, InvoiceService, payment_status_after
from ledger_services.master_data import MasterDataService
from ledger_services.numbering import DocumentNumbers
from ledger_services.posting_rules import PostingRules

logger = get_logger("services.payment")


def _payment_method(method: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError as exc:
        raise InvalidDocumentError("payment", f"unknown payment method {method!r}") from exc


def _checked_amount(amount: Decimal) -> Decimal:
    amount = round_money(amount)
    if amount <= 0:
        raise InvalidPaymentAmountError(amount)
    return amount


class PaymentService:
    """Records payments and their postings."""

    def __init__(self, session: Session, config: LedgerConfig, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
        self._rules = PostingRules(config)
        self._accounts = AccountService(session, self._clock)
        self._journal = JournalEntryEngine(
            session, self._clock,
            number_prefix=config.numbering.journal_entry,
            number_width=config.numbering.width,
        )
        self._invoices = InvoiceService(session, config, self._clock)
        self._bills = BillService(session, config, self._clock)
        self._master = MasterDataService(session, self._clock)
        self._numbers = DocumentNumbers(session, config.numbering)
        self._auditor = AuditorService(session, self._clock)

    def get_received(self, payment_id: UUID) -> PaymentReceived:
        payment = self.session.get(PaymentReceived, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def get_made(self, payment_id: UUID) -> PaymentMade:
        payment = self.session.get(PaymentMade, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def _post(
        self,
        lines: list[LineSpec],
        entry_date: date,
        description: str,
        reference: str,
        source_type: JournalSource,
        source_id: UUID,
        actor: Actor,
    ) -> JournalEntry:
        self._rules.require_accounts(self._accounts, lines)
        return self._journal.create_and_post(
            entry_date,
            description,
            lines,
            actor.actor_id,
            reference=reference,
            source_type=source_type,
            source_id=source_id,
        )

    # ------------------------------------------------------------------
    # Customer payments
    # ------------------------------------------------------------------

    def receive_payment(
        self,
        customer_id: UUID,
        amount: Decimal,
        method: PaymentMethod | str,
        payment_date: date,
        actor: Actor,
        invoice_id: UUID | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentReceived:
        """
        Record a payment from a customer, optionally against an invoice.

        Raises:
            InvalidPaymentAmountError: amount <= 0.
            OverpaymentError: amount exceeds the invoice's balance due.
            InvalidStateTransitionError: the invoice is cancelled.
            InvalidDocumentError: the invoice belongs to another customer.
        """
        amount = _checked_amount(amount)
        method = _payment_method(method)

        invoice: Invoice | None = None
        if invoice_id is not None:
            invoice = self._invoices.get(invoice_id, for_update=True)
            if invoice.customer_id != customer_id:
                raise InvalidDocumentError("payment", "invoice belongs to another customer")
            self._check_invoice_payment(invoice, amount)
        customer = self._master.customer(customer_id)

        payment = PaymentReceived(
            payment_number=self._numbers.payment_received(payment_date.year),
            customer_id=customer.id,
            invoice_id=invoice.id if invoice else None,
            payment_date=payment_date,
            amount=amount,
            method=method,
            reference=reference,
            notes=notes,
            tendered_at_issue=False,
            created_by_id=actor.actor_id,
        )
        self.session.add(payment)
        self.session.flush()
        LogContext.update(document_id=payment.id)

        if invoice is None:
            self._settle_receivable(payment, actor)
        elif invoice.revenue_recognized:
            self._settle_receivable(payment, actor)
            self._invoices.apply_payment(invoice, amount, actor)
        elif invoice.balance_due == amount:
            receipts = self._invoices.unjournaled_payments(invoice.id)
            self._invoices.recognize_revenue(invoice, receipts, actor)
            self._invoices.apply_payment(invoice, amount, actor)
        else:
            self._settle_receivable(payment, actor)
            receipts = [
                p for p in self._invoices.unjournaled_payments(invoice.id) if p.id != payment.id
            ]
            self._invoices.recognize_revenue(invoice, receipts, actor)
            self._invoices.apply_payment(invoice, amount, actor)

        self._auditor.record(
            actor.actor_id, "payment_received", "PaymentReceived", payment.id,
            after={
                "payment_number": payment.payment_number,
                "amount": str(amount),
                "method": method.value,
                "invoice_number": invoice.invoice_number if invoice else None,
                "invoice_status": invoice.status.value if invoice else None,
            },
        )
        logger.info(
            "payment_received",
            extra={
                "payment_number": payment.payment_number,
                "customer_code": customer.code,
                "amount": amount,
                "method": method.value,
                "invoice_number": invoice.invoice_number if invoice else None,
                "balance_due": invoice.balance_due if invoice else None,
            },
        )
        return payment

    def _check_invoice_payment(self, invoice: Invoice, amount: Decimal) -> None:
        if invoice.status != InvoiceStatus.CANCELLED and amount > invoice.balance_due:
            logger.warning(
                "overpayment_rejected",
                extra={"invoice_number": invoice.invoice_number, "amount": amount, "balance_due": invoice.balance_due},
            )
            raise OverpaymentError("Invoice", invoice.invoice_number, amount, invoice.balance_due)
        target = payment_status_after(invoice.balance_due - amount)
        INVOICE_WORKFLOW.transition(
            "apply_payment", invoice.status.value, "Invoice", str(invoice.id), to_state=target.value,
        )

    def _settle_receivable(self, payment: PaymentReceived, actor: Actor) -> JournalEntry:
        lines = self._rules.payment_received(payment)
        entry = self._post(
            lines,
            payment.payment_date,
            f"Payment received {payment.payment_number}",
            payment.payment_number,
            JournalSource.PAYMENT_RECEIVED,
            payment.id,
            actor,
        )
        payment.journal_entry_id = entry.id
        self._master.adjust_customer_balance(
            payment.customer_id, self._rules.receivable_movement(lines), actor.actor_id,
        )
        return entry

    # ------------------------------------------------------------------
    # Vendor payments
    # ------------------------------------------------------------------

    def make_payment(
        self,
        vendor_id: UUID,
        amount: Decimal,
        method: PaymentMethod | str,
        payment_date: date,
        actor: Actor,
        bill_id: UUID | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentMade:
        """
        Record a payment to a vendor: Dr A/P, Cr Cash/Bank.

        Raises:
            InvalidPaymentAmountError: amount <= 0.
            InvalidStateTransitionError: the bill is not POSTED.
            OverpaymentError: amount exceeds the bill's balance due.
        """
        amount = _checked_amount(amount)
        method = _payment_method(method)

        bill: Bill | None = None
        if bill_id is not None:
            bill = self._bills.get(bill_id, for_update=True)
            if bill.vendor_id != vendor_id:
                raise InvalidDocumentError("payment", "bill belongs to another vendor")
            self._bills.transition(bill, "apply_payment", actor)
            if amount > bill.balance_due:
                logger.warning(
                    "overpayment_rejected",
                    extra={"bill_number": bill.bill_number, "amount": amount, "balance_due": bill.balance_due},
                )
                raise OverpaymentError("Bill", bill.bill_number, amount, bill.balance_due)
        vendor = self._master.vendor(vendor_id)

        payment = PaymentMade(
            payment_number=self._numbers.payment_made(payment_date.year),
            vendor_id=vendor.id,
            bill_id=bill.id if bill else None,
            payment_date=payment_date,
            amount=amount,
            method=method,
            reference=reference,
            notes=notes,
            created_by_id=actor.actor_id,
        )
        self.session.add(payment)
        self.session.flush()
        LogContext.update(document_id=payment.id)

        lines = self._rules.payment_made(payment)
        entry = self._post(
            lines,
            payment_date,
            f"Payment made {payment.payment_number}",
            payment.payment_number,
            JournalSource.PAYMENT_MADE,
            payment.id,
            actor,
        )
        payment.journal_entry_id = entry.id
        self._master.adjust_vendor_balance(vendor.id, self._rules.payable_movement(lines), actor.actor_id)
        if bill is not None:
            self._bills.apply_payment(bill, amount, actor)
        self.session.flush()

        self._auditor.record(
            actor.actor_id, "payment_made", "PaymentMade", payment.id,
            after={
                "payment_number": payment.payment_number,
                "amount": str(amount),
                "method": method.value,
                "bill_number": bill.bill_number if bill else None,
            },
        )
        logger.info(
            "payment_made",
            extra={
                "payment_number": payment.payment_number,
                "vendor_code": vendor.code,
                "amount": amount,
                "method": method.value,
                "bill_number": bill.bill_number if bill else None,
            },
        )
        return payment

    def payments_for_invoice(self, invoice_id: UUID) -> list[PaymentReceived]:
        return self._invoices.payments(invoice_id)

    def payments_for_bill(self, bill_id: UUID) -> list[PaymentMade]:
        return list(
            self.session.execute(
                select(PaymentMade)
                .where(PaymentMade.bill_id == bill_id)
                .order_by(PaymentMade.payment_number)
            ).scalars()
        )
