"""
Invoice workflow -- lifecycle, recalculation and revenue recognition.

State machine:

    draft --verify--> verified --approve--> approved
      ^                  |                     |
      +-----reject-------+                     +--apply_payment--> partially_paid --apply_payment--> paid
    draft --cancel--> cancelled

    Payments may also be applied while an invoice is draft or verified
    (money received before approval); the invoice then moves straight to
    partially_paid or paid.

Invariants enforced:
    - Items, discount and notes change only while DRAFT; the document is
      deleted only while DRAFT (DocumentLockedError otherwise).
    - Every item change recalculates subtotal, tax, total and balance_due.
    - Revenue is recognized exactly once per invoice: by approval, or by
      the first payment received before approval.  ``journal_entry_id``
      records the recognition entry.
    - verify, approve and reject are role-gated through ``RoleGates``.
    - The invoice row is locked (SELECT ... FOR UPDATE) and versioned for
      every state change.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.roles import Actor, require_role
from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.exceptions import (
    DocumentLockedError,
    InvalidDocumentError,
    InvalidPaymentAmountError,
    InvoiceNotFoundError,
    OverpaymentError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from ledger_kernel.models.journal import JournalEntry, JournalSource
from ledger_kernel.models.payment import PaymentMethod, PaymentReceived
from ledger_kernel.models.tax import TaxCode
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.journal_engine import JournalEntryEngine
from ledger_services.document_math import ItemSpec, TaxRateResolver, compute_document
from ledger_services.master_data import MasterDataService
from ledger_services.numbering import DocumentNumbers
from ledger_services.posting_rules import PostingRules

logger = get_logger("services.invoice_workflow")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

REVENUE_NOT_RECOGNIZED = Guard(
    name="revenue_not_recognized",
    description="No revenue recognition entry exists for the invoice",
)

BALANCE_ZERO = Guard(
    name="balance_zero",
    description="Invoice balance is zero after the payment",
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

_PAYABLE_STATES = ("draft", "verified", "approved", "partially_paid")

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Customer invoice lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "verified",
        "approved",
        "partially_paid",
        "paid",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "verified", action="verify", roles="verify"),
        Transition("verified", "approved", action="approve", guard=REVENUE_NOT_RECOGNIZED,
                   posts_entry=True, roles="approve"),
        Transition("draft", "draft", action="reject", roles="reject"),
        Transition("verified", "draft", action="reject", roles="reject"),
        Transition("draft", "cancelled", action="cancel"),
        *(Transition(state, "partially_paid", action="apply_payment", posts_entry=True)
          for state in _PAYABLE_STATES),
        *(Transition(state, "paid", action="apply_payment", guard=BALANCE_ZERO, posts_entry=True)
          for state in _PAYABLE_STATES),
    ),
    terminal_states=("paid", "cancelled"),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)


@dataclass(frozen=True)
class TenderSpec:
    """A payment handed over together with a new invoice."""

    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH
    reference: str | None = None


def _snapshot(invoice: Invoice) -> dict:
    return {
        "invoice_number": invoice.invoice_number,
        "status": invoice.status.value,
        "subtotal": str(invoice.subtotal),
        "tax_amount": str(invoice.tax_amount),
        "discount": str(invoice.discount),
        "total": str(invoice.total),
        "paid_amount": str(invoice.paid_amount),
        "balance_due": str(invoice.balance_due),
    }


def payment_status_after(new_balance: Decimal) -> InvoiceStatus:
    """Target of the payment side transition for a balance."""
    return InvoiceStatus.PAID if new_balance == 0 else InvoiceStatus.PARTIALLY_PAID


class InvoiceService:
    """
    Invoice lifecycle operations.

    Contract:
        Every method runs inside the caller's transaction and flushes.

    Non-goals:
        - Does NOT record payments after creation (PaymentService does,
          calling back into ``recognize_revenue`` and ``apply_payment``).
    """

    def __init__(self, session: Session, config: LedgerConfig, clock: Clock | None = None):
        self.session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._rules = PostingRules(config)
        self._accounts = AccountService(session, self._clock)
        self._journal = JournalEntryEngine(
            session, self._clock,
            number_prefix=config.numbering.journal_entry,
            number_width=config.numbering.width,
        )
        self._master = MasterDataService(session, self._clock)
        self._numbers = DocumentNumbers(session, config.numbering)
        self._tax_rates = TaxRateResolver(session)
        self._auditor = AuditorService(session, self._clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        query = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        invoice = self.session.execute(query).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        if for_update:
            LogContext.update(document_id=invoice.id)
        return invoice

    def payments(self, invoice_id: UUID) -> list[PaymentReceived]:
        return list(
            self.session.execute(
                select(PaymentReceived)
                .where(PaymentReceived.invoice_id == invoice_id)
                .order_by(PaymentReceived.payment_number)
            ).scalars()
        )

    def unjournaled_payments(self, invoice_id: UUID) -> list[PaymentReceived]:
        return [p for p in self.payments(invoice_id) if p.journal_entry_id is None]

    # ------------------------------------------------------------------
    # Document content
    # ------------------------------------------------------------------

    def _set_items(self, invoice: Invoice, items: list[ItemSpec], discount: Decimal, actor_id: UUID) -> None:
        totals = compute_document(self._tax_rates, items, self._clock.today(), discount, "invoice")
        if totals.total < invoice.paid_amount:
            raise InvalidDocumentError("invoice", "total is below the amount already paid")

        if invoice.items:
            invoice.items.clear()
            self.session.flush()
        invoice.items.extend(
            InvoiceItem(
                line_no=item.line_no,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_code_id=item.tax_code_id,
                tax_rate=item.tax_rate,
                tax_amount=item.tax_amount,
                line_total=item.line_total,
                created_by_id=actor_id,
            )
            for item in totals.items
        )
        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.discount = totals.discount
        invoice.total = totals.total
        invoice.balance_due = totals.total - invoice.paid_amount

    def create_invoice(
        self,
        customer_id: UUID,
        invoice_date: date,
        items: list[ItemSpec],
        actor: Actor,
        due_date: date | None = None,
        reference: str | None = None,
        notes: str | None = None,
        discount: Decimal = ZERO,
        tendered: Sequence[TenderSpec] = (),
    ) -> Invoice:
        """
        Create a DRAFT invoice, optionally with payments tendered at issue.

        Tendered payments count towards ``paid_amount`` immediately; their
        cash is journaled by the revenue recognition entry.

        Raises:
            CustomerNotFoundError, InvalidDocumentError, TaxCodeNotFoundError,
            InvalidPaymentAmountError, OverpaymentError.
        """
        customer = self._master.customer(customer_id)
        if not customer.is_active:
            raise InvalidDocumentError("invoice", f"customer {customer.code} is inactive")
        if due_date is not None and due_date < invoice_date:
            raise InvalidDocumentError("invoice", "due date precedes invoice date")

        tenders = [TenderSpec(round_money(t.amount), PaymentMethod(t.method), t.reference) for t in tendered]
        for tender in tenders:
            if tender.amount <= 0:
                raise InvalidPaymentAmountError(tender.amount)
        tendered_total = sum((t.amount for t in tenders), ZERO)

        invoice_number = self._numbers.invoice(invoice_date.year)
        invoice = Invoice(
            invoice_number=invoice_number,
            customer_id=customer.id,
            invoice_date=invoice_date,
            due_date=due_date,
            reference=reference,
            notes=notes,
            status=InvoiceStatus.DRAFT,
            paid_amount=ZERO,
            created_by_id=actor.actor_id,
        )
        self._set_items(invoice, items, discount, actor.actor_id)
        if tendered_total > invoice.total:
            raise OverpaymentError("Invoice", invoice_number, tendered_total, invoice.total)
        invoice.paid_amount = tendered_total
        invoice.balance_due = invoice.total - tendered_total
        self.session.add(invoice)
        self.session.flush()
        LogContext.update(document_id=invoice.id)

        for tender in tenders:
            self.session.add(
                PaymentReceived(
                    payment_number=self._numbers.payment_received(invoice_date.year),
                    customer_id=customer.id,
                    invoice_id=invoice.id,
                    payment_date=invoice_date,
                    amount=tender.amount,
                    method=tender.method,
                    reference=tender.reference,
                    tendered_at_issue=True,
                    created_by_id=actor.actor_id,
                )
            )
        self.session.flush()

        self._auditor.record(actor.actor_id, "invoice_created", "Invoice", invoice.id, after=_snapshot(invoice))
        logger.info(
            "invoice_created",
            extra={
                "invoice_number": invoice_number,
                "customer_code": customer.code,
                "total": invoice.total,
                "tendered": tendered_total,
            },
        )
        return invoice

    def _require_draft(self, invoice: Invoice) -> None:
        if invoice.status != InvoiceStatus.DRAFT:
            raise DocumentLockedError("Invoice", str(invoice.id), invoice.status.value)

    def update_invoice(
        self,
        invoice_id: UUID,
        actor: Actor,
        items: list[ItemSpec] | None = None,
        discount: Decimal | None = None,
        due_date: date | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """
        Edit a DRAFT invoice.  Items are replaced and totals recalculated.

        Raises:
            DocumentLockedError: the invoice is past DRAFT.
        """
        invoice = self.get(invoice_id, for_update=True)
        self._require_draft(invoice)
        before = _snapshot(invoice)

        if items is not None or discount is not None:
            current_items = items if items is not None else [
                ItemSpec(i.description, i.quantity, i.unit_price, self._tax_code_of(i)) for i in invoice.items
            ]
            self._set_items(
                invoice,
                current_items,
                discount if discount is not None else invoice.discount,
                actor.actor_id,
            )
        if due_date is not None:
            invoice.due_date = due_date
        if reference is not None:
            invoice.reference = reference
        if notes is not None:
            invoice.notes = notes
        invoice.updated_by_id = actor.actor_id
        self.session.flush()

        self._auditor.record(
            actor.actor_id, "invoice_updated", "Invoice", invoice.id,
            before=before, after=_snapshot(invoice),
        )
        logger.info("invoice_updated", extra={"invoice_number": invoice.invoice_number, "total": invoice.total})
        return invoice

    def _tax_code_of(self, item: InvoiceItem) -> str | None:
        if item.tax_code_id is None:
            return None
        tax_code = self.session.get(TaxCode, item.tax_code_id)
        return tax_code.code if tax_code else None

    def delete_invoice(self, invoice_id: UUID, actor: Actor) -> None:
        """Delete a DRAFT invoice with its items and tendered payments."""
        invoice = self.get(invoice_id, for_update=True)
        self._require_draft(invoice)
        before = _snapshot(invoice)
        for payment in self.payments(invoice.id):
            self.session.delete(payment)
        self.session.delete(invoice)
        self.session.flush()
        self._auditor.record(actor.actor_id, "invoice_deleted", "Invoice", invoice_id, before=before)
        logger.info("invoice_deleted", extra={"invoice_number": before["invoice_number"]})

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def _transition(self, invoice: Invoice, action: str, actor: Actor, to_state: str | None = None) -> Transition:
        transition = INVOICE_WORKFLOW.transition(
            action, invoice.status.value, "Invoice", str(invoice.id), to_state=to_state,
        )
        if transition.roles:
            require_role(actor, f"{action} invoice", self._config.roles.for_action(transition.roles))
        return transition

    def _move(self, invoice: Invoice, transition: Transition, actor: Actor) -> None:
        previous = invoice.status
        invoice.status = InvoiceStatus(transition.to_state)
        invoice.updated_by_id = actor.actor_id
        logger.info(
            f"invoice_{transition.action}",
            extra={
                "invoice_number": invoice.invoice_number,
                "from_state": previous.value,
                "to_state": invoice.status.value,
            },
        )

    def verify(self, invoice_id: UUID, actor: Actor) -> Invoice:
        invoice = self.get(invoice_id, for_update=True)
        transition = self._transition(invoice, "verify", actor)
        before = _snapshot(invoice)
        self._move(invoice, transition, actor)
        invoice.verified_by_id = actor.actor_id
        invoice.verified_at = self._clock.now()
        self.session.flush()
        self._auditor.record(actor.actor_id, "invoice_verified", "Invoice", invoice.id, before=before, after=_snapshot(invoice))
        return invoice

    def approve(self, invoice_id: UUID, actor: Actor) -> Invoice:
        """
        Approve a VERIFIED invoice and recognize its revenue.

        Payments tendered at issue are journaled by the same entry.  When
        they cover part or all of the total, the payment side transition
        follows approval in the same transaction.
        """
        invoice = self.get(invoice_id, for_update=True)
        transition = self._transition(invoice, "approve", actor)
        before = _snapshot(invoice)

        if not invoice.revenue_recognized:
            self.recognize_revenue(invoice, self.unjournaled_payments(invoice.id), actor)
        self._move(invoice, transition, actor)
        invoice.approved_by_id = actor.actor_id
        invoice.approved_at = self._clock.now()

        if invoice.paid_amount > 0:
            settled = payment_status_after(invoice.balance_due)
            self._move(invoice, self._transition(invoice, "apply_payment", actor, settled.value), actor)
        self.session.flush()

        self._auditor.record(actor.actor_id, "invoice_approved", "Invoice", invoice.id, before=before, after=_snapshot(invoice))
        return invoice

    def reject(self, invoice_id: UUID, actor: Actor) -> Invoice:
        """Return an unposted invoice to DRAFT, clearing review metadata."""
        invoice = self.get(invoice_id, for_update=True)
        transition = self._transition(invoice, "reject", actor)
        before = _snapshot(invoice)
        self._move(invoice, transition, actor)
        invoice.verified_by_id = None
        invoice.verified_at = None
        invoice.approved_by_id = None
        invoice.approved_at = None
        self.session.flush()
        self._auditor.record(actor.actor_id, "invoice_rejected", "Invoice", invoice.id, before=before, after=_snapshot(invoice))
        return invoice

    def cancel(self, invoice_id: UUID, actor: Actor) -> Invoice:
        invoice = self.get(invoice_id, for_update=True)
        transition = self._transition(invoice, "cancel", actor)
        if invoice.paid_amount > 0:
            raise InvalidDocumentError("invoice", "an invoice holding payments cannot be cancelled")
        before = _snapshot(invoice)
        self._move(invoice, transition, actor)
        self.session.flush()
        self._auditor.record(actor.actor_id, "invoice_cancelled", "Invoice", invoice.id, before=before, after=_snapshot(invoice))
        return invoice

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def recognize_revenue(
        self,
        invoice: Invoice,
        receipts: Sequence[PaymentReceived],
        actor: Actor,
    ) -> JournalEntry:
        """
        Post the invoice's one revenue recognition entry.

        ``receipts`` are payments whose cash this entry journals.  The
        customer's balance moves by the receivable the entry debits.

        Raises:
            RequiredAccountsMissingError: a posting account is missing.
            LockedFiscalYearError: the invoice date is in a locked year.
        """
        lines = self._rules.invoice_recognition(invoice, receipts)
        self._rules.require_accounts(self._accounts, lines)
        entry = self._journal.create_and_post(
            invoice.invoice_date,
            f"Invoice {invoice.invoice_number}",
            lines,
            actor.actor_id,
            reference=invoice.invoice_number,
            source_type=JournalSource.INVOICE,
            source_id=invoice.id,
        )
        invoice.journal_entry_id = entry.id
        for payment in receipts:
            payment.journal_entry_id = entry.id
        self._master.adjust_customer_balance(
            invoice.customer_id, self._rules.receivable_movement(lines), actor.actor_id,
        )
        self.session.flush()

        logger.info(
            "revenue_recognized",
            extra={
                "invoice_number": invoice.invoice_number,
                "entry_number": entry.entry_number,
                "revenue": invoice.subtotal,
                "tax_amount": invoice.tax_amount,
                "receipt_count": len(receipts),
            },
        )
        return entry

    def apply_payment(self, invoice: Invoice, amount: Decimal, actor: Actor) -> InvoiceStatus:
        """
        Add a payment to a locked invoice and take the payment side
        transition.  The caller has already checked the amount.
        """
        new_paid = invoice.paid_amount + amount
        new_balance = invoice.total - new_paid
        target = payment_status_after(new_balance)
        transition = self._transition(invoice, "apply_payment", actor, target.value)
        invoice.paid_amount = new_paid
        invoice.balance_due = new_balance
        self._move(invoice, transition, actor)
        self.session.flush()
        return invoice.status
