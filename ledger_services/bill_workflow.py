"""
Bill workflow -- vendor bill lifecycle and expense posting.

State machine:

    draft --verify--> verified --approve--> posted
      ^                  |
      +-----reject-------+
    draft --cancel--> cancelled

Approval posts Dr Expense (subtotal), Dr Tax Paid (tax), Cr Accounts
Payable (total) and raises the vendor's balance by the total.  Payments
made against a bill are accepted only once it is posted; the bill keeps
status POSTED while its balance_due falls.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.roles import Actor, require_role
from ledger_kernel.domain.workflow import Transition, Workflow
from ledger_kernel.exceptions import (
    BillNotFoundError,
    DocumentLockedError,
    InvalidDocumentError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.bill import Bill, BillItem, BillStatus
from ledger_kernel.models.journal import JournalEntry, JournalSource
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.journal_engine import JournalEntryEngine
from ledger_services.document_math import ItemSpec, TaxRateResolver, compute_document
from ledger_services.master_data import MasterDataService
from ledger_services.numbering import DocumentNumbers
from ledger_services.posting_rules import PostingRules

logger = get_logger("services.bill_workflow")


BILL_WORKFLOW = Workflow(
    name="bill",
    description="Vendor bill lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "verified",
        "posted",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "verified", action="verify", roles="verify"),
        Transition("verified", "posted", action="approve", posts_entry=True, roles="approve"),
        Transition("draft", "draft", action="reject", roles="reject"),
        Transition("verified", "draft", action="reject", roles="reject"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("posted", "posted", action="apply_payment", posts_entry=True),
    ),
    terminal_states=("cancelled",),
)

logger.info(
    "bill_workflow_registered",
    extra={
        "workflow_name": BILL_WORKFLOW.name,
        "state_count": len(BILL_WORKFLOW.states),
        "transition_count": len(BILL_WORKFLOW.transitions),
        "initial_state": BILL_WORKFLOW.initial_state,
    },
)


def _snapshot(bill: Bill) -> dict:
    return {
        "bill_number": bill.bill_number,
        "status": bill.status.value,
        "subtotal": str(bill.subtotal),
        "tax_amount": str(bill.tax_amount),
        "total": str(bill.total),
        "paid_amount": str(bill.paid_amount),
        "balance_due": str(bill.balance_due),
    }


class BillService:
    """Bill lifecycle operations, flushed within the caller's transaction."""

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

    def get(self, bill_id: UUID, for_update: bool = False) -> Bill:
        query = select(Bill).where(Bill.id == bill_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        bill = self.session.execute(query).scalar_one_or_none()
        if bill is None:
            raise BillNotFoundError(str(bill_id))
        if for_update:
            LogContext.update(document_id=bill.id)
        return bill

    def _set_items(self, bill: Bill, items: list[ItemSpec], actor_id: UUID) -> None:
        totals = compute_document(self._tax_rates, items, self._clock.today(), document_type="bill")
        if bill.items:
            bill.items.clear()
            self.session.flush()
        bill.items.extend(
            BillItem(
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
        bill.subtotal = totals.subtotal
        bill.tax_amount = totals.tax_amount
        bill.total = totals.total
        bill.balance_due = totals.total - bill.paid_amount

    def create_bill(
        self,
        vendor_id: UUID,
        bill_date: date,
        items: list[ItemSpec],
        actor: Actor,
        due_date: date | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Bill:
        vendor = self._master.vendor(vendor_id)
        if not vendor.is_active:
            raise InvalidDocumentError("bill", f"vendor {vendor.code} is inactive")
        if due_date is not None and due_date < bill_date:
            raise InvalidDocumentError("bill", "due date precedes bill date")

        bill = Bill(
            bill_number=self._numbers.bill(bill_date.year),
            vendor_id=vendor.id,
            bill_date=bill_date,
            due_date=due_date,
            reference=reference,
            notes=notes,
            status=BillStatus.DRAFT,
            paid_amount=ZERO,
            created_by_id=actor.actor_id,
        )
        self._set_items(bill, items, actor.actor_id)
        self.session.add(bill)
        self.session.flush()
        LogContext.update(document_id=bill.id)

        self._auditor.record(actor.actor_id, "bill_created", "Bill", bill.id, after=_snapshot(bill))
        logger.info(
            "bill_created",
            extra={"bill_number": bill.bill_number, "vendor_code": vendor.code, "total": bill.total},
        )
        return bill

    def _require_draft(self, bill: Bill) -> None:
        if bill.status != BillStatus.DRAFT:
            raise DocumentLockedError("Bill", str(bill.id), bill.status.value)

    def update_bill(
        self,
        bill_id: UUID,
        actor: Actor,
        items: list[ItemSpec] | None = None,
        due_date: date | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Bill:
        bill = self.get(bill_id, for_update=True)
        self._require_draft(bill)
        before = _snapshot(bill)
        if items is not None:
            self._set_items(bill, items, actor.actor_id)
        if due_date is not None:
            bill.due_date = due_date
        if reference is not None:
            bill.reference = reference
        if notes is not None:
            bill.notes = notes
        bill.updated_by_id = actor.actor_id
        self.session.flush()
        self._auditor.record(actor.actor_id, "bill_updated", "Bill", bill.id, before=before, after=_snapshot(bill))
        logger.info("bill_updated", extra={"bill_number": bill.bill_number, "total": bill.total})
        return bill

    def delete_bill(self, bill_id: UUID, actor: Actor) -> None:
        bill = self.get(bill_id, for_update=True)
        self._require_draft(bill)
        before = _snapshot(bill)
        self.session.delete(bill)
        self.session.flush()
        self._auditor.record(actor.actor_id, "bill_deleted", "Bill", bill_id, before=before)
        logger.info("bill_deleted", extra={"bill_number": before["bill_number"]})

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def transition(self, bill: Bill, action: str, actor: Actor) -> Transition:
        transition = BILL_WORKFLOW.transition(action, bill.status.value, "Bill", str(bill.id))
        if transition.roles:
            require_role(actor, f"{action} bill", self._config.roles.for_action(transition.roles))
        return transition

    def _move(self, bill: Bill, transition: Transition, actor: Actor) -> None:
        previous = bill.status
        bill.status = BillStatus(transition.to_state)
        bill.updated_by_id = actor.actor_id
        logger.info(
            f"bill_{transition.action}",
            extra={
                "bill_number": bill.bill_number,
                "from_state": previous.value,
                "to_state": bill.status.value,
            },
        )

    def verify(self, bill_id: UUID, actor: Actor) -> Bill:
        bill = self.get(bill_id, for_update=True)
        transition = self.transition(bill, "verify", actor)
        before = _snapshot(bill)
        self._move(bill, transition, actor)
        bill.verified_by_id = actor.actor_id
        bill.verified_at = self._clock.now()
        self.session.flush()
        self._auditor.record(actor.actor_id, "bill_verified", "Bill", bill.id, before=before, after=_snapshot(bill))
        return bill

    def approve(self, bill_id: UUID, actor: Actor) -> Bill:
        """Post a VERIFIED bill: expense and input tax against payables."""
        bill = self.get(bill_id, for_update=True)
        transition = self.transition(bill, "approve", actor)
        before = _snapshot(bill)

        entry = self._post_bill(bill, actor)
        self._move(bill, transition, actor)
        bill.approved_by_id = actor.actor_id
        bill.approved_at = self._clock.now()
        bill.journal_entry_id = entry.id
        self.session.flush()

        self._auditor.record(actor.actor_id, "bill_posted", "Bill", bill.id, before=before, after=_snapshot(bill))
        return bill

    def _post_bill(self, bill: Bill, actor: Actor) -> JournalEntry:
        lines = self._rules.bill_posting(bill)
        self._rules.require_accounts(self._accounts, lines)
        entry = self._journal.create_and_post(
            bill.bill_date,
            f"Bill {bill.bill_number}",
            lines,
            actor.actor_id,
            reference=bill.bill_number,
            source_type=JournalSource.BILL,
            source_id=bill.id,
        )
        self._master.adjust_vendor_balance(bill.vendor_id, self._rules.payable_movement(lines), actor.actor_id)
        logger.info(
            "bill_expense_posted",
            extra={"bill_number": bill.bill_number, "entry_number": entry.entry_number, "total": bill.total},
        )
        return entry

    def reject(self, bill_id: UUID, actor: Actor) -> Bill:
        bill = self.get(bill_id, for_update=True)
        transition = self.transition(bill, "reject", actor)
        before = _snapshot(bill)
        self._move(bill, transition, actor)
        bill.verified_by_id = None
        bill.verified_at = None
        bill.approved_by_id = None
        bill.approved_at = None
        self.session.flush()
        self._auditor.record(actor.actor_id, "bill_rejected", "Bill", bill.id, before=before, after=_snapshot(bill))
        return bill

    def cancel(self, bill_id: UUID, actor: Actor) -> Bill:
        bill = self.get(bill_id, for_update=True)
        transition = self.transition(bill, "cancel", actor)
        before = _snapshot(bill)
        self._move(bill, transition, actor)
        self.session.flush()
        self._auditor.record(actor.actor_id, "bill_cancelled", "Bill", bill.id, before=before, after=_snapshot(bill))
        return bill

    def apply_payment(self, bill: Bill, amount: Decimal, actor: Actor) -> None:
        """Reduce a locked, posted bill's balance by a checked amount."""
        bill.paid_amount = bill.paid_amount + amount
        bill.balance_due = bill.total - bill.paid_amount
        bill.updated_by_id = actor.actor_id
        self.session.flush()
        logger.info(
            "bill_payment_applied",
            extra={"bill_number": bill.bill_number, "amount": amount, "balance_due": bill.balance_due},
        )
