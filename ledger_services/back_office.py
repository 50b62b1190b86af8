"""
BackOffice -- transactional facade over the ledger services.

Responsibility:
    Every public method is one unit of work: open a session, run the
    service call, commit, then hand the queued audit records to the audit
    sinks.  Any failure rolls the whole operation back and drops its audit
    records.

Architecture position:
    Outermost layer of ledger_services.  Callers (HTTP handlers, CLIs,
    tests) talk to this class; services below it never commit.

Invariants enforced:
    - One database transaction per operation.
    - Audit records reach sinks only after a successful commit.
    - Immutability listeners are registered before the first operation.
    - Each operation runs under a LogContext carrying a fresh
      correlation_id, the actor and the operation name.

Failure modes:
    - Typed ``LedgerError`` subclasses propagate unchanged.
    - ``StaleDataError`` (lost version race) surfaces as OptimisticLockError.
    - ``IntegrityError`` on a unique constraint surfaces as DuplicateCodeError.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import get_session_factory, init_engine_from_url
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.roles import Actor, require_role
from ledger_kernel.exceptions import DuplicateCodeError, OptimisticLockError
from ledger_kernel.logging_config import LogContext, configure_logging, get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.bill import Bill
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.invoice import Invoice
from ledger_kernel.models.journal import JournalEntry, JournalSource
from ledger_kernel.models.party import Customer, Vendor
from ledger_kernel.models.payment import PaymentMade, PaymentMethod, PaymentReceived
from ledger_kernel.models.tax import TaxCode, TaxRate
from ledger_kernel.selectors.ledger_selector import AccountLedger, LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService, AuditSink, LogAuditSink
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.journal_engine import JournalEntryEngine
from ledger_services.bill_workflow import BillService
from ledger_services.chart_seed import SeedResult, seed_defaults
from ledger_services.document_math import ItemSpec, TaxRateResolver
from ledger_services.invoice_workflow import InvoiceService, TenderSpec
from ledger_services.master_data import MasterDataService
from ledger_services.payment_service import PaymentService
from ledger_services.reporting import BalanceSheet, ProfitAndLoss, ReportingService, TrialBalance
from ledger_services.year_end_closing import YearEndClosingService

logger = get_logger("services.back_office")


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate key" in message


def _stale_table(exc: StaleDataError) -> str:
    match = re.search(r"table '(\w+)'", str(exc))
    return match.group(1) if match else "document"


class BackOffice:
    """
    Public entry point of the back office.

    Contract:
        Methods take plain values and an ``Actor`` and return ORM
        instances detached from their (closed) session, or frozen report
        dataclasses.  Sessions are created with ``expire_on_commit=False``
        so returned instances keep their loaded attributes.
    """

    def __init__(
        self,
        config: LedgerConfig,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        audit_sinks: Iterable[AuditSink] | None = None,
    ):
        self.config = config
        self.clock = clock or SystemClock()
        configure_logging(level=logging.getLevelName(config.log_level.upper()))
        if session_factory is None:
            db = config.database
            init_engine_from_url(
                db.url,
                echo=db.echo,
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_timeout=db.pool_timeout,
                busy_timeout=db.busy_timeout,
            )
            session_factory = get_session_factory()
        self._session_factory = session_factory
        self.audit_sinks: list[AuditSink] = list(audit_sinks) if audit_sinks is not None else [LogAuditSink()]
        register_immutability_listeners()

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self, operation: str, actor_id: UUID | None = None) -> Iterator[Session]:
        """
        One transaction: commit and dispatch audit on success, roll back
        and discard audit on failure.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id else None,
            operation=operation,
        ):
            session = self._session_factory()
            auditor = AuditorService(session, self.clock)
            try:
                yield session
                session.commit()
            except StaleDataError as exc:
                session.rollback()
                auditor.discard()
                logger.warning("optimistic_lock_conflict", extra={"operation": operation})
                raise OptimisticLockError(_stale_table(exc), operation) from exc
            except IntegrityError as exc:
                session.rollback()
                auditor.discard()
                if _is_unique_violation(exc):
                    logger.warning("unique_constraint_violated", extra={"operation": operation})
                    raise DuplicateCodeError(
                        operation.removeprefix("create_"), str(exc.orig).splitlines()[0],
                    ) from exc
                raise
            except Exception:
                session.rollback()
                auditor.discard()
                raise
            else:
                dispatched = auditor.dispatch(self.audit_sinks)
                logger.debug(
                    "operation_committed",
                    extra={"operation": operation, "audit_records": dispatched},
                )
            finally:
                session.close()

    def _journal(self, session: Session) -> JournalEntryEngine:
        return JournalEntryEngine(
            session, self.clock,
            number_prefix=self.config.numbering.journal_entry,
            number_width=self.config.numbering.width,
        )

    # ------------------------------------------------------------------
    # Setup and master data
    # ------------------------------------------------------------------

    def seed_defaults(self, actor: Actor, year: int | None = None) -> SeedResult:
        with self.unit_of_work("seed_defaults", actor.actor_id) as session:
            return seed_defaults(session, actor.actor_id, self.clock, year)

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType | str,
        actor: Actor,
        parent_code: str | None = None,
        description: str | None = None,
    ) -> Account:
        with self.unit_of_work("create_account", actor.actor_id) as session:
            return AccountService(session, self.clock).create_account(
                code, name, AccountType(account_type), actor.actor_id, parent_code, description,
            )

    def set_account_parent(self, code: str, parent_code: str | None, actor: Actor) -> Account:
        with self.unit_of_work("set_account_parent", actor.actor_id) as session:
            return AccountService(session, self.clock).set_parent(code, parent_code, actor.actor_id)

    def set_account_active(self, code: str, is_active: bool, actor: Actor) -> Account:
        with self.unit_of_work("set_account_active", actor.actor_id) as session:
            return AccountService(session, self.clock).set_active(code, is_active, actor.actor_id)

    def get_account(self, code: str) -> Account:
        with self.unit_of_work("get_account") as session:
            return AccountService(session, self.clock).get_by_code(code)

    def create_customer(self, code: str, name: str, actor: Actor, email: str | None = None) -> Customer:
        with self.unit_of_work("create_customer", actor.actor_id) as session:
            return MasterDataService(session, self.clock).create_customer(code, name, actor.actor_id, email)

    def get_customer(self, customer_id: UUID) -> Customer:
        with self.unit_of_work("get_customer") as session:
            return MasterDataService(session, self.clock).customer(customer_id)

    def create_vendor(self, code: str, name: str, actor: Actor, email: str | None = None) -> Vendor:
        with self.unit_of_work("create_vendor", actor.actor_id) as session:
            return MasterDataService(session, self.clock).create_vendor(code, name, actor.actor_id, email)

    def get_vendor(self, vendor_id: UUID) -> Vendor:
        with self.unit_of_work("get_vendor") as session:
            return MasterDataService(session, self.clock).vendor(vendor_id)

    def create_tax_code(
        self,
        code: str,
        name: str,
        rate: Decimal,
        effective_from: date,
        actor: Actor,
        effective_to: date | None = None,
    ) -> TaxCode:
        with self.unit_of_work("create_tax_code", actor.actor_id) as session:
            return MasterDataService(session, self.clock).create_tax_code(
                code, name, rate, effective_from, actor.actor_id, effective_to,
            )

    def add_tax_rate(
        self,
        code: str,
        rate: Decimal,
        effective_from: date,
        actor: Actor,
        effective_to: date | None = None,
    ) -> TaxRate:
        with self.unit_of_work("add_tax_rate", actor.actor_id) as session:
            tax_code = TaxRateResolver(session).tax_code(code)
            return MasterDataService(session, self.clock).add_tax_rate(
                tax_code, rate, effective_from, actor.actor_id, effective_to,
            )

    # ------------------------------------------------------------------
    # Fiscal years
    # ------------------------------------------------------------------

    def create_fiscal_year(self, name: str, start_date: date, end_date: date, actor: Actor) -> FiscalYear:
        with self.unit_of_work("create_fiscal_year", actor.actor_id) as session:
            return FiscalYearService(session, self.clock).create_year(name, start_date, end_date, actor.actor_id)

    def lock_fiscal_year(self, year_id: UUID, actor: Actor) -> FiscalYear:
        require_role(actor, "lock fiscal year", self.config.roles.for_action("lock_year"))
        with self.unit_of_work("lock_fiscal_year", actor.actor_id) as session:
            return FiscalYearService(session, self.clock).lock_year(year_id, actor.actor_id)

    def close_fiscal_year(self, year_id: UUID, actor: Actor) -> FiscalYear:
        with self.unit_of_work("close_fiscal_year", actor.actor_id) as session:
            return YearEndClosingService(session, self.config, self.clock).close_year(year_id, actor)

    def get_fiscal_year(self, name: str) -> FiscalYear:
        with self.unit_of_work("get_fiscal_year") as session:
            return FiscalYearService(session, self.clock).get_by_name(name)

    # ------------------------------------------------------------------
    # Manual journal entries
    # ------------------------------------------------------------------

    def create_journal_entry(
        self,
        entry_date: date,
        description: str,
        lines: Sequence[LineSpec],
        actor: Actor,
        reference: str | None = None,
    ) -> JournalEntry:
        with self.unit_of_work("create_journal_entry", actor.actor_id) as session:
            return self._journal(session).create(
                entry_date, description, lines, actor.actor_id, reference=reference,
            )

    def post_journal_entry(self, entry_id: UUID, actor: Actor) -> JournalEntry:
        with self.unit_of_work("post_journal_entry", actor.actor_id) as session:
            return self._journal(session).post(entry_id, actor.actor_id)

    def create_and_post_journal_entry(
        self,
        entry_date: date,
        description: str,
        lines: Sequence[LineSpec],
        actor: Actor,
        reference: str | None = None,
    ) -> JournalEntry:
        with self.unit_of_work("create_and_post_journal_entry", actor.actor_id) as session:
            return self._journal(session).create_and_post(
                entry_date, description, lines, actor.actor_id, reference=reference,
            )

    def update_journal_entry(
        self,
        entry_id: UUID,
        actor: Actor,
        entry_date: date | None = None,
        description: str | None = None,
        reference: str | None = None,
        lines: Sequence[LineSpec] | None = None,
    ) -> JournalEntry:
        with self.unit_of_work("update_journal_entry", actor.actor_id) as session:
            return self._journal(session).update(
                entry_id, actor.actor_id,
                entry_date=entry_date, description=description, reference=reference, lines=lines,
            )

    def delete_journal_entry(self, entry_id: UUID, actor: Actor) -> None:
        with self.unit_of_work("delete_journal_entry", actor.actor_id) as session:
            self._journal(session).delete(entry_id, actor.actor_id)

    def get_journal_entry(self, entry_id: UUID) -> JournalEntry:
        with self.unit_of_work("get_journal_entry") as session:
            return self._journal(session).get(entry_id)

    def get_journal_entry_by_number(self, entry_number: str) -> JournalEntry:
        with self.unit_of_work("get_journal_entry_by_number") as session:
            return self._journal(session).get_by_number(entry_number)

    def journal_entries_for_source(self, source_type: JournalSource, source_id: UUID) -> list[JournalEntry]:
        """Entries posted from one document or fiscal year, in number order."""
        with self.unit_of_work("journal_entries_for_source") as session:
            return self._journal(session).entries_for_source(JournalSource(source_type), source_id)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

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
        with self.unit_of_work("create_invoice", actor.actor_id) as session:
            return InvoiceService(session, self.config, self.clock).create_invoice(
                customer_id, invoice_date, items, actor,
                due_date=due_date, reference=reference, notes=notes,
                discount=discount, tendered=tendered,
            )

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
        with self.unit_of_work("update_invoice", actor.actor_id) as session:
            return InvoiceService(session, self.config, self.clock).update_invoice(
                invoice_id, actor, items=items, discount=discount,
                due_date=due_date, reference=reference, notes=notes,
            )

    def delete_invoice(self, invoice_id: UUID, actor: Actor) -> None:
        with self.unit_of_work("delete_invoice", actor.actor_id) as session:
            InvoiceService(session, self.config, self.clock).delete_invoice(invoice_id, actor)

    def verify_invoice(self, invoice_id: UUID, actor: Actor) -> Invoice:
        with self.unit_of_work("verify_invoice", actor.actor_id) as session:
            return InvoiceService(session, self.config, self.clock).verify(invoice_id, actor)

    def approve_invoice(self, invoice_id: UUID, actor: Actor) -> Invoice:
        with self.unit_of_work("approve_invoice", actor.actor_id) as session:
            return InvoiceService(session, self.config, self.clock).approve(invoice_id, actor)

    def reject_invoice(self, invoice_id: UUID, actor: Actor) -> Invoice:
        with self.unit_of_work("reject_invoice", actor.actor_id) as session:
            return InvoiceService(session, self.config, self.clock).reject(invoice_id, actor)

    def cancel_invoice(self, invoice_id: UUID, actor: Actor) -> Invoice:
        with self.unit_of_work("cancel_invoice", actor.actor_id) as session:
            return InvoiceService(session, self.config, self.clock).cancel(invoice_id, actor)

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        with self.unit_of_work("get_invoice") as session:
            return InvoiceService(session, self.config, self.clock).get(invoice_id)

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

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
        with self.unit_of_work("create_bill", actor.actor_id) as session:
            return BillService(session, self.config, self.clock).create_bill(
                vendor_id, bill_date, items, actor, due_date=due_date, reference=reference, notes=notes,
            )

    def update_bill(
        self,
        bill_id: UUID,
        actor: Actor,
        items: list[ItemSpec] | None = None,
        due_date: date | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Bill:
        with self.unit_of_work("update_bill", actor.actor_id) as session:
            return BillService(session, self.config, self.clock).update_bill(
                bill_id, actor, items=items, due_date=due_date, reference=reference, notes=notes,
            )

    def delete_bill(self, bill_id: UUID, actor: Actor) -> None:
        with self.unit_of_work("delete_bill", actor.actor_id) as session:
            BillService(session, self.config, self.clock).delete_bill(bill_id, actor)

    def verify_bill(self, bill_id: UUID, actor: Actor) -> Bill:
        with self.unit_of_work("verify_bill", actor.actor_id) as session:
            return BillService(session, self.config, self.clock).verify(bill_id, actor)

    def approve_bill(self, bill_id: UUID, actor: Actor) -> Bill:
        with self.unit_of_work("approve_bill", actor.actor_id) as session:
            return BillService(session, self.config, self.clock).approve(bill_id, actor)

    def reject_bill(self, bill_id: UUID, actor: Actor) -> Bill:
        with self.unit_of_work("reject_bill", actor.actor_id) as session:
            return BillService(session, self.config, self.clock).reject(bill_id, actor)

    def cancel_bill(self, bill_id: UUID, actor: Actor) -> Bill:
        with self.unit_of_work("cancel_bill", actor.actor_id) as session:
            return BillService(session, self.config, self.clock).cancel(bill_id, actor)

    def get_bill(self, bill_id: UUID) -> Bill:
        with self.unit_of_work("get_bill") as session:
            return BillService(session, self.config, self.clock).get(bill_id)

    # ------------------------------------------------------------------
    # Payments
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
        with self.unit_of_work("receive_payment", actor.actor_id) as session:
            return PaymentService(session, self.config, self.clock).receive_payment(
                customer_id, amount, method, payment_date, actor,
                invoice_id=invoice_id, reference=reference, notes=notes,
            )

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
        with self.unit_of_work("make_payment", actor.actor_id) as session:
            return PaymentService(session, self.config, self.clock).make_payment(
                vendor_id, amount, method, payment_date, actor,
                bill_id=bill_id, reference=reference, notes=notes,
            )

    def payments_for_invoice(self, invoice_id: UUID) -> list[PaymentReceived]:
        with self.unit_of_work("payments_for_invoice") as session:
            return PaymentService(session, self.config, self.clock).payments_for_invoice(invoice_id)

    def payments_for_bill(self, bill_id: UUID) -> list[PaymentMade]:
        with self.unit_of_work("payments_for_bill") as session:
            return PaymentService(session, self.config, self.clock).payments_for_bill(bill_id)

    def get_payment_received(self, payment_id: UUID) -> PaymentReceived:
        with self.unit_of_work("get_payment_received") as session:
            return PaymentService(session, self.config, self.clock).get_received(payment_id)

    def get_payment_made(self, payment_id: UUID) -> PaymentMade:
        with self.unit_of_work("get_payment_made") as session:
            return PaymentService(session, self.config, self.clock).get_made(payment_id)

    # ------------------------------------------------------------------
    # Ledger and reports
    # ------------------------------------------------------------------

    def account_balance(self, code: str) -> Decimal:
        with self.unit_of_work("account_balance") as session:
            return AccountService(session, self.clock).get_by_code(code).current_balance

    def replay_balance(self, code: str, as_of: date | None = None) -> Decimal:
        with self.unit_of_work("replay_balance") as session:
            account = AccountService(session, self.clock).get_by_code(code)
            return LedgerSelector(session).replay_balance(account.id, as_of)

    def trial_balance(self, as_of: date | None = None) -> TrialBalance:
        with self.unit_of_work("trial_balance") as session:
            return ReportingService(session, self.config).trial_balance(as_of)

    def profit_and_loss(self, start_date: date, end_date: date) -> ProfitAndLoss:
        with self.unit_of_work("profit_and_loss") as session:
            return ReportingService(session, self.config).profit_and_loss(start_date, end_date)

    def balance_sheet(self, as_of: date) -> BalanceSheet:
        with self.unit_of_work("balance_sheet") as session:
            return ReportingService(session, self.config).balance_sheet(as_of)

    def account_ledger(
        self,
        code: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AccountLedger:
        with self.unit_of_work("account_ledger") as session:
            return ReportingService(session, self.config).account_ledger(code, start_date, end_date)
