"""
JournalEntryEngine -- validation, persistence and posting of journal entries.

Responsibility:
    Validates requested lines, persists DRAFT journal entries with a
    gap-free entry number, edits or deletes drafts, and posts entries into
    the ledger through LedgerStore.

Architecture position:
    Kernel > Services.  Called by BackOffice for manual entries and by every
    document service in ledger_services (via ``create_and_post``).

State machine:
    DRAFT --post()--> POSTED.  Nothing leaves POSTED.

Invariants enforced:
    - At least two lines; each line has exactly one strictly positive side.
    - Sum of debits equals sum of credits (exact, amounts are cents).
    - Every line account exists and is active.
    - Entry numbers come from the "journal_entry:{year}" counter row.
    - post() moves DRAFT -> POSTED with a compare-and-swap UPDATE
      (``... WHERE status = 'draft'``); a second or concurrent post finds no
      draft row and fails with AlreadyPostedError before touching the
      ledger.
    - The fiscal-year check, the status change and the ledger writes share
      the caller's transaction: any failure leaves the entry DRAFT and every
      balance untouched.

Failure modes:
    - InsufficientLinesError, InvalidLineAmountError, UnbalancedEntryError
    - AccountNotFoundError, AccountInactiveError
    - LockedFiscalYearError, AlreadyPostedError
    - EntryLockedError (edit/delete of a posted entry)
    - JournalEntryNotFoundError

Audit relevance:
    create, update, delete and post each queue an AuditRecord and log an
    event (journal_entry_created, _updated, _deleted, _posted).
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AlreadyPostedError,
    EntryLockedError,
    InsufficientLinesError,
    InvalidLineAmountError,
    JournalEntryNotFoundError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    JournalSource,
)
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_engine")


def validate_lines(lines: Sequence[LineSpec]) -> Decimal:
    """
    Check line count, per-line amounts and balance.

    Returns:
        The entry total (sum of debits).

    Raises:
        InsufficientLinesError: fewer than two lines.
        InvalidLineAmountError: a negative, zero or two-sided line,
            or an amount finer than a cent.
        UnbalancedEntryError: debits != credits.
    """
    if len(lines) < 2:
        raise InsufficientLinesError(len(lines))

    debits = ZERO
    credits = ZERO
    for index, line in enumerate(lines):
        if line.debit < 0 or line.credit < 0:
            raise InvalidLineAmountError(index, line.debit, line.credit, "amounts cannot be negative")
        if line.debit > 0 and line.credit > 0:
            raise InvalidLineAmountError(index, line.debit, line.credit, "a line is either a debit or a credit")
        if line.debit == 0 and line.credit == 0:
            raise InvalidLineAmountError(index, line.debit, line.credit, "a line needs a non-zero amount")
        if line.debit != round_money(line.debit) or line.credit != round_money(line.credit):
            raise InvalidLineAmountError(index, line.debit, line.credit, "amounts must be whole cents")
        debits += line.debit
        credits += line.credit

    if debits != credits:
        raise UnbalancedEntryError(debits, credits)
    return debits


def _snapshot(entry: JournalEntry) -> dict:
    return {
        "entry_number": entry.entry_number,
        "entry_date": entry.entry_date.isoformat(),
        "description": entry.description,
        "status": entry.status.value,
        "total": str(entry.total_debits),
        "lines": [
            {
                "account_id": str(line.account_id),
                "debit": str(line.debit),
                "credit": str(line.credit),
            }
            for line in entry.lines
        ],
    }


class JournalEntryEngine(BaseService[JournalEntry]):
    """
    Creates, edits and posts journal entries.

    Contract:
        Every public method flushes within the caller's transaction and
        raises a typed LedgerError on any rule violation.

    Non-goals:
        - Does NOT choose accounts for business documents (posting rules do).
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        number_prefix: str = "JE",
        number_width: int = 6,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._number_prefix = number_prefix
        self._number_width = number_width
        self._accounts = AccountService(session, self._clock)
        self._fiscal_years = FiscalYearService(session, self._clock)
        self._sequences = SequenceService(session)
        self._ledger = LedgerStore(session)
        self._auditor = AuditorService(session, self._clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entry_id: UUID, for_update: bool = False) -> JournalEntry:
        query = select(JournalEntry).where(JournalEntry.id == entry_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        entry = self.session.execute(query).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def get_by_number(self, entry_number: str) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry).where(JournalEntry.entry_number == entry_number)
        ).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(entry_number)
        return entry

    def entries_for_source(self, source_type: JournalSource, source_id: UUID) -> list[JournalEntry]:
        return list(
            self.session.execute(
                select(JournalEntry)
                .where(JournalEntry.source_type == source_type)
                .where(JournalEntry.source_id == source_id)
                .order_by(JournalEntry.entry_number)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _resolve_accounts(self, lines: Sequence[LineSpec]) -> dict[str, Account]:
        accounts: dict[str, Account] = {}
        for line in lines:
            if line.account_code in accounts:
                continue
            account = self._accounts.get_by_code(line.account_code)
            if not account.is_active:
                raise AccountInactiveError(account.code)
            accounts[line.account_code] = account
        return accounts

    def _build_lines(self, lines: Sequence[LineSpec], actor_id: UUID) -> list[JournalLine]:
        accounts = self._resolve_accounts(lines)
        return [
            JournalLine(
                account_id=accounts[spec.account_code].id,
                debit=round_money(spec.debit),
                credit=round_money(spec.credit),
                description=spec.description,
                line_seq=seq,
                created_by_id=actor_id,
            )
            for seq, spec in enumerate(lines, start=1)
        ]

    def create(
        self,
        entry_date: date,
        description: str,
        lines: Sequence[LineSpec],
        actor_id: UUID,
        reference: str | None = None,
        source_type: JournalSource = JournalSource.MANUAL,
        source_id: UUID | None = None,
    ) -> JournalEntry:
        """
        Validate and persist a DRAFT journal entry.

        Postconditions:
            - The entry has a unique number ``{prefix}{year}{seq}``.
            - Lines are stored in the given order (line_seq from 1).
        """
        try:
            total = validate_lines(lines)
        except (InsufficientLinesError, InvalidLineAmountError, UnbalancedEntryError) as exc:
            logger.warning(
                "journal_entry_rejected",
                extra={"reason": exc.code, "description": description, "entry_date": entry_date},
            )
            raise
        journal_lines = self._build_lines(lines, actor_id)

        entry_number = self._sequences.next_number(
            SequenceService.JOURNAL_ENTRY,
            self._number_prefix,
            entry_date.year,
            self._number_width,
        )
        entry = JournalEntry(
            entry_number=entry_number,
            entry_date=entry_date,
            description=description,
            reference=reference,
            status=JournalEntryStatus.DRAFT,
            source_type=source_type,
            source_id=source_id,
            created_by_id=actor_id,
        )
        entry.lines = journal_lines
        self.session.add(entry)
        self.session.flush()
        LogContext.update(entry_id=entry.id)

        self._auditor.record(actor_id, "journal_entry_created", "JournalEntry", entry.id, after=_snapshot(entry))
        logger.info(
            "journal_entry_created",
            extra={
                "entry_number": entry_number,
                "entry_date": entry_date,
                "source_type": source_type.value,
                "line_count": len(journal_lines),
                "total": total,
            },
        )
        return entry

    def post(self, entry_id: UUID, actor_id: UUID) -> JournalEntry:
        """
        Post a DRAFT entry into the ledger.

        Preconditions:
            - The entry exists and is DRAFT.
            - Its date is not inside a locked fiscal year.

        Postconditions:
            - status is POSTED, posted_at/posted_by_id are set.
            - One ledger entry per line exists and account balances moved.

        Raises:
            AlreadyPostedError: entry is not DRAFT (including a concurrent
                post that won the race).
            LockedFiscalYearError: entry date is in a locked fiscal year.
        """
        entry = self.get(entry_id)
        LogContext.update(entry_id=entry.id)
        if entry.status != JournalEntryStatus.DRAFT:
            raise AlreadyPostedError(str(entry.id), entry.entry_number)

        self._fiscal_years.validate_posting_date(entry.entry_date)

        now = self._clock.now()
        result = self.session.execute(
            update(JournalEntry)
            .where(JournalEntry.id == entry.id)
            .where(JournalEntry.status == JournalEntryStatus.DRAFT)
            .values(
                status=JournalEntryStatus.POSTED,
                posted_at=now,
                posted_by_id=actor_id,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "journal_entry_post_conflict",
                extra={"entry_number": entry.entry_number},
            )
            raise AlreadyPostedError(str(entry.id), entry.entry_number)

        self.session.refresh(entry)
        self._ledger.append_entries(entry, actor_id)

        self._auditor.record(
            actor_id, "journal_entry_posted", "JournalEntry", entry.id,
            before={"status": JournalEntryStatus.DRAFT.value},
            after=_snapshot(entry),
        )
        logger.info(
            "journal_entry_posted",
            extra={
                "entry_number": entry.entry_number,
                "entry_date": entry.entry_date,
                "source_type": entry.source_type.value,
                "total": entry.total_debits,
            },
        )
        return entry

    def create_and_post(
        self,
        entry_date: date,
        description: str,
        lines: Sequence[LineSpec],
        actor_id: UUID,
        reference: str | None = None,
        source_type: JournalSource = JournalSource.MANUAL,
        source_id: UUID | None = None,
    ) -> JournalEntry:
        """Create a DRAFT entry and post it in the same transaction."""
        entry = self.create(
            entry_date,
            description,
            lines,
            actor_id,
            reference=reference,
            source_type=source_type,
            source_id=source_id,
        )
        return self.post(entry.id, actor_id)

    def _require_draft(self, entry: JournalEntry) -> None:
        if entry.status != JournalEntryStatus.DRAFT:
            raise EntryLockedError(str(entry.id), entry.status.value)

    def update(
        self,
        entry_id: UUID,
        actor_id: UUID,
        entry_date: date | None = None,
        description: str | None = None,
        reference: str | None = None,
        lines: Sequence[LineSpec] | None = None,
    ) -> JournalEntry:
        """
        Edit a DRAFT entry.  Replacing lines re-runs every line check.

        Raises:
            EntryLockedError: the entry is POSTED.
        """
        entry = self.get(entry_id, for_update=True)
        self._require_draft(entry)
        before = _snapshot(entry)

        if lines is not None:
            validate_lines(lines)
            new_lines = self._build_lines(lines, actor_id)
            entry.lines.clear()
            self.session.flush()
            entry.lines.extend(new_lines)
        if entry_date is not None:
            entry.entry_date = entry_date
        if description is not None:
            entry.description = description
        if reference is not None:
            entry.reference = reference
        entry.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record(
            actor_id, "journal_entry_updated", "JournalEntry", entry.id,
            before=before, after=_snapshot(entry),
        )
        logger.info("journal_entry_updated", extra={"entry_number": entry.entry_number})
        return entry

    def delete(self, entry_id: UUID, actor_id: UUID) -> None:
        """
        Delete a DRAFT entry and its lines.

        Raises:
            EntryLockedError: the entry is POSTED.
        """
        entry = self.get(entry_id, for_update=True)
        self._require_draft(entry)
        before = _snapshot(entry)
        self.session.delete(entry)
        self.session.flush()

        self._auditor.record(actor_id, "journal_entry_deleted", "JournalEntry", entry_id, before=before)
        logger.info("journal_entry_deleted", extra={"entry_number": before["entry_number"]})
