"""
FiscalYearService -- fiscal year lifecycle and posting-date validation.

Responsibility:
    Creates fiscal years, locks them, marks them closed after year-end
    closing, and validates that a posting date does not fall inside a
    locked year before the journal engine writes anything.

Architecture position:
    Kernel > Services -- called by JournalEntryEngine.post() on every post
    and by the year-end closing service in ledger_services.

Invariants enforced:
    - No posting into a locked fiscal year.  Dates outside every defined
      year are accepted.
    - A posting and a lock or close of its year serialize on the year row.
    - Fiscal years never overlap.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - LockedFiscalYearError: posting date inside a locked year.
    - FiscalYearOverlapError: new year overlaps an existing one.
    - FiscalYearAlreadyClosedError: closing a closed year.
    - FiscalYearNotFoundError: unknown id or name.

Audit relevance:
    Creation, lock and close are logged with the year name and actor;
    rejected posting dates are logged at WARNING.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Select, and_, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    FiscalYearAlreadyClosedError,
    FiscalYearNotFoundError,
    FiscalYearOverlapError,
    InvalidDocumentError,
    LockedFiscalYearError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.fiscal_year")


def _snapshot(year: FiscalYear) -> dict:
    return {
        "name": year.name,
        "start_date": year.start_date.isoformat(),
        "end_date": year.end_date.isoformat(),
        "is_locked": year.is_locked,
        "is_closed": year.is_closed,
    }


def covering_year_query(value: date, for_share: bool = False) -> Select:
    """Select the fiscal year containing ``value``, optionally under FOR SHARE."""
    query = select(FiscalYear).where(
        and_(FiscalYear.start_date <= value, FiscalYear.end_date >= value)
    )
    if for_share:
        query = query.with_for_update(read=True)
    return query


class FiscalYearService(BaseService[FiscalYear]):
    """
    Service for fiscal year lifecycle.

    Contract:
        Validation methods raise typed exceptions; lifecycle methods flush
        within the caller's transaction.

    Non-goals:
        - Does NOT compute closing entries (YearEndClosingService does).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = AuditorService(session, self._clock)

    def year_for_date(self, value: date, for_share: bool = False) -> FiscalYear | None:
        query = covering_year_query(value, for_share)
        if for_share:
            query = query.execution_options(populate_existing=True)
        return self.session.execute(query).scalar_one_or_none()

    def validate_posting_date(self, entry_date: date) -> None:
        """
        Reject posting dates inside a locked fiscal year.

        The covering year is read under a shared row lock held to the end
        of the transaction, so a concurrent lock or close of that year
        waits for this posting to commit, and this posting waits for a
        lock or close already in progress and then sees its outcome.

        Raises:
            LockedFiscalYearError: the covering year is locked.
        """
        year = self.year_for_date(entry_date, for_share=True)
        if year is not None and year.is_locked:
            logger.warning(
                "posting_into_locked_year_rejected",
                extra={"entry_date": entry_date, "fiscal_year": year.name},
            )
            raise LockedFiscalYearError(entry_date, year.name)

    def get(self, year_id: UUID, for_update: bool = False) -> FiscalYear:
        query = select(FiscalYear).where(FiscalYear.id == year_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        year = self.session.execute(query).scalar_one_or_none()
        if year is None:
            raise FiscalYearNotFoundError(str(year_id))
        return year

    def get_by_name(self, name: str) -> FiscalYear:
        year = self.session.execute(
            select(FiscalYear).where(FiscalYear.name == name)
        ).scalar_one_or_none()
        if year is None:
            raise FiscalYearNotFoundError(name)
        return year

    def create_year(
        self,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalYear:
        """
        Create a fiscal year covering [start_date, end_date].

        Raises:
            InvalidDocumentError: end_date before start_date.
            FiscalYearOverlapError: range overlaps an existing year.
        """
        if end_date < start_date:
            raise InvalidDocumentError("fiscal year", "end date precedes start date")

        overlapping = self.session.execute(
            select(FiscalYear).where(
                and_(FiscalYear.start_date <= end_date, FiscalYear.end_date >= start_date)
            )
        ).scalars().first()
        if overlapping is not None:
            raise FiscalYearOverlapError(name, overlapping.name)

        year = FiscalYear(
            name=name,
            start_date=start_date,
            end_date=end_date,
            created_by_id=actor_id,
        )
        self.session.add(year)
        self.session.flush()

        self._auditor.record(actor_id, "fiscal_year_created", "FiscalYear", year.id, after=_snapshot(year))
        logger.info(
            "fiscal_year_created",
            extra={"fiscal_year": name, "start_date": start_date, "end_date": end_date},
        )
        return year

    def lock_year(self, year_id: UUID, actor_id: UUID) -> FiscalYear:
        """Lock a year against further postings (idempotent)."""
        year = self.get(year_id, for_update=True)
        if year.is_locked:
            return year
        before = _snapshot(year)
        year.is_locked = True
        year.updated_by_id = actor_id
        self.session.flush()
        self._auditor.record(
            actor_id, "fiscal_year_locked", "FiscalYear", year.id,
            before=before, after=_snapshot(year),
        )
        logger.info("fiscal_year_locked", extra={"fiscal_year": year.name})
        return year

    def mark_closed(
        self,
        year: FiscalYear,
        actor_id: UUID,
        closing_entry_id: UUID | None,
    ) -> FiscalYear:
        """
        Record a completed year-end close: closed and locked together.

        Preconditions: ``year`` was loaded with a row lock by the caller.
        """
        if year.is_closed:
            raise FiscalYearAlreadyClosedError(year.name)
        before = _snapshot(year)
        year.is_closed = True
        year.is_locked = True
        year.closing_entry_id = closing_entry_id
        year.updated_by_id = actor_id
        self.session.flush()
        self._auditor.record(
            actor_id, "fiscal_year_closed", "FiscalYear", year.id,
            before=before, after=_snapshot(year),
        )
        logger.info(
            "fiscal_year_closed",
            extra={"fiscal_year": year.name, "closing_entry_id": closing_entry_id},
        )
        return year
