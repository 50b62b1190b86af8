"""
Year-end closing into retained earnings.

Responsibility:
    Closes a fiscal year: posts one entry, dated at the year's end date,
    that zeroes every revenue and expense account's activity inside the
    year against Retained Earnings, then marks the year closed and locked.

Invariants enforced:
    - A year is closed once (FiscalYearAlreadyClosedError).
    - The closing entry posts before the year is locked, in the same
      transaction; a failure leaves the year open and the ledger untouched.
    - A year without revenue or expense activity closes without an entry.
    - Closing requires the ``close_year`` role gate.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.roles import Actor, require_role
from ledger_kernel.exceptions import FiscalYearAlreadyClosedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.journal import JournalSource
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.journal_engine import JournalEntryEngine
from ledger_services.posting_rules import PostingRules

logger = get_logger("services.year_end_closing")


class YearEndClosingService:
    def __init__(self, session: Session, config: LedgerConfig, clock: Clock | None = None):
        self.session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._rules = PostingRules(config)
        self._accounts = AccountService(session, self._clock)
        self._fiscal_years = FiscalYearService(session, self._clock)
        self._selector = LedgerSelector(session)
        self._journal = JournalEntryEngine(
            session, self._clock,
            number_prefix=config.numbering.journal_entry,
            number_width=config.numbering.width,
        )

    def close_year(self, year_id: UUID, actor: Actor) -> FiscalYear:
        """
        Close the fiscal year ``year_id``.

        Raises:
            PermissionDeniedError: actor lacks the close_year role.
            FiscalYearAlreadyClosedError: the year is already closed.
            LockedFiscalYearError: the year was locked without being closed.
            RequiredAccountsMissingError: retained earnings account missing.
        """
        require_role(actor, "close fiscal year", self._config.roles.for_action("close_year"))
        year = self._fiscal_years.get(year_id, for_update=True)
        if year.is_closed:
            raise FiscalYearAlreadyClosedError(year.name)

        movements = self._selector.movements(
            year.start_date,
            year.end_date,
            account_types=(AccountType.REVENUE, AccountType.EXPENSE),
        )
        lines = self._rules.year_end_closing(movements)

        closing_entry_id = None
        if lines:
            self._rules.require_accounts(self._accounts, lines)
            entry = self._journal.create_and_post(
                year.end_date,
                f"Year-end closing {year.name}",
                lines,
                actor.actor_id,
                reference=f"CLOSE-{year.name}",
                source_type=JournalSource.YEAR_END_CLOSE,
                source_id=year.id,
            )
            closing_entry_id = entry.id
            logger.info(
                "closing_entry_posted",
                extra={
                    "fiscal_year": year.name,
                    "entry_number": entry.entry_number,
                    "line_count": len(lines),
                },
            )
        else:
            logger.info("fiscal_year_without_activity", extra={"fiscal_year": year.name})

        return self._fiscal_years.mark_closed(year, actor.actor_id, closing_entry_id)
