"""
SequenceService -- gap-free number allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence values for journal entry numbers,
    document numbers and the global ledger posting order.  A dedicated
    counter table with row-level locking (``SELECT ... FOR UPDATE``)
    guarantees uniqueness and ordering under concurrent access.

Architecture position:
    Kernel > Services -- called by JournalEntryEngine, LedgerStore and the
    document services in ledger_services.

Invariants enforced:
    - Counting existing rows (or MAX()+1) is never used; the locked counter
      row is the sole source of truth for the next value.
    - The increment is part of the caller's transaction: a rollback
      returns the value, so committed numbers have no gaps.

Failure modes:
    - IntegrityError: concurrent first use of a counter name (handled via a
      savepoint and a locked re-read).

Audit relevance:
    Allocation is logged at DEBUG with sequence_name and value.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "journal_entry:2026", "invoice:2026", "ledger_posting"
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


def format_number(prefix: str, year: int, value: int, width: int = 6) -> str:
    """Render a document number, e.g. ``format_number("JE", 2026, 1) -> "JE2026000001"``."""
    return f"{prefix}{year}{value:0{width}d}"


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly increasing
        integer.  The increment commits with the caller's transaction.

    Non-goals:
        - Does NOT call ``session.commit()``.

    Usage:
        seq = SequenceService(session).next_value("journal_entry:2026")
    """

    JOURNAL_ENTRY = "journal_entry"
    LEDGER_POSTING = "ledger_posting"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def yearly(name: str, year: int) -> str:
        return f"{name}:{year}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this name.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use. Another transaction may create the row at the same
            # time; the savepoint keeps the caller's other work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_number(self, name: str, prefix: str, year: int, width: int = 6) -> str:
        """Allocate the next yearly value of ``name`` and format it."""
        value = self.next_value(self.yearly(name, year))
        return format_number(prefix, year, value, width)
