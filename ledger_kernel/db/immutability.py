"""
ORM-level immutability enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted accounting facts must not change.  Corrections are new entries.
This module hooks SQLAlchemy flush events and refuses UPDATE/DELETE
statements that would rewrite history:

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A failed check aborts the flush; the caller's transaction rolls back and the
database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|---------------------------------------------------------------
JournalEntry    | No field changes and no delete once status is POSTED
JournalLine     | No changes and no delete once the parent entry is POSTED
LedgerEntry     | Append-only: never updated, never deleted
Account         | current_balance is written only inside LedgerStore
FiscalYear      | A closed year cannot be reopened or unlocked

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id may change on protected rows.  They are audit
   metadata, not financial data.

2. "Was posted", not "is posted".  The DRAFT -> POSTED transition itself
   is allowed; changes after it are not.  Attribute history tells the two
   apart.

3. LedgerStore marks its balance writes through ``session.info`` (see
   ``BALANCE_WRITE_FLAG``); any other code path that changes
   Account.current_balance is rejected at flush.

4. Inline model imports avoid circular imports between db/ and models/.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (BackOffice does it)

Tests that need to break the rules on purpose may call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import object_session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BALANCE_WRITE_FLAG = "ledger_store.balance_write"

_AUDIT_FIELDS = ("updated_at", "updated_by_id")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _was_posted(target) -> bool:
    from ledger_kernel.models.journal import JournalEntryStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0] == JournalEntryStatus.POSTED
    if not status_history.added:
        return target.status == JournalEntryStatus.POSTED
    return False


def _check_journal_entry_immutability(mapper, connection, target):
    """Block any field change on an entry that was already POSTED."""
    if not _was_posted(target):
        return

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS or attr.key == "lines":
            continue
        if attr.history.has_changes():
            _blocked(
                "JournalEntry",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on posted journal entry",
                field=attr.key,
            )


def _check_journal_entry_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.status == JournalEntryStatus.POSTED:
        _blocked(
            "JournalEntry", target.id, "DELETE",
            "Posted journal entries cannot be deleted",
        )


def _check_journal_line_immutability(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.entry is not None and target.entry.status == JournalEntryStatus.POSTED:
        _blocked(
            "JournalLine", target.id, "UPDATE",
            "Journal lines cannot be modified after parent entry is posted",
        )


def _check_journal_line_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.entry is not None and target.entry.status == JournalEntryStatus.POSTED:
        _blocked(
            "JournalLine", target.id, "DELETE",
            "Journal lines cannot be deleted after parent entry is posted",
        )


def _check_ledger_entry_update(mapper, connection, target):
    _blocked("LedgerEntry", target.id, "UPDATE", "Ledger entries are append-only")


def _check_ledger_entry_delete(mapper, connection, target):
    _blocked("LedgerEntry", target.id, "DELETE", "Ledger entries are append-only")


def _check_account_balance_write(mapper, connection, target):
    """Only LedgerStore may move Account.current_balance."""
    if not get_history(target, "current_balance").has_changes():
        return
    session = object_session(target)
    if session is not None and session.info.get(BALANCE_WRITE_FLAG):
        return
    _blocked(
        "Account", target.id, "UPDATE",
        "current_balance changes only through ledger posting",
        field="current_balance",
    )


def _check_fiscal_year_immutability(mapper, connection, target):
    """A closed fiscal year stays closed and locked."""
    closed_history = get_history(target, "is_closed")
    was_closed = (
        closed_history.deleted[0] if closed_history.deleted else target.is_closed
    )
    if not was_closed:
        return
    for key in ("is_closed", "is_locked", "start_date", "end_date", "closing_entry_id"):
        if get_history(target, key).has_changes():
            _blocked(
                "FiscalYear", target.id, "UPDATE",
                f"Cannot modify '{key}' on a closed fiscal year",
                field=key,
            )


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.fiscal_year import FiscalYear
    from ledger_kernel.models.journal import JournalEntry, JournalLine
    from ledger_kernel.models.ledger import LedgerEntry

    return (
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_immutability),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (LedgerEntry, "before_update", _check_ledger_entry_update),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (Account, "before_update", _check_account_balance_write),
        (FiscalYear, "before_update", _check_fiscal_year_immutability),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only for tests that must violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
