"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import (
    AuditorService,
    AuditRecord,
    AuditSink,
    LogAuditSink,
    RecordingAuditSink,
)
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.journal_engine import JournalEntryEngine, validate_lines
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.sequence_service import SequenceService, format_number

__all__ = [
    "AccountService",
    "AuditRecord",
    "AuditSink",
    "AuditorService",
    "FiscalYearService",
    "JournalEntryEngine",
    "LedgerStore",
    "LogAuditSink",
    "RecordingAuditSink",
    "SequenceService",
    "format_number",
    "validate_lines",
]
