"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of an accounting engine must tell a rejected entry from a missing
document from a lost race without parsing message text.  Every error here:

  1. Has its own class (catch by type, not by message).
  2. Carries a ``code`` class attribute (machine-readable, API-safe).
  3. Carries a ``kind`` class attribute naming its category, so an outer
     layer can map whole families onto one response (HTTP status, retry
     policy, user message).
  4. Stores its context as attributes, never only inside the message.

Example:

    try:
        back_office.approve_invoice(invoice_id, actor)
    except InvalidStateTransitionError as e:
        return {"error": e.code, "required_state": e.required_state}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError                      kind = "validation"
    |   +-- UnbalancedEntryError
    |   +-- InsufficientLinesError
    |   +-- InvalidLineAmountError
    |   +-- InvalidPaymentAmountError
    |   +-- OverpaymentError
    |   +-- InvalidAccountParentError
    |   +-- InvalidDocumentError
    |
    +-- NotFoundError                        kind = "not_found"
    |   +-- AccountNotFoundError
    |   +-- JournalEntryNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- BillNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- CustomerNotFoundError
    |   +-- VendorNotFoundError
    |   +-- TaxCodeNotFoundError
    |   +-- FiscalYearNotFoundError
    |
    +-- ConflictError                        kind = "conflict"
    |   +-- DuplicateCodeError
    |   +-- EntryLockedError
    |   +-- DocumentLockedError
    |   +-- OptimisticLockError
    |   +-- FiscalYearAlreadyClosedError
    |   +-- FiscalYearOverlapError
    |   +-- AccountInactiveError
    |   +-- ImmutabilityViolationError
    |
    +-- InvalidStateTransitionError          kind = "invalid_state_transition"
    |
    +-- BusinessRuleError                    kind = "business_rule"
    |   +-- LockedFiscalYearError
    |   +-- AlreadyPostedError
    |
    +-- ConfigurationError                   kind = "configuration"
    |   +-- RequiredAccountsMissingError
    |
    +-- AuthorizationError                   kind = "authorization"
        +-- PermissionDeniedError

===============================================================================
HANDLING RULES
===============================================================================

* Every error is raised synchronously by the operation that detected it and
  aborts that operation's transaction.  Nothing in the kernel retries.
* ``OptimisticLockError`` is the only error a caller may reasonably retry.
* ``error_payload()`` renders any LedgerError as a plain dict for an outer
  HTTP or CLI layer.
"""

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    Every subclass declares a ``code`` class attribute for machine-readable
    identification; categories declare ``kind``.
    """

    code: str = "LEDGER_ERROR"
    kind: str = "internal"


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class ValidationError(LedgerError):
    """Input is structurally or arithmetically invalid."""

    code: str = "VALIDATION_ERROR"
    kind: str = "validation"


class NotFoundError(LedgerError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"
    kind: str = "not_found"


class ConflictError(LedgerError):
    """The operation conflicts with the current state of stored data."""

    code: str = "CONFLICT"
    kind: str = "conflict"


class InvalidStateTransitionError(LedgerError):
    """A workflow action was requested from the wrong state."""

    code: str = "INVALID_STATE_TRANSITION"
    kind: str = "invalid_state_transition"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        current_state: str,
        required_state: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        self.current_state = current_state
        self.required_state = required_state
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: status is "
            f"{current_state}, requires {required_state}"
        )


class BusinessRuleError(LedgerError):
    """An accounting rule forbids the operation."""

    code: str = "BUSINESS_RULE_VIOLATION"
    kind: str = "business_rule"


class ConfigurationError(LedgerError):
    """The system is not configured to perform the operation."""

    code: str = "CONFIGURATION_ERROR"
    kind: str = "configuration"


class AuthorizationError(LedgerError):
    """The acting user may not perform the operation."""

    code: str = "AUTHORIZATION_ERROR"
    kind: str = "authorization"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class UnbalancedEntryError(ValidationError):
    """Total debits do not equal total credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Debits must equal credits: debits={debits}, credits={credits}"
        )


class InsufficientLinesError(ValidationError):
    """A journal entry needs at least two lines."""

    code: str = "INSUFFICIENT_LINES"

    def __init__(self, line_count: int, minimum: int = 2):
        self.line_count = line_count
        self.minimum = minimum
        super().__init__(
            f"Journal entry must have at least {minimum} lines, got {line_count}"
        )


class InvalidLineAmountError(ValidationError):
    """A journal line is negative, zero, or carries both sides."""

    code: str = "INVALID_LINE_AMOUNT"

    def __init__(self, line_index: int, debit: Decimal, credit: Decimal, reason: str):
        self.line_index = line_index
        self.debit = debit
        self.credit = credit
        self.reason = reason
        super().__init__(f"Invalid amounts on line {line_index}: {reason}")


class InvalidPaymentAmountError(ValidationError):
    """Payment amount must be strictly positive."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, amount: Decimal):
        self.amount = amount
        super().__init__(f"Payment amount must be greater than zero, got {amount}")


class OverpaymentError(ValidationError):
    """Payment exceeds the document's outstanding balance."""

    code: str = "OVERPAYMENT"

    def __init__(self, document_type: str, document_id: str, amount: Decimal, balance_due: Decimal):
        self.document_type = document_type
        self.document_id = document_id
        self.amount = amount
        self.balance_due = balance_due
        super().__init__(
            f"Payment of {amount} exceeds balance due {balance_due} "
            f"on {document_type} {document_id}"
        )


class InvalidAccountParentError(ValidationError):
    """Account parent assignment would create a self-reference or a cycle."""

    code: str = "INVALID_ACCOUNT_PARENT"

    def __init__(self, account_code: str, parent_code: str, reason: str):
        self.account_code = account_code
        self.parent_code = parent_code
        self.reason = reason
        super().__init__(
            f"Account {account_code} cannot have parent {parent_code}: {reason}"
        )


class InvalidDocumentError(ValidationError):
    """Document fields are missing or inconsistent."""

    code: str = "INVALID_DOCUMENT"

    def __init__(self, document_type: str, reason: str):
        self.document_type = document_type
        self.reason = reason
        super().__init__(f"Invalid {document_type}: {reason}")


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class _EntityNotFoundError(NotFoundError):
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class AccountNotFoundError(_EntityNotFoundError):
    """Account with the given id or code does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"
    entity_type = "Account"


class JournalEntryNotFoundError(_EntityNotFoundError):
    code: str = "JOURNAL_ENTRY_NOT_FOUND"
    entity_type = "Journal entry"


class InvoiceNotFoundError(_EntityNotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity_type = "Invoice"


class BillNotFoundError(_EntityNotFoundError):
    code: str = "BILL_NOT_FOUND"
    entity_type = "Bill"


class PaymentNotFoundError(_EntityNotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity_type = "Payment"


class CustomerNotFoundError(_EntityNotFoundError):
    code: str = "CUSTOMER_NOT_FOUND"
    entity_type = "Customer"


class VendorNotFoundError(_EntityNotFoundError):
    code: str = "VENDOR_NOT_FOUND"
    entity_type = "Vendor"


class TaxCodeNotFoundError(_EntityNotFoundError):
    code: str = "TAX_CODE_NOT_FOUND"
    entity_type = "Tax code"


class FiscalYearNotFoundError(_EntityNotFoundError):
    code: str = "FISCAL_YEAR_NOT_FOUND"
    entity_type = "Fiscal year"


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------


class DuplicateCodeError(ConflictError):
    """A unique business code is already taken."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, entity_type: str, value: str):
        self.entity_type = entity_type
        self.value = value
        super().__init__(f"{entity_type} with code {value} already exists")


class EntryLockedError(ConflictError):
    """Journal entry is no longer a draft and cannot be edited or deleted."""

    code: str = "ENTRY_LOCKED"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = str(entry_id)
        self.status = status
        super().__init__(
            f"Journal entry {entry_id} is {status}; only draft entries can change"
        )


class DocumentLockedError(ConflictError):
    """Document is past DRAFT and its content cannot be edited or deleted."""

    code: str = "DOCUMENT_LOCKED"

    def __init__(self, document_type: str, document_id: str, status: str):
        self.document_type = document_type
        self.document_id = str(document_id)
        self.status = status
        super().__init__(
            f"{document_type} {document_id} is {status}; only draft documents can be edited"
        )


class OptimisticLockError(ConflictError):
    """Concurrent modification detected via the version column."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently; reload and retry"
        )


class FiscalYearAlreadyClosedError(ConflictError):
    code: str = "FISCAL_YEAR_ALREADY_CLOSED"

    def __init__(self, fiscal_year: str):
        self.fiscal_year = fiscal_year
        super().__init__(f"Fiscal year {fiscal_year} is already closed")


class FiscalYearOverlapError(ConflictError):
    code: str = "FISCAL_YEAR_OVERLAP"

    def __init__(self, fiscal_year: str, existing: str):
        self.fiscal_year = fiscal_year
        self.existing = existing
        super().__init__(f"Fiscal year {fiscal_year} overlaps {existing}")


class AccountInactiveError(ConflictError):
    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


class ImmutabilityViolationError(ConflictError):
    """Attempted to modify or delete an append-only or posted record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id}: {reason}")


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


class LockedFiscalYearError(BusinessRuleError):
    """Posting date falls inside a locked fiscal year."""

    code: str = "LOCKED_FISCAL_YEAR"

    def __init__(self, entry_date: Any, fiscal_year: str):
        self.entry_date = entry_date
        self.fiscal_year = fiscal_year
        super().__init__(
            f"Cannot post on {entry_date}: fiscal year {fiscal_year} is locked"
        )


class AlreadyPostedError(BusinessRuleError):
    """Journal entry was already posted (by this or a concurrent request)."""

    code: str = "ALREADY_POSTED"

    def __init__(self, entry_id: str, entry_number: str | None = None):
        self.entry_id = str(entry_id)
        self.entry_number = entry_number
        super().__init__(
            f"Journal entry {entry_number or entry_id} is already posted"
        )


# ---------------------------------------------------------------------------
# Configuration / authorization
# ---------------------------------------------------------------------------


class RequiredAccountsMissingError(ConfigurationError):
    """Posting needs chart-of-accounts codes that do not exist."""

    code: str = "REQUIRED_ACCOUNTS_MISSING"

    def __init__(self, missing_codes: list[str]):
        self.missing_codes = sorted(missing_codes)
        super().__init__(
            "Required accounts not found: " + ", ".join(self.missing_codes)
        )


class PermissionDeniedError(AuthorizationError):
    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, action: str, required_roles: tuple[str, ...]):
        self.actor_id = str(actor_id)
        self.action = action
        self.required_roles = tuple(required_roles)
        super().__init__(
            f"{action} requires one of roles: {', '.join(self.required_roles)}"
        )


def error_payload(exc: LedgerError) -> dict[str, Any]:
    """Render a LedgerError as ``{code, kind, message, details}``."""
    details = {
        k: v for k, v in vars(exc).items() if not k.startswith("_") and k != "args"
    }
    return {
        "code": exc.code,
        "kind": exc.kind,
        "message": str(exc),
        "details": details,
    }
