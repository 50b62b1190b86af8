"""Typed error hierarchy: codes, kinds and structured payloads."""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AlreadyPostedError,
    BusinessRuleError,
    ConflictError,
    DocumentLockedError,
    InsufficientLinesError,
    InvalidStateTransitionError,
    LedgerError,
    LockedFiscalYearError,
    NotFoundError,
    OptimisticLockError,
    OverpaymentError,
    PermissionDeniedError,
    RequiredAccountsMissingError,
    UnbalancedEntryError,
    ValidationError,
    error_payload,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc, family, kind",
        [
            (UnbalancedEntryError(Decimal("100"), Decimal("90")), ValidationError, "validation"),
            (InsufficientLinesError(1), ValidationError, "validation"),
            (AccountNotFoundError("9999"), NotFoundError, "not_found"),
            (DocumentLockedError("Invoice", "x", "approved"), ConflictError, "conflict"),
            (OptimisticLockError("invoices", "approve_invoice"), ConflictError, "conflict"),
            (LockedFiscalYearError("2024-06-15", "FY 2024"), BusinessRuleError, "business_rule"),
            (AlreadyPostedError("x", "JE2026000001"), BusinessRuleError, "business_rule"),
        ],
    )
    def test_family_and_kind(self, exc, family, kind):
        assert isinstance(exc, family)
        assert isinstance(exc, LedgerError)
        assert exc.kind == kind

    def test_every_concrete_error_has_its_own_code(self):
        codes = {
            UnbalancedEntryError.code,
            InsufficientLinesError.code,
            AccountNotFoundError.code,
            DocumentLockedError.code,
            OptimisticLockError.code,
            LockedFiscalYearError.code,
            AlreadyPostedError.code,
            RequiredAccountsMissingError.code,
            PermissionDeniedError.code,
            InvalidStateTransitionError.code,
        }
        assert len(codes) == 10

    def test_state_transition_error_names_required_state(self):
        exc = InvalidStateTransitionError("Invoice", "abc", "approve", "draft", "VERIFIED")
        assert exc.required_state == "VERIFIED"
        assert exc.kind == "invalid_state_transition"
        assert "requires VERIFIED" in str(exc)


class TestErrorPayload:
    def test_unbalanced_payload_carries_amounts(self):
        payload = error_payload(UnbalancedEntryError(Decimal("100.00"), Decimal("90.00")))
        assert payload["code"] == "UNBALANCED_ENTRY"
        assert payload["kind"] == "validation"
        assert payload["details"] == {"debits": Decimal("100.00"), "credits": Decimal("90.00")}

    def test_overpayment_payload(self):
        payload = error_payload(OverpaymentError("Invoice", "INV1", Decimal("5"), Decimal("4")))
        assert payload["details"]["balance_due"] == Decimal("4")
        assert "exceeds balance due" in payload["message"]

    def test_permission_denied_payload(self):
        actor_id = uuid4()
        payload = error_payload(PermissionDeniedError(actor_id, "approve invoice", ("Admin",)))
        assert payload["kind"] == "authorization"
        assert payload["details"]["actor_id"] == str(actor_id)
        assert payload["details"]["required_roles"] == ("Admin",)

    def test_missing_accounts_sorted(self):
        exc = RequiredAccountsMissingError(["4300", "1200"])
        assert exc.missing_codes == ["1200", "4300"]
        assert error_payload(exc)["kind"] == "configuration"
