"""
Structured logging: JSON records, the operation context, and the
fields the BackOffice and its services bind while they work.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import LockedFiscalYearError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from ledger_services import ItemSpec


@pytest.fixture
def log_stream():
    """Install the JSON handler on a fresh stream; restore the suite's handler afterwards."""
    reset_logging()
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)
    yield stream
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


def records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def by_message(logs: list[dict], message: str) -> dict:
    matches = [r for r in logs if r["message"] == message]
    assert matches, message
    return matches[-1]


class TestJsonRecords:
    def test_header_fields(self, log_stream):
        get_logger("services.reporting").info("trial_balance_generated")

        (record,) = records(log_stream)
        assert record["level"] == "INFO"
        assert record["logger"] == "ledger_kernel.services.reporting"
        assert record["message"] == "trial_balance_generated"
        assert record["ts"].endswith("+00:00")

    def test_money_and_dates_are_strings(self, log_stream):
        get_logger("test").info(
            "invoice_created", extra={"total": Decimal("1150.00"), "invoice_date": date(2026, 1, 15)},
        )

        (record,) = records(log_stream)
        assert record["total"] == "1150.00"
        assert record["invoice_date"] == "2026-01-15"

    def test_ledger_error_context_is_flattened(self, log_stream):
        try:
            raise LockedFiscalYearError("2024-06-15", "FY 2024")
        except LockedFiscalYearError:
            get_logger("test").warning("post_failed", exc_info=True)

        (record,) = records(log_stream)
        assert record["exc_type"] == "LockedFiscalYearError"
        assert record["exc_code"] == "LOCKED_FISCAL_YEAR"
        assert record["exc_fiscal_year"] == "FY 2024"
        assert "Traceback" in record["traceback"]

    def test_context_wins_over_extra(self, log_stream):
        with LogContext.bind(operation="post_journal_entry"):
            get_logger("test").info("posted", extra={"operation": "something_else"})

        assert records(log_stream)[0]["operation"] == "post_journal_entry"


class TestLogContext:
    def test_bind_restores_outer_context(self):
        with LogContext.bind(correlation_id="outer", operation="close_fiscal_year"):
            with LogContext.bind(correlation_id="inner"):
                assert LogContext.fields() == {"correlation_id": "inner", "operation": "close_fiscal_year"}
            assert LogContext.fields()["correlation_id"] == "outer"
        assert LogContext.fields() == {}

    def test_update_lasts_until_bind_exits(self):
        with LogContext.bind(operation="approve_invoice"):
            LogContext.update(document_id="inv-1", actor_id=None)
            assert LogContext.fields() == {"operation": "approve_invoice", "document_id": "inv-1"}
        assert LogContext.fields() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            with LogContext.bind(invoice_number="INV2026000001"):
                pass


class TestConfigureLogging:
    def test_first_handler_wins(self, log_stream):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)

        assert handler not in logging.getLogger("ledger_kernel").handlers

    def test_reset_keeps_other_handlers(self):
        other = logging.NullHandler()
        root = logging.getLogger("ledger_kernel")
        root.addHandler(other)
        try:
            reset_logging()
            assert other in root.handlers
        finally:
            root.removeHandler(other)
            configure_logging(level=logging.DEBUG, stream=StringIO())

    def test_custom_handler_gets_json(self):
        reset_logging()
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        try:
            configure_logging(handler=handler)
            assert isinstance(handler.formatter, StructuredFormatter)
            get_logger("test").info("hello")
            assert json.loads(stream.getvalue())["message"] == "hello"
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG, stream=StringIO())


class TestOperationContext:
    def test_posting_carries_entry_and_correlation(self, back_office, admin, seeded, log_stream):
        entry = back_office.create_and_post_journal_entry(
            date(2026, 1, 20), "Owner investment",
            [LineSpec.dr("1000", Decimal("100")), LineSpec.cr("3000", Decimal("100"))],
            admin,
        )

        posted = by_message(records(log_stream), "journal_entry_posted")
        assert posted["entry_id"] == str(entry.id)
        assert posted["actor_id"] == str(admin.actor_id)
        assert posted["operation"] == "create_and_post_journal_entry"
        assert posted["correlation_id"]
        assert LogContext.fields() == {}

    def test_calls_get_their_own_correlation(self, back_office, admin, seeded, log_stream):
        for n in range(2):
            back_office.create_journal_entry(
                date(2026, 1, 20), f"Draft {n}",
                [LineSpec.dr("1000", Decimal("5")), LineSpec.cr("3000", Decimal("5"))],
                admin,
            )

        created = [r for r in records(log_stream) if r["message"] == "journal_entry_created"]
        assert len({r["correlation_id"] for r in created}) == 2
        assert len({r["entry_id"] for r in created}) == 2

    def test_invoice_approval_names_document_and_entry(
        self, back_office, admin, draft_invoice, log_stream,
    ):
        back_office.verify_invoice(draft_invoice.id, admin)
        invoice = back_office.approve_invoice(draft_invoice.id, admin)

        logs = records(log_stream)
        recognized = by_message(logs, "revenue_recognized")
        assert recognized["document_id"] == str(invoice.id)
        assert recognized["entry_id"] == str(invoice.journal_entry_id)
        assert by_message(logs, "invoice_approve")["document_id"] == str(invoice.id)

    def test_payment_names_payment_document(self, back_office, admin, approved_invoice, log_stream):
        payment = back_office.receive_payment(
            approved_invoice.customer_id, Decimal("100"), "cash", date(2026, 1, 20), admin,
            invoice_id=approved_invoice.id,
        )

        received = by_message(records(log_stream), "payment_received")
        assert received["document_id"] == str(payment.id)
        assert received["entry_id"] == str(payment.journal_entry_id)

    def test_bill_transition_names_bill(self, back_office, admin, vendor, log_stream):
        bill = back_office.create_bill(
            vendor.id, date(2026, 1, 15), [ItemSpec("Printer paper", Decimal("2"), Decimal("40.00"))], admin,
        )
        back_office.verify_bill(bill.id, admin)

        logs = records(log_stream)
        assert by_message(logs, "bill_created")["document_id"] == str(bill.id)
        assert by_message(logs, "bill_verify")["document_id"] == str(bill.id)
