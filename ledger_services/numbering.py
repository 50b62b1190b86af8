"""
Document numbers for invoices, bills and payments.

Every number comes from a locked, year-scoped counter row through
SequenceService, formatted ``{prefix}{year}{seq}`` with the prefixes and
width from ``NumberingConfig``.
"""

from sqlalchemy.orm import Session

from ledger_config.schema import NumberingConfig
from ledger_kernel.services.sequence_service import SequenceService

INVOICE = "invoice"
BILL = "bill"
PAYMENT_RECEIVED = "payment_received"
PAYMENT_MADE = "payment_made"


class DocumentNumbers:
    def __init__(self, session: Session, numbering: NumberingConfig):
        self._sequences = SequenceService(session)
        self._numbering = numbering

    def _next(self, name: str, prefix: str, year: int) -> str:
        return self._sequences.next_number(name, prefix, year, self._numbering.width)

    def invoice(self, year: int) -> str:
        return self._next(INVOICE, self._numbering.invoice, year)

    def bill(self, year: int) -> str:
        return self._next(BILL, self._numbering.bill, year)

    def payment_received(self, year: int) -> str:
        return self._next(PAYMENT_RECEIVED, self._numbering.payment_received, year)

    def payment_made(self, year: int) -> str:
        return self._next(PAYMENT_MADE, self._numbering.payment_made, year)
