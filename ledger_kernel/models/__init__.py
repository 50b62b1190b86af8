"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.bill import Bill, BillItem, BillStatus
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    JournalSource,
)
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.models.party import Customer, Vendor
from ledger_kernel.models.payment import PaymentMade, PaymentMethod, PaymentReceived
from ledger_kernel.models.tax import TaxCode, TaxRate

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "Bill",
    "BillItem",
    "BillStatus",
    "Customer",
    "FiscalYear",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "JournalSource",
    "LedgerEntry",
    "PaymentMade",
    "PaymentMethod",
    "PaymentReceived",
    "TaxCode",
    "TaxRate",
    "Vendor",
]
