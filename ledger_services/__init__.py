"""
Ledger Services

Business documents on top of the ledger kernel:
- Invoice and bill lifecycles with role-gated transitions
- Payments received and made
- Posting rules from documents to journal entries
- Reports and year-end closing

``BackOffice`` is the public entry point; every method is one transaction.
"""

from ledger_services.back_office import BackOffice
from ledger_services.chart_seed import DEFAULT_CHART, SeedResult, seed_defaults
from ledger_services.document_math import ItemSpec
from ledger_services.invoice_workflow import TenderSpec
from ledger_services.reporting import (
    BalanceSheet,
    BalanceSheetSection,
    ProfitAndLoss,
    StatementLine,
    TrialBalance,
    TrialBalanceLine,
)

__all__ = [
    "BackOffice",
    "BalanceSheet",
    "BalanceSheetSection",
    "DEFAULT_CHART",
    "ItemSpec",
    "ProfitAndLoss",
    "SeedResult",
    "StatementLine",
    "TenderSpec",
    "TrialBalance",
    "TrialBalanceLine",
    "seed_defaults",
]
