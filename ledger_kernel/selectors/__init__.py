"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.ledger_selector import (
    AccountLedger,
    AccountMovement,
    LedgerSelector,
)

__all__ = [
    "AccountLedger",
    "AccountMovement",
    "LedgerSelector",
]
