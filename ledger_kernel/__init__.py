"""
Ledger Kernel

The posting core of a double-entry back office:
- Balanced journal entries with gap-free numbering
- Atomic posting into an append-only ledger
- Running account balances that always equal a ledger replay
- Fiscal year locking
"""

__version__ = "0.1.0"
