"""
Ledger back-office configuration schema.

Frozen dataclasses the loader fills from YAML.  Everything the posting
rules and workflows need to know about the installation lives here: which
chart-of-accounts codes play which role, how payment methods map onto
cash and bank, how documents are numbered, and which roles may fire which
workflow actions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    busy_timeout: int = 60


@dataclass(frozen=True)
class AccountCodes:
    """Chart-of-accounts codes by posting role."""

    cash: str = "1000"
    bank: str = "1100"
    accounts_receivable: str = "1200"
    tax_paid: str = "1300"
    accounts_payable: str = "2000"
    tax_payable: str = "2100"
    retained_earnings: str = "3100"
    revenue: str = "4000"
    sales_discounts: str = "4300"
    expense: str = "5000"

    def code_for(self, role: str) -> str:
        return getattr(self, role)

    def all_codes(self) -> tuple[str, ...]:
        return tuple(getattr(self, name) for name in self.__dataclass_fields__)


@dataclass(frozen=True)
class NumberingConfig:
    journal_entry: str = "JE"
    invoice: str = "INV"
    bill: str = "BILL"
    payment_received: str = "PR"
    payment_made: str = "PM"
    width: int = 6


@dataclass(frozen=True)
class RoleGates:
    """Role names allowed to perform each gated action; empty means anyone."""

    verify: tuple[str, ...] = ("Admin", "Manager")
    approve: tuple[str, ...] = ("Admin",)
    reject: tuple[str, ...] = ("Admin", "Manager")
    close_year: tuple[str, ...] = ("Admin",)
    lock_year: tuple[str, ...] = ("Admin",)

    def for_action(self, action: str) -> tuple[str, ...]:
        return getattr(self, action, ())


DEFAULT_PAYMENT_METHODS: dict[str, str] = {
    "cash": "cash",
    "bank": "bank",
    "bank_transfer": "bank",
    "online": "bank",
    "online_payment": "bank",
    "check": "bank",
    "credit_card": "bank",
    "other": "cash",
}


@dataclass(frozen=True)
class LedgerConfig:
    """Root configuration object returned by ``get_active_config()``."""

    database: DatabaseConfig
    accounts: AccountCodes = field(default_factory=AccountCodes)
    # payment method value -> AccountCodes attribute ("cash" or "bank")
    payment_methods: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PAYMENT_METHODS)
    )
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    roles: RoleGates = field(default_factory=RoleGates)
    report_tolerance: Decimal = Decimal("0.01")
    log_level: str = "INFO"

    def account_for_method(self, method: str) -> str:
        """Chart code receiving or paying out cash for a payment method."""
        return self.accounts.code_for(self.payment_methods[method])
