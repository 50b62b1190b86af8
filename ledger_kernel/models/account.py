"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts, the target of
    every journal line and ledger entry.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Account.code is unique (uq_account_code).
    - normal_balance is derived from account_type: DEBIT for ASSET and
      EXPENSE, CREDIT otherwise.
    - current_balance is the signed sum of debit minus credit over the
      account's ledger entries.  Only the Ledger Store writes it; the ORM
      listener in db/immutability.py rejects any other write.
    - parent_id never points at the account itself or at a descendant
      (checked by AccountService before the write).

Failure modes:
    - AccountNotFoundError when a posting references a missing account.
    - AccountInactiveError when a posting targets an inactive account.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MinorUnits, ZERO, enum_type


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @property
    def normal_balance(self) -> "NormalBalance":
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Contract:
        code is globally unique.  current_balance changes only as a side
        effect of posting.

    Guarantees:
        - account_type is one of ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE.
        - normal_balance is consistent with account_type.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(
        enum_type(AccountType),
        nullable=False,
    )

    normal_balance: Mapped[NormalBalance] = mapped_column(
        enum_type(NormalBalance, length=10),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    current_balance: Mapped[Decimal] = mapped_column(
        MinorUnits(),
        nullable=False,
        default=ZERO,
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
