"""
AccountService -- chart of accounts maintenance and lookup by code.

Responsibility:
    Creates accounts, maintains the parent hierarchy without cycles,
    activates/deactivates accounts, and resolves chart codes to accounts
    for the journal engine and posting rules.

Architecture position:
    Kernel > Services.  Used by JournalEntryEngine (code resolution) and by
    ledger_services (required-account checks, chart seeding).

Invariants enforced:
    - Account codes are unique (checked here, backed by uq_account_code).
    - An account is never its own parent or ancestor.
    - normal_balance always follows account_type.
    - current_balance is never set here; it starts at zero and moves only
      through LedgerStore.

Failure modes:
    - DuplicateCodeError, AccountNotFoundError, InvalidAccountParentError,
      RequiredAccountsMissingError.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateCodeError,
    InvalidAccountParentError,
    RequiredAccountsMissingError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


class AccountService(BaseService[Account]):
    """Chart of accounts operations."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._auditor = AuditorService(session, clock or SystemClock())

    def get(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def find_by_code(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()

    def get_by_code(self, code: str) -> Account:
        account = self.find_by_code(code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def require_codes(self, codes: Iterable[str]) -> dict[str, Account]:
        """
        Resolve every code or fail naming all missing ones.

        Raises:
            RequiredAccountsMissingError: one or more codes do not exist.
        """
        wanted = set(codes)
        found = {
            a.code: a
            for a in self.session.execute(
                select(Account).where(Account.code.in_(wanted))
            ).scalars()
        }
        missing = wanted - set(found)
        if missing:
            logger.warning("required_accounts_missing", extra={"missing_codes": sorted(missing)})
            raise RequiredAccountsMissingError(sorted(missing))
        return found

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        parent_code: str | None = None,
        description: str | None = None,
    ) -> Account:
        if self.find_by_code(code) is not None:
            raise DuplicateCodeError("Account", code)

        account_type = AccountType(account_type)
        parent = self.get_by_code(parent_code) if parent_code else None
        account = Account(
            code=code,
            name=name,
            account_type=account_type,
            normal_balance=account_type.normal_balance,
            description=description,
            parent_id=parent.id if parent else None,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        self._auditor.record(
            actor_id, "account_created", "Account", account.id,
            after={"code": code, "name": name, "account_type": account_type.value},
        )
        logger.info("account_created", extra={"account_code": code, "account_type": account_type.value})
        return account

    def set_parent(self, code: str, parent_code: str | None, actor_id: UUID) -> Account:
        """
        Re-parent an account, rejecting self-reference and cycles.

        Raises:
            InvalidAccountParentError: parent is the account or a descendant.
        """
        account = self.get_by_code(code)
        if parent_code is None:
            account.parent_id = None
        else:
            parent = self.get_by_code(parent_code)
            if parent.id == account.id:
                raise InvalidAccountParentError(code, parent_code, "an account cannot be its own parent")
            # Walk up from the proposed parent; meeting the account means a cycle.
            seen: set[UUID] = set()
            cursor = parent
            while cursor.parent_id is not None and cursor.parent_id not in seen:
                seen.add(cursor.id)
                if cursor.parent_id == account.id:
                    raise InvalidAccountParentError(code, parent_code, "parent is a descendant")
                cursor = self.get(cursor.parent_id)
            account.parent_id = parent.id

        account.updated_by_id = actor_id
        self.session.flush()
        self._auditor.record(
            actor_id, "account_reparented", "Account", account.id,
            after={"code": code, "parent_code": parent_code},
        )
        return account

    def set_active(self, code: str, is_active: bool, actor_id: UUID) -> Account:
        account = self.get_by_code(code)
        account.is_active = is_active
        account.updated_by_id = actor_id
        self.session.flush()
        self._auditor.record(
            actor_id, "account_activated" if is_active else "account_deactivated",
            "Account", account.id, after={"code": code, "is_active": is_active},
        )
        return account
