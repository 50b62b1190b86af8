"""
Acting users and role checks (``ledger_kernel.domain.roles``).

Authentication lives outside the kernel.  Callers hand every operation an
``Actor`` carrying the user id and the role names the auth collaborator
resolved; the kernel only checks membership.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from ledger_kernel.exceptions import PermissionDeniedError


class Role(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    ACCOUNTANT = "Accountant"
    USER = "User"


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs."""

    actor_id: UUID
    roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def with_roles(cls, actor_id: UUID, *roles: Role | str) -> Actor:
        return cls(actor_id, frozenset(_role_name(r) for r in roles))

    def has_any_role(self, roles: tuple[str, ...]) -> bool:
        return any(r in self.roles for r in roles)


def _role_name(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else role


def require_role(actor: Actor, action: str, allowed: tuple[str, ...]) -> None:
    """Raise PermissionDeniedError unless the actor holds one of ``allowed``.

    An empty ``allowed`` tuple means the action is open to any actor.
    """
    if allowed and not actor.has_any_role(allowed):
        raise PermissionDeniedError(actor.actor_id, action, allowed)
