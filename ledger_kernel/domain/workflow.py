"""
Canonical workflow types (``ledger_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  Invoice and bill
workflows in ``ledger_services`` are declared as data with these types and
every status change is resolved through ``Workflow.transition``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects, zero I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* An action requested from a state with no matching transition raises
  ``InvalidStateTransitionError`` naming the state(s) the action requires.
"""

from __future__ import annotations

from dataclasses import dataclass

from ledger_kernel.exceptions import InvalidStateTransitionError


@dataclass(frozen=True)
class Guard:
    """A named condition checked by the workflow owner before a transition.

    Descriptive only: the service owning the workflow evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition.

    ``posts_entry=True`` marks a transition that creates a journal entry.
    ``roles`` names the configuration key holding the roles allowed to fire it.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    posts_entry: bool = False
    roles: str | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t} references unknown state")

    def sources_for(self, action: str) -> tuple[str, ...]:
        return tuple(dict.fromkeys(t.from_state for t in self.transitions if t.action == action))

    def transition(
        self,
        action: str,
        current_state: str,
        entity_type: str,
        entity_id: str,
        to_state: str | None = None,
    ) -> Transition:
        """Resolve ``action`` from ``current_state`` or raise.

        ``to_state`` picks among transitions sharing an action and source
        (e.g. a payment that leaves an invoice partially paid or paid).
        """
        for t in self.transitions:
            if t.action != action or t.from_state != current_state:
                continue
            if to_state is None or t.to_state == to_state:
                return t
        raise InvalidStateTransitionError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            current_state=current_state,
            required_state=" or ".join(s.upper() for s in self.sources_for(action)),
        )
