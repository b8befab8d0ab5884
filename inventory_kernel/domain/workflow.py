"""
Canonical workflow types (``inventory_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  Purchase orders, goods
issues, receipts and stock counts each declare a ``Workflow`` as an explicit
transition table; every state-changing operation looks its action up in the
table before touching anything.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* An action not in the table for the current state raises
  ``InvalidStateError``; nothing falls through to caller discipline.
"""

from __future__ import annotations

from dataclasses import dataclass

from inventory_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition.

    ``moves_stock=True`` marks transitions that call the InventoryMutator.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


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
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    f"has outgoing transition {t.action}"
                )

    def find_transition(
        self,
        current_state: str,
        action: str,
        to_state: str | None = None,
    ) -> Transition | None:
        """Return the transition for ``action`` from ``current_state``, if any.

        Actions with several targets (receiving) are disambiguated by
        ``to_state``.
        """
        for t in self.transitions:
            if t.from_state != current_state or t.action != action:
                continue
            if to_state is None or t.to_state == to_state:
                return t
        return None

    def allowed_actions(self, current_state: str) -> tuple[str, ...]:
        seen: list[str] = []
        for t in self.transitions:
            if t.from_state == current_state and t.action not in seen:
                seen.append(t.action)
        return tuple(seen)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def require(
        self,
        entity_type: str,
        entity_id: object,
        current_state: str,
        action: str,
        to_state: str | None = None,
    ) -> Transition:
        """Look up a transition or raise ``InvalidStateError``."""
        transition = self.find_transition(current_state, action, to_state)
        if transition is None:
            raise InvalidStateError(
                entity_type=entity_type,
                entity_id=str(entity_id),
                current_state=current_state,
                action=action,
            )
        return transition
