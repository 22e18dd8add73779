"""
Workflow primitives shared by the order and supply-chain state machines.

A ``Workflow`` is a static table of allowed ``Transition`` rows.  Services
look up the transition for an action before mutating the status column and
raise ``InvalidTransitionError`` when none matches the current state.
"""

from dataclasses import dataclass
from typing import Any

from inventory_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def find(self, from_state: str, action: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.action == action:
                return transition
        return None

    def require(
        self,
        from_state: str,
        action: str,
        entity_type: str,
        entity_id: Any,
        satisfied: frozenset[str] = frozenset(),
    ) -> Transition:
        """
        Return the transition for ``action`` or raise InvalidTransitionError.

        A guarded transition fires only when its guard name is in
        ``satisfied``; the caller evaluates the condition.
        """
        transition = self.find(from_state, action)
        if transition is None:
            raise InvalidTransitionError(
                entity_type=entity_type,
                entity_id=entity_id,
                from_state=from_state,
                action=action,
            )
        if transition.guard is not None and transition.guard.name not in satisfied:
            raise InvalidTransitionError(
                entity_type=entity_type,
                entity_id=entity_id,
                from_state=from_state,
                action=action,
                guard=transition.guard.name,
            )
        return transition

    def allows_status(self, from_state: str, to_state: str) -> bool:
        """True when an unguarded transition leads from ``from_state`` to ``to_state``."""
        return any(
            t.from_state == from_state and t.to_state == to_state and t.guard is None
            for t in self.transitions
        )
