"""
Canonical workflow types (``hub_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for status state machines.  Every module (billing,
events, incubation) declares its lifecycles with these types so that
Guard, Transition and Workflow are defined once and the transition graph
is data, not scattered ``if`` checks at call sites.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Every state is a value of the workflow's ``status_enum``.
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` and every ``entry_states`` member are in ``states``.
* Terminal states have no outgoing transitions, so
  ``can_transition(terminal, anything)`` is always False.
* At most one transition per (from_state, to_state) pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``events`` names the domain events published, in order, when the
    transition is applied.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    events: tuple[str, ...] = ()


def state_value(state: Enum | str) -> str:
    """Return the stored string form of a status."""
    if isinstance(state, Enum):
        return str(state.value)
    return state


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one entity kind.

    Contract: frozen; validated at construction.
    ``entry_states`` lists statuses an entity may be created in (defaults to
    ``initial_state`` alone).
    """
    name: str
    description: str
    entity_type: str
    status_enum: type[Enum]
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    entry_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        enum_values = {str(member.value) for member in self.status_enum}
        unknown = set(self.states) - enum_values
        if unknown:
            raise ValueError(
                f"Workflow {self.name}: states {sorted(unknown)} are not "
                f"{self.status_enum.__name__} values"
            )
        if self.initial_state not in self.states:
            raise ValueError(f"Workflow {self.name}: initial_state not in states")
        for state in self.entry_states + self.terminal_states:
            if state not in self.states:
                raise ValueError(f"Workflow {self.name}: {state} not in states")

        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} references "
                    f"unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    f"has outgoing transition {t.action}"
                )
            key = (t.from_state, t.to_state)
            if key in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate transition "
                    f"{t.from_state} -> {t.to_state}"
                )
            seen.add(key)

    @property
    def creation_states(self) -> tuple[str, ...]:
        return self.entry_states or (self.initial_state,)

    def transition_for(
        self, current: Enum | str, target: Enum | str,
    ) -> Transition | None:
        """Return the transition edge from current to target, if any."""
        src, dst = state_value(current), state_value(target)
        for t in self.transitions:
            if t.from_state == src and t.to_state == dst:
                return t
        return None

    def can_transition(self, current: Enum | str, target: Enum | str) -> bool:
        return self.transition_for(current, target) is not None

    def allowed_targets(self, current: Enum | str) -> tuple[str, ...]:
        src = state_value(current)
        return tuple(t.to_state for t in self.transitions if t.from_state == src)

    def is_terminal(self, state: Enum | str) -> bool:
        return state_value(state) in self.terminal_states
