"""
Canonical workflow types (``repair_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machine definitions. The job lifecycle table
in ``repair_engines.lifecycle`` is declared with these types so that the
allowed transitions are data, not branching code.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects. ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen. ``action`` is the event name that fires the transition.
    """
    from_state: str
    to_state: str
    action: str


@dataclass(frozen=True)
class Workflow:
    """A state machine definition.

    Contract: frozen; validated on construction.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} references unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} has outgoing "
                    f"transition {t.action}"
                )

    @property
    def actions(self) -> tuple[str, ...]:
        """Distinct event names, in declaration order."""
        seen: dict[str, None] = {}
        for t in self.transitions:
            seen.setdefault(t.action, None)
        return tuple(seen)

    def find(self, from_state: str, action: str) -> Transition | None:
        """Return the transition for ``action`` out of ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def sources_for(self, action: str) -> frozenset[str]:
        return frozenset(t.from_state for t in self.transitions if t.action == action)
