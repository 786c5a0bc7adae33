"""Checkout step registry and the transition table derived from it.

A `CheckoutFlow` is configured by a definition callable that registers steps
with `go_to_state`. Extensions reshape the flow with `insert_checkout_step`,
`remove_checkout_step` and `remove_transition`; each of those replays the whole
registry through a fresh definition, so the resulting table only depends on the
replay history. `snapshot()` freezes the current registry for the engine.
"""

from typing import Any, Callable

from pydantic import BaseModel, ConfigDict


Guard = Callable[[Any], bool] | str
FlowDefinition = Callable[["CheckoutFlow"], None]


def evaluate_guard(guard: Guard, order: Any) -> bool:
    """Call a guard against the order; strings name a boolean order method."""

    if isinstance(guard, str):
        return bool(getattr(order, guard)())
    return bool(guard(order))


def guard_label(guard: Guard) -> str:
    if isinstance(guard, str):
        return guard
    return getattr(guard, "__name__", "guard")


class CheckoutStep(BaseModel):
    """One registered checkout step and the guards that gate it."""

    model_config = ConfigDict(frozen=True)

    name: str
    if_: Guard | None = None
    unless: Guard | None = None

    def active_for(self, order: Any) -> bool:
        if self.if_ is not None and not evaluate_guard(self.if_, order):
            return False
        if self.unless is not None and evaluate_guard(self.unless, order):
            return False
        return True


class Transition(BaseModel):
    """A legal (from, to) move, optionally guarded."""

    model_config = ConfigDict(frozen=True)

    from_state: str
    to_state: str
    event: str = "next"
    if_: Guard | None = None
    unless: Guard | None = None

    def passes(self, order: Any) -> bool:
        return self.rejected_by(order) is None

    def rejected_by(self, order: Any) -> str | None:
        """Return the label of the failing guard, or None when all guards pass."""

        if self.if_ is not None and not evaluate_guard(self.if_, order):
            return guard_label(self.if_)
        if self.unless is not None and evaluate_guard(self.unless, order):
            return guard_label(self.unless)
        return None


class FlowSnapshot(BaseModel):
    """Immutable view of a registry: ordered steps plus the `next` transitions."""

    model_config = ConfigDict(frozen=True)

    steps: tuple[CheckoutStep, ...] = ()
    transitions: tuple[Transition, ...] = ()

    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def transitions_from(self, state: str) -> list[Transition]:
        return [t for t in self.transitions if t.from_state == state]

    def next_transition(self, state: str, order: Any) -> Transition | None:
        """First transition out of `state` whose guards pass, in registration order."""

        for transition in self.transitions_from(state):
            if transition.passes(order):
                return transition
        return None

    def checkout_steps_for(self, order: Any) -> list[str]:
        """Steps active for this order; `complete` is always present."""

        steps = [step.name for step in self.steps if step.active_for(order)]
        if "complete" not in steps:
            steps.append("complete")
        return steps


class CheckoutFlow:
    """Mutable step registry that derives `next` transitions as steps are registered."""

    def __init__(self, definition: FlowDefinition | None = None) -> None:
        self._definition = definition
        self.checkout_steps: dict[str, CheckoutStep] = {}
        self.next_event_transitions: list[Transition] = []
        self.previous_states: list[str] = ["cart"]
        self.removed_transitions: list[tuple[str, str]] = []
        if definition is not None:
            self.define_state_machine()

    def checkout_flow(self, definition: FlowDefinition) -> FlowSnapshot:
        """Replace the definition and rebuild the registry from it."""

        self._definition = definition
        return self.define_state_machine()

    def define_state_machine(self) -> FlowSnapshot:
        """Reset the registry and replay the current definition."""

        self.checkout_steps = {}
        self.next_event_transitions = []
        self.previous_states = ["cart"]
        self.removed_transitions = []
        if self._definition is not None:
            self._definition(self)
        return self.snapshot()

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            steps=tuple(self.checkout_steps.values()),
            transitions=tuple(self.next_event_transitions),
        )

    def go_to_state(self, name: str, if_: Guard | None = None, unless: Guard | None = None) -> None:
        """Register `name` and connect every pending previous state to it.

        A guarded step may be skipped at runtime, so the states before it stay
        eligible sources for the step registered after it.
        """

        # dict assignment keeps an existing key in its original position
        self.checkout_steps[name] = CheckoutStep(name=name, if_=if_, unless=unless)
        for state in self.previous_states:
            self._add_transition(Transition(from_state=state, to_state=name, if_=if_, unless=unless))
        if if_ is not None or unless is not None:
            self.previous_states.append(name)
        else:
            self.previous_states = [name]

    def insert_checkout_step(
        self,
        name: str,
        if_: Guard | None = None,
        unless: Guard | None = None,
        before: str | None = None,
        after: str | None = None,
    ) -> FlowSnapshot:
        """Splice a step in before/after an existing one and rebuild the flow.

        With neither anchor the step goes after the current last step.
        """

        if before is not None:
            after = None
        elif after is None and self.checkout_steps:
            after = list(self.checkout_steps)[-1]

        cloned_steps = list(self.checkout_steps.values())
        cloned_removed_transitions = list(self.removed_transitions)

        def replay(flow: "CheckoutFlow") -> None:
            placed = False
            for step in cloned_steps:
                if step.name == name:
                    continue
                if step.name == before:
                    flow.go_to_state(name, if_=if_, unless=unless)
                    placed = True
                flow.go_to_state(step.name, if_=step.if_, unless=step.unless)
                if step.name == after:
                    flow.go_to_state(name, if_=if_, unless=unless)
                    placed = True
            if not placed:
                flow.go_to_state(name, if_=if_, unless=unless)
            for from_state, to_state in cloned_removed_transitions:
                flow.remove_transition(from_state, to_state)

        return self.checkout_flow(replay)

    def remove_checkout_step(self, name: str) -> FlowSnapshot:
        """Rebuild the flow without `name`, keeping the other steps in order."""

        cloned_steps = list(self.checkout_steps.values())
        cloned_removed_transitions = list(self.removed_transitions)

        def replay(flow: "CheckoutFlow") -> None:
            for step in cloned_steps:
                if step.name != name:
                    flow.go_to_state(step.name, if_=step.if_, unless=step.unless)
            for from_state, to_state in cloned_removed_transitions:
                flow.remove_transition(from_state, to_state)

        return self.checkout_flow(replay)

    def remove_transition(self, from_state: str, to_state: str) -> None:
        """Exclude a (from, to) pair now and from every later derivation."""

        pair = (from_state, to_state)
        if pair not in self.removed_transitions:
            self.removed_transitions.append(pair)
        self.next_event_transitions = [
            t for t in self.next_event_transitions if (t.from_state, t.to_state) != pair
        ]

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        for transition in self.next_event_transitions:
            if transition.from_state == from_state and transition.to_state == to_state:
                return transition
        return None

    def _add_transition(self, transition: Transition) -> None:
        if (transition.from_state, transition.to_state) in self.removed_transitions:
            return
        self.next_event_transitions.append(transition)
