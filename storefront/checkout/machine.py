"""Checkout state machine engine.

Applies transitions from a `FlowSnapshot` to an order: evaluate guards, run
before hooks, move the state, persist through `order.save()`, run after hooks.
"""

from typing import Any, Callable

from storefront.checkout.errors import (
    GuardRejected,
    HookFailure,
    IllegalTransition,
    NoEligibleTransition,
)
from storefront.checkout.flow import FlowSnapshot, Transition
from storefront.common.logging import logger, order_number_ctx
from storefront.common.metrics import checkout_rejections_total, checkout_transitions_total


INITIAL_STATE = "cart"
SIDE_STATES = ("canceled", "resumed", "returned", "awaiting_return")

HookAction = Callable[[Any, Transition], Any] | str


class Hook:
    """A named handler bound to transitions by destination and/or source state."""

    def __init__(self, do: HookAction, to_state: str | None = None, from_state: str | None = None) -> None:
        self.do = do
        self.to_state = to_state
        self.from_state = from_state

    @property
    def name(self) -> str:
        if isinstance(self.do, str):
            return self.do
        return getattr(self.do, "__name__", repr(self.do))

    def matches(self, transition: Transition) -> bool:
        if self.to_state is not None and self.to_state != transition.to_state:
            return False
        if self.from_state is not None and self.from_state != transition.from_state:
            return False
        return True

    def __call__(self, order: Any, transition: Transition) -> Any:
        # string actions name an order method, mirroring `:do => :method`
        if isinstance(self.do, str):
            return getattr(order, self.do)()
        return self.do(order, transition)


class TransitionHooks:
    """Ordered before/after hook lists, dispatched explicitly by the engine."""

    def __init__(self) -> None:
        self.before_hooks: list[Hook] = []
        self.after_hooks: list[Hook] = []

    def before(self, do: HookAction, to: str | None = None, from_: str | None = None) -> "TransitionHooks":
        self.before_hooks.append(Hook(do, to_state=to, from_state=from_))
        return self

    def after(self, do: HookAction, to: str | None = None, from_: str | None = None) -> "TransitionHooks":
        self.after_hooks.append(Hook(do, to_state=to, from_state=from_))
        return self

    def run_before(self, order: Any, transition: Transition) -> None:
        """Run matching before hooks; a hook returning False vetoes the transition."""

        for hook in self.before_hooks:
            if hook.matches(transition) and hook(order, transition) is False:
                raise GuardRejected(transition.event, hook.name, order.number)

    def run_after(self, order: Any, transition: Transition) -> None:
        for hook in self.after_hooks:
            if not hook.matches(transition):
                continue
            try:
                hook(order, transition)
            except Exception as exc:
                logger.error(
                    "after_hook_failed order=%s hook=%s state=%s error=%s",
                    order.number,
                    hook.name,
                    transition.to_state,
                    exc,
                )
                raise HookFailure(hook.name, transition.to_state, order.number) from exc


class CheckoutMachine:
    """Drives one order at a time through a frozen checkout flow.

    The engine holds no per-order state; callers serialize requests for the
    same order (see `OrderStore` for the version check backing that).
    """

    def __init__(self, snapshot: FlowSnapshot, hooks: TransitionHooks | None = None) -> None:
        self.snapshot = snapshot
        self.hooks = hooks or TransitionHooks()

    def states(self) -> list[str]:
        return [INITIAL_STATE, *self.snapshot.step_names(), *SIDE_STATES]

    def checkout_steps(self, order: Any) -> list[str]:
        return self.snapshot.checkout_steps_for(order)

    def has_checkout_step(self, order: Any, step: str | None) -> bool:
        return bool(step) and step in self.checkout_steps(order)

    def checkout_step_index(self, order: Any, step: str) -> int | None:
        steps = self.checkout_steps(order)
        return steps.index(step) if step in steps else None

    def can_go_to_state(self, order: Any, state: str) -> bool:
        """True when `state` lies strictly ahead of the order's current step."""

        if not order.state or not self.has_checkout_step(order, state):
            return False
        if not self.has_checkout_step(order, order.state):
            return False
        return self.checkout_step_index(order, state) > self.checkout_step_index(order, order.state)

    def next(self, order: Any) -> Transition:
        transition = self.snapshot.next_transition(order.state, order)
        if transition is None:
            checkout_rejections_total.labels(event="next", reason="no_eligible_transition").inc()
            raise NoEligibleTransition(order.state, order.number)
        return self._perform(order, transition)

    def go_to_state(self, order: Any, state: str) -> Transition:
        if not self.can_go_to_state(order, state):
            checkout_rejections_total.labels(event="go_to_state", reason="illegal_transition").inc()
            raise IllegalTransition(order.state, state, order.number)
        return self._perform(order, Transition(from_state=order.state, to_state=state, event="go_to_state"))

    def cancel(self, order: Any) -> Transition:
        return self._fire(
            order, Transition(from_state=order.state, to_state="canceled", event="cancel", if_="allow_cancel")
        )

    def resume(self, order: Any) -> Transition:
        self._require_state(order, "canceled", "resumed")
        return self._fire(
            order, Transition(from_state=order.state, to_state="resumed", event="resume", if_="allow_resume")
        )

    def authorize_return(self, order: Any) -> Transition:
        return self._fire(
            order, Transition(from_state=order.state, to_state="awaiting_return", event="authorize_return")
        )

    def return_(self, order: Any) -> Transition:
        self._require_state(order, "awaiting_return", "returned")
        return self._fire(
            order,
            Transition(from_state=order.state, to_state="returned", event="return", unless="awaiting_returns"),
        )

    def _require_state(self, order: Any, expected: str, target: str) -> None:
        if order.state != expected:
            checkout_rejections_total.labels(event=target, reason="illegal_transition").inc()
            raise IllegalTransition(order.state, target, order.number)

    def _fire(self, order: Any, transition: Transition) -> Transition:
        rejected_by = transition.rejected_by(order)
        if rejected_by is not None:
            checkout_rejections_total.labels(event=transition.event, reason=rejected_by).inc()
            logger.info(
                "guard_rejected order=%s event=%s state=%s guard=%s",
                order.number,
                transition.event,
                order.state,
                rejected_by,
            )
            raise GuardRejected(transition.event, rejected_by, order.number)
        return self._perform(order, transition)

    def _perform(self, order: Any, transition: Transition) -> Transition:
        token = order_number_ctx.set(order.number or "")
        try:
            try:
                self.hooks.run_before(order, transition)
            except GuardRejected as exc:
                checkout_rejections_total.labels(event=transition.event, reason=exc.reason).inc()
                raise

            order.state = transition.to_state
            try:
                order.save()
            except Exception:
                order.state = transition.from_state
                raise

            checkout_transitions_total.labels(
                event=transition.event,
                from_state=transition.from_state,
                to_state=transition.to_state,
            ).inc()
            logger.info(
                "checkout_transition order=%s event=%s from=%s to=%s",
                order.number,
                transition.event,
                transition.from_state,
                transition.to_state,
            )
            self.hooks.run_after(order, transition)
            return transition
        finally:
            order_number_ctx.reset(token)
