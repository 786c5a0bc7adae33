"""Error kinds raised by the checkout state machine.

Every failure the engine reports is a distinct subclass so callers can map it
to their own "cannot proceed" or "checkout failed" responses.
"""


class CheckoutError(Exception):
    """Base class for checkout failures."""

    def __init__(self, message: str, order_number: str | None = None) -> None:
        self.order_number = order_number
        super().__init__(message)


class GuardRejected(CheckoutError):
    """A guard or a vetoing before hook refused the transition; nothing changed."""

    def __init__(self, event: str, reason: str, order_number: str | None = None) -> None:
        self.event = event
        self.reason = reason
        super().__init__(f"{event} rejected by {reason}", order_number)


class NoEligibleTransition(CheckoutError):
    """`next` found no transition out of the current state."""

    def __init__(self, state: str, order_number: str | None = None) -> None:
        self.state = state
        super().__init__(f"No eligible transition from {state}", order_number)


class IllegalTransition(CheckoutError):
    """The requested target is not reachable from the current state."""

    def __init__(self, from_state: str, to_state: str, order_number: str | None = None) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Illegal transition: {from_state} -> {to_state}", order_number)


class GatewayError(CheckoutError):
    """Payment capture failed at the gateway."""


class PersistenceFailure(CheckoutError):
    """Saving the order failed (stale state version or constraint violation)."""


class HookFailure(CheckoutError):
    """An after-transition hook failed; the new state is already persisted."""

    def __init__(self, hook: str, state: str, order_number: str | None = None) -> None:
        self.hook = hook
        self.state = state
        super().__init__(f"After hook {hook} failed in state {state}", order_number)
