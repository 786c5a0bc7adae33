"""Default storefront checkout flow and the order-specific hook bindings."""

from storefront.checkout.errors import GatewayError
from storefront.checkout.flow import CheckoutFlow, Transition
from storefront.checkout.machine import CheckoutMachine, TransitionHooks
from storefront.common import config
from storefront.common.logging import logger
from storefront.common.metrics import checkout_gateway_errors_total


def define_default_flow(flow: CheckoutFlow) -> None:
    flow.go_to_state("address")
    flow.go_to_state("delivery")
    flow.go_to_state("payment", if_="payment_required")
    flow.go_to_state("confirm", if_="confirmation_required")
    flow.go_to_state("complete")


def default_checkout_flow() -> CheckoutFlow:
    return CheckoutFlow(define_default_flow)


def process_payments_before_complete(order, transition: Transition) -> bool:
    """Capture payments before completing.

    A gateway error aborts the transition unless the store is configured to
    allow checkout on gateway errors, in which case the error is only logged.
    """

    if not order.payment_required():
        return True
    try:
        order.process_payments()
    except GatewayError as exc:
        allowed = config.settings.allow_checkout_on_gateway_error
        checkout_gateway_errors_total.labels(allowed=str(allowed).lower()).inc()
        if not allowed:
            logger.warning("gateway_error order=%s event=%s error=%s", order.number, transition.event, exc)
            raise
        logger.warning("gateway_error_allowed order=%s event=%s error=%s", order.number, transition.event, exc)
    return True


def order_hooks() -> TransitionHooks:
    """Hook bindings every storefront order runs around its transitions."""

    hooks = TransitionHooks()
    hooks.before(process_payments_before_complete, to="complete")
    hooks.before("remove_invalid_shipments", to="delivery")

    hooks.after("finalize", to="complete")
    hooks.after("create_tax_charge", to="delivery")
    hooks.after("after_resume", to="resumed")
    hooks.after("after_cancel", to="canceled")

    hooks.after("create_shipment", from_="delivery")
    return hooks


# process-wide registry; extensions reshape it in place
checkout_flow = default_checkout_flow()


def default_machine(flow: CheckoutFlow | None = None) -> CheckoutMachine:
    """Bind the current snapshot of `flow` (the shared flow by default) to the order hooks."""

    flow = flow or checkout_flow
    return CheckoutMachine(flow.snapshot(), order_hooks())
