"""Prometheus metric definitions for checkout transitions."""

from prometheus_client import Counter


checkout_transitions_total = Counter(
    "checkout_transitions_total",
    "Total applied checkout state transitions",
    ["event", "from_state", "to_state"],
)
checkout_rejections_total = Counter(
    "checkout_rejections_total",
    "Checkout transitions refused before any state change",
    ["event", "reason"],
)
checkout_gateway_errors_total = Counter(
    "checkout_gateway_errors_total",
    "Payment gateway errors raised while completing checkout",
    ["allowed"],
)
order_state_conflicts_total = Counter(
    "order_state_conflicts_total",
    "Order saves rejected by the state version check or a constraint",
)
