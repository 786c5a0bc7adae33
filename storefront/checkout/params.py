"""Adapt checkout form parameters before assigning them to the order."""

import copy
import re
from typing import Any, Callable


_ACRONYM_BOUNDARY = re.compile(r"([A-Z\d]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")

ParamsCallback = Callable[[Any, dict], None]


def underscore(word: Any) -> str:
    """Normalize an identifier the way payment source keys are written.

    "CreditCard" -> "credit_card", "Gateway::Bogus" -> "gateway/bogus".
    """

    word = str(word).replace("::", "/")
    word = _ACRONYM_BOUNDARY.sub(r"\1_\2", word)
    word = _CAMEL_BOUNDARY.sub(r"\1_\2", word)
    return word.replace("-", "_").lower()


def update_params_payment_source(order, params: dict) -> None:
    """Fold the selected method's source into the payment and pin its amount.

    Only the source keyed by the chosen payment method is kept; sources for
    other methods are discarded with the top-level `payment_source` key. The
    amount always comes from the order total, never from the client.
    """

    if order.state != "payment":
        return
    order_params = params.get("order") or {}
    payments = order_params.get("payments_attributes") or []
    payment_source = params.pop("payment_source", None)

    if isinstance(payment_source, dict) and payments:
        method_key = underscore(payments[0].get("payment_method_id", ""))
        source_params = payment_source.get(method_key)
        if source_params:
            payments[0]["source_attributes"] = source_params
    if payments:
        payments[0]["amount"] = order.total


class UpdatingFromParams:
    """Before-callback chain run ahead of attribute assignment."""

    def __init__(self, callbacks: list[ParamsCallback] | None = None) -> None:
        if callbacks is None:
            callbacks = [update_params_payment_source]
        self.callbacks = list(callbacks)

    def before(self, callback: ParamsCallback) -> "UpdatingFromParams":
        self.callbacks.append(callback)
        return self

    def run(self, order, params: dict) -> bool:
        updating_params = copy.deepcopy(params)
        for callback in self.callbacks:
            callback(order, updating_params)
        return order.update_attributes(updating_params.get("order") or {})


def update_from_params(order, params: dict, chain: UpdatingFromParams | None = None) -> bool:
    """Run the params chain then assign `params["order"]`; False on invalid input."""

    return (chain or UpdatingFromParams()).run(order, params)
