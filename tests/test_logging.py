"""Log records carry the order currently being transitioned."""

import logging

from storefront.common.logging import ContextFilter, order_number_ctx


def test_context_filter_injects_order_number():
    record = logging.LogRecord("storefront", logging.INFO, __file__, 1, "checkout_transition", None, None)
    token = order_number_ctx.set("R300")
    try:
        assert ContextFilter().filter(record) is True
    finally:
        order_number_ctx.reset(token)

    assert record.order_number == "R300"
    assert record.service_name == "storefront"
