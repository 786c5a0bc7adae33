"""Tests for the checkout parameter-update pipeline."""

from decimal import Decimal

from storefront.checkout.params import UpdatingFromParams, underscore, update_params_payment_source
from storefront.orders.order import Order


def payment_params(method_id: str = "check", amount: str = "1.00") -> dict:
    return {
        "order": {"payments_attributes": [{"payment_method_id": method_id, "amount": amount}]},
        "payment_source": {
            "check": {"name": "Jane"},
            "credit_card": {"number": "4111111111111111"},
        },
    }


def test_payment_source_spliced_and_amount_pinned_to_total():
    """Selected method's source is kept and the client amount is ignored."""

    order = Order("R1", item_total="42.50", state="payment")

    assert order.update_from_params(payment_params()) is True

    payment = order.payments[0]
    assert payment.source == {"name": "Jane"}
    assert payment.amount == Decimal("42.50")
    assert payment.payment_method_id == "check"


def test_camel_case_method_id_selects_underscored_source():
    order = Order("R1", item_total="10", state="payment")

    order.update_from_params(payment_params(method_id="CreditCard"))

    assert order.payments[0].source == {"number": "4111111111111111"}


def test_input_is_not_mutated():
    order = Order("R1", item_total="10", state="payment")
    params = payment_params()

    order.update_from_params(params)

    assert "payment_source" in params
    assert params["order"]["payments_attributes"][0]["amount"] == "1.00"


def test_callback_inactive_outside_payment_state():
    order = Order("R1", item_total="10", state="delivery")
    params = payment_params()

    update_params_payment_source(order, params)

    assert "payment_source" in params
    assert params["order"]["payments_attributes"][0] == {"payment_method_id": "check", "amount": "1.00"}


def test_payment_source_removed_even_without_match():
    order = Order("R1", item_total="10", state="payment")
    params = {
        "order": {"payments_attributes": [{"payment_method_id": "bogus", "amount": "5"}]},
        "payment_source": {"check": {"name": "Jane"}},
    }

    update_params_payment_source(order, params)

    assert "payment_source" not in params
    assert "source_attributes" not in params["order"]["payments_attributes"][0]
    assert params["order"]["payments_attributes"][0]["amount"] == Decimal("10")


def test_invalid_attributes_return_false_and_leave_order_untouched():
    order = Order("R1", item_total="10", email="old@example.com")

    assert order.update_from_params({"order": {"email": "not-an-email"}}) is False
    assert order.update_from_params({"order": {"unknown_field": 1}}) is False
    assert order.email == "old@example.com"


def test_extra_callbacks_run_after_default_chain():
    seen = []
    chain = UpdatingFromParams().before(lambda order, params: seen.append(dict(params["order"])))
    order = Order("R1", item_total="10")

    assert order.update_from_params({"order": {"email": "jane@example.com"}}, chain=chain)

    assert seen == [{"email": "jane@example.com"}]
    assert order.email == "jane@example.com"


def test_underscore():
    assert underscore("check") == "check"
    assert underscore("CreditCard") == "credit_card"
    assert underscore("HTTPGateway") == "http_gateway"
    assert underscore("Gateway::Bogus") == "gateway/bogus"
    assert underscore("store-credit") == "store_credit"
    assert underscore(7) == "7"


def test_non_mapping_payment_source_is_discarded():
    order = Order("R1", item_total="10", state="payment")
    params = {
        "order": {"payments_attributes": [{"payment_method_id": "check", "amount": "5"}]},
        "payment_source": "check",
    }

    update_params_payment_source(order, params)

    assert "payment_source" not in params
    assert "source_attributes" not in params["order"]["payments_attributes"][0]
    assert params["order"]["payments_attributes"][0]["amount"] == Decimal("10")
