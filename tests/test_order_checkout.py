"""End-to-end checkout tests for the order hook bindings."""

from decimal import Decimal

import pytest

from storefront.checkout import order_checkout
from storefront.checkout.errors import GatewayError, GuardRejected
from storefront.common import config
from storefront.orders.order import Order
from storefront.orders.schemas import AddressAttributes, Shipment


ADDRESS = {
    "firstname": "Jane",
    "lastname": "Doe",
    "address1": "1 Main Street",
    "city": "Springfield",
    "zipcode": "12345",
    "country": "US",
}


class FakeGateway:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.captured = []

    def capture(self, order, payment) -> None:
        if self.fail:
            raise GatewayError("card declined", order.number)
        self.captured.append(payment.amount)


class FakeMailer:
    def __init__(self) -> None:
        self.sent = []

    def confirm_email(self, order) -> None:
        self.sent.append(("confirm", order.number))

    def cancel_email(self, order) -> None:
        self.sent.append(("cancel", order.number))


def make_order(item_total="100.00", **kwargs) -> Order:
    kwargs.setdefault("mailer", FakeMailer())
    return Order("R100000001", item_total=item_total, item_count=2, **kwargs)


def advance_to(order: Order, state: str) -> Order:
    while order.state != state:
        if order.state == "address":
            assert order.update_attributes({"email": "jane@example.com", "bill_address": ADDRESS, "use_billing": True})
        if order.state == "payment":
            assert order.update_from_params(
                {
                    "order": {"payments_attributes": [{"payment_method_id": "check", "amount": "1.00"}]},
                    "payment_source": {"check": {"name": "Jane"}},
                }
            )
        order.next()
    return order


def test_full_checkout_captures_payment_and_finalizes():
    """A paid order walks address -> delivery -> payment -> complete."""

    gateway = FakeGateway()
    order = make_order(gateway=gateway)

    assert order.checkout_steps() == ["address", "delivery", "payment", "complete"]
    advance_to(order, "complete")

    assert gateway.captured == [Decimal("100.00")]
    assert order.payment_state == "paid"
    assert order.completed_at is not None
    assert order.shipment_state == "ready"
    assert order.mailer.sent == [("confirm", "R100000001")]


def test_free_order_skips_payment_step():
    order = make_order(item_total="0")

    assert order.checkout_steps() == ["address", "delivery", "complete"]
    advance_to(order, "delivery")
    order.next()

    assert order.state == "complete"


def test_confirm_step_when_configured(monkeypatch):
    monkeypatch.setattr(config.settings, "always_include_confirm_step", True)
    order = advance_to(make_order(), "payment")

    order.next()

    assert order.state == "confirm"
    assert order.checkout_steps() == ["address", "delivery", "payment", "confirm", "complete"]


def test_gateway_error_blocks_completion_by_default(monkeypatch):
    """With the flag off the gateway error surfaces and state is unchanged."""

    monkeypatch.setattr(config.settings, "allow_checkout_on_gateway_error", False)
    order = advance_to(make_order(gateway=FakeGateway(fail=True)), "payment")
    order.update_from_params(
        {"order": {"payments_attributes": [{"payment_method_id": "check", "amount": "1.00"}]}}
    )

    with pytest.raises(GatewayError):
        order.next()
    assert order.state == "payment"
    assert order.completed_at is None
    assert order.payment_state == "failed"


def test_gateway_error_allowed_when_configured(monkeypatch):
    monkeypatch.setattr(config.settings, "allow_checkout_on_gateway_error", True)
    order = advance_to(make_order(gateway=FakeGateway(fail=True)), "payment")
    order.update_from_params(
        {"order": {"payments_attributes": [{"payment_method_id": "check", "amount": "1.00"}]}}
    )

    order.next()

    assert order.state == "complete"
    assert order.completed_at is not None


def test_missing_payment_is_a_gateway_error(monkeypatch):
    monkeypatch.setattr(config.settings, "allow_checkout_on_gateway_error", False)
    order = make_order(state="payment")

    with pytest.raises(GatewayError):
        order.next()
    assert order.state == "payment"


def test_tax_and_shipment_created_around_delivery(monkeypatch):
    monkeypatch.setattr(config.settings, "tax_rate", 0.1)
    order = advance_to(make_order(), "delivery")

    assert order.adjustments[0].amount == Decimal("10.00")
    assert order.total == Decimal("110.00")
    assert order.shipments == []

    order.next()

    assert [shipment.state for shipment in order.shipments] == ["pending"]
    order.update_from_params({"order": {"payments_attributes": [{"payment_method_id": "check", "amount": "1.00"}]}})
    assert order.payments[0].amount == Decimal("110.00")


def test_entering_delivery_drops_stale_shipments():
    order = advance_to(make_order(), "address")
    order.shipments.append(
        Shipment(number="H1", address=AddressAttributes(**{**ADDRESS, "city": "Shelbyville"}), item_count=2)
    )
    order.update_attributes({"bill_address": ADDRESS, "use_billing": True})

    order.next()

    assert order.state == "delivery"
    assert order.shipments == []


def test_cancel_and_resume_completed_order():
    order = advance_to(make_order(), "complete")

    order.cancel()
    assert order.state == "canceled"
    assert order.shipment_state == "canceled"
    assert order.payments[0].state == "void"
    assert ("cancel", "R100000001") in order.mailer.sent

    order.resume()
    assert order.state == "resumed"
    assert order.shipment_state == "ready"


def test_cannot_cancel_incomplete_or_shipped_order():
    with pytest.raises(GuardRejected):
        advance_to(make_order(), "payment").cancel()

    order = advance_to(make_order(), "complete")
    order.shipments[0].state = "shipped"
    order.shipment_state = "shipped"
    with pytest.raises(GuardRejected):
        order.cancel()


def test_jump_ahead_from_address():
    order = advance_to(make_order(), "address")

    assert order.can_go_to_state("payment")
    order.go_to_state("payment")
    assert order.state == "payment"
    assert not order.can_go_to_state("delivery")


@pytest.fixture
def shared_flow():
    yield order_checkout.checkout_flow
    order_checkout.checkout_flow.checkout_flow(order_checkout.define_default_flow)


def test_extensions_reach_orders_built_afterwards(shared_flow):
    """Steps inserted into the shared flow show up on new default orders."""

    shared_flow.insert_checkout_step("gift_wrap", before="complete")
    order = make_order()

    assert order.checkout_steps() == ["address", "delivery", "payment", "gift_wrap", "complete"]
    advance_to(order, "payment")
    order.update_from_params({"order": {"payments_attributes": [{"payment_method_id": "check", "amount": "1.00"}]}})
    order.next()
    assert order.state == "gift_wrap"
