"""Order aggregate driven by the checkout state machine.

Holds the data the checkout guards read and implements the side-effect hooks
bound in `storefront.checkout.order_checkout`. Persistence, payment capture and
mail delivery are delegated to injected collaborators.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from storefront.checkout.errors import GatewayError
from storefront.checkout.flow import Transition
from storefront.checkout.machine import CheckoutMachine
from storefront.checkout.order_checkout import default_machine
from storefront.checkout.params import UpdatingFromParams, update_from_params
from storefront.common import config
from storefront.common.logging import logger
from storefront.orders.schemas import (
    AddressAttributes,
    Adjustment,
    OrderAttributes,
    Payment,
    ReturnAuthorization,
    Shipment,
)


CANCELABLE_SHIPMENT_STATES = (None, "ready", "backorder", "pending")
ASSIGNABLE_FIELDS = ("email", "special_instructions", "coupon_code", "bill_address", "ship_address", "payments")


class LoggingMailer:
    """Mail collaborator that only records what would have been sent."""

    def confirm_email(self, order: "Order") -> None:
        logger.info("confirmation_email order=%s email=%s", order.number, order.email)

    def cancel_email(self, order: "Order") -> None:
        logger.info("cancellation_email order=%s email=%s", order.number, order.email)


class Order:
    """A storefront order moving from `cart` through checkout."""

    def __init__(
        self,
        number: str,
        item_total: Decimal | int | str = 0,
        item_count: int = 0,
        email: str | None = None,
        state: str = "cart",
        store=None,
        gateway=None,
        mailer=None,
        machine: CheckoutMachine | None = None,
    ) -> None:
        self.number = number
        self.item_total = Decimal(item_total)
        self.item_count = item_count
        self.email = email
        self.state = state
        self.special_instructions: str | None = None
        self.coupon_code: str | None = None
        self.bill_address: AddressAttributes | None = None
        self.ship_address: AddressAttributes | None = None
        self.payments: list[Payment] = []
        self.shipments: list[Shipment] = []
        self.adjustments: list[Adjustment] = []
        self.return_authorizations: list[ReturnAuthorization] = []
        self.payment_state: str | None = None
        self.shipment_state: str | None = None
        self.completed_at: datetime | None = None
        self.state_version = 0
        self.persisted = False
        self.store = store
        self.gateway = gateway
        self.mailer = mailer or LoggingMailer()
        self.machine = machine or default_machine()

    def __repr__(self) -> str:
        return f"<Order {self.number} state={self.state}>"

    @property
    def adjustment_total(self) -> Decimal:
        return sum((adjustment.amount for adjustment in self.adjustments), Decimal("0"))

    @property
    def total(self) -> Decimal:
        return self.item_total + self.adjustment_total

    # -- checkout events -------------------------------------------------

    def next(self) -> Transition:
        return self.machine.next(self)

    def cancel(self) -> Transition:
        return self.machine.cancel(self)

    def resume(self) -> Transition:
        return self.machine.resume(self)

    def authorize_return(self) -> Transition:
        return self.machine.authorize_return(self)

    def return_(self) -> Transition:
        return self.machine.return_(self)

    def go_to_state(self, state: str) -> Transition:
        return self.machine.go_to_state(self, state)

    def checkout_steps(self) -> list[str]:
        return self.machine.checkout_steps(self)

    def has_checkout_step(self, step: str | None) -> bool:
        return self.machine.has_checkout_step(self, step)

    def checkout_step_index(self, step: str) -> int | None:
        return self.machine.checkout_step_index(self, step)

    def can_go_to_state(self, state: str) -> bool:
        return self.machine.can_go_to_state(self, state)

    def update_from_params(self, params: dict, chain: UpdatingFromParams | None = None) -> bool:
        return update_from_params(self, params, chain)

    # -- guards ----------------------------------------------------------

    def completed(self) -> bool:
        return self.completed_at is not None

    def allow_cancel(self) -> bool:
        if not self.completed() or self.state == "canceled":
            return False
        return self.shipment_state in CANCELABLE_SHIPMENT_STATES

    def allow_resume(self) -> bool:
        return self.shipment_state != "shipped"

    def awaiting_returns(self) -> bool:
        return any(authorization.state == "authorized" for authorization in self.return_authorizations)

    def payment_required(self) -> bool:
        return self.total > 0

    def confirmation_required(self) -> bool:
        return config.settings.always_include_confirm_step or self.state == "confirm"

    # -- persistence -----------------------------------------------------

    def save(self) -> None:
        if self.store is not None:
            self.store.save(self)

    def update_attributes(self, attributes: dict[str, Any]) -> bool:
        """Validate and apply attributes, then save; False leaves the order untouched."""

        try:
            parsed = OrderAttributes.model_validate(attributes)
        except ValidationError as exc:
            logger.info("order_update_invalid order=%s errors=%s", self.number, exc.error_count())
            return False

        previous = {name: getattr(self, name) for name in ASSIGNABLE_FIELDS}
        fields = parsed.model_fields_set
        if "email" in fields:
            self.email = parsed.email
        if "special_instructions" in fields:
            self.special_instructions = parsed.special_instructions
        if "coupon_code" in fields:
            self.coupon_code = parsed.coupon_code
        if parsed.bill_address is not None:
            self.bill_address = parsed.bill_address
        if parsed.ship_address is not None:
            self.ship_address = parsed.ship_address
        if parsed.use_billing and self.bill_address is not None:
            self.ship_address = self.bill_address.model_copy()
        if parsed.payments_attributes is not None:
            # unprocessed payments are replaced rather than stacked
            kept = [payment for payment in self.payments if payment.state not in ("checkout", "pending")]
            self.payments = kept + [
                Payment(
                    payment_method_id=attrs.payment_method_id,
                    amount=attrs.amount,
                    source=attrs.source_attributes,
                )
                for attrs in parsed.payments_attributes
            ]
        try:
            self.save()
        except Exception:
            for name, value in previous.items():
                setattr(self, name, value)
            raise
        return True

    # -- transition side effects -----------------------------------------

    def process_payments(self) -> None:
        """Capture every pending payment through the gateway."""

        pending = [payment for payment in self.payments if payment.state in ("checkout", "pending")]
        if not pending:
            raise GatewayError("No pending payments", self.number)
        for payment in pending:
            payment.state = "processing"
            try:
                if self.gateway is not None:
                    self.gateway.capture(self, payment)
            except GatewayError:
                payment.state = "failed"
                self.payment_state = "failed"
                raise
            payment.state = "completed"
        paid = sum((p.amount for p in self.payments if p.state == "completed"), Decimal("0"))
        self.payment_state = "paid" if paid >= self.total else "balance_due"

    def remove_invalid_shipments(self) -> None:
        """Drop unshipped shipments whose address or item count no longer match."""

        self.shipments = [
            shipment
            for shipment in self.shipments
            if shipment.state == "shipped"
            or (shipment.address == self.ship_address and shipment.item_count == self.item_count)
        ]
        self._update_shipment_state()

    def create_tax_charge(self) -> None:
        self.adjustments = [adjustment for adjustment in self.adjustments if adjustment.kind != "tax"]
        rate = Decimal(str(config.settings.tax_rate))
        amount = (self.item_total * rate).quantize(Decimal("0.01"))
        if amount > 0:
            self.adjustments.append(Adjustment(label="Tax", amount=amount))
        self.save()

    def create_shipment(self) -> None:
        if any(shipment.state != "canceled" for shipment in self.shipments):
            return
        self.shipments.append(
            Shipment(
                number=f"{self.number}-S{len(self.shipments) + 1}",
                address=self.ship_address,
                item_count=self.item_count,
            )
        )
        self._update_shipment_state()

    def finalize(self) -> None:
        """Mark the order complete, release paid shipments and send confirmation."""

        self.completed_at = datetime.now(timezone.utc)
        if self.payment_state == "paid":
            for shipment in self.shipments:
                if shipment.state == "pending":
                    shipment.state = "ready"
        self._update_shipment_state()
        self.save()
        self.mailer.confirm_email(self)

    def after_cancel(self) -> None:
        for shipment in self.shipments:
            if shipment.state != "shipped":
                shipment.state = "canceled"
        for payment in self.payments:
            if payment.state == "completed":
                payment.state = "void"
        if self.payment_state == "paid":
            self.payment_state = "void"
        self._update_shipment_state()
        self.save()
        self.mailer.cancel_email(self)

    def after_resume(self) -> None:
        for shipment in self.shipments:
            if shipment.state == "canceled":
                shipment.state = "ready"
        self._update_shipment_state()
        self.save()

    def _update_shipment_state(self) -> None:
        states = {shipment.state for shipment in self.shipments}
        self.shipment_state = states.pop() if len(states) == 1 else ("partial" if states else None)
