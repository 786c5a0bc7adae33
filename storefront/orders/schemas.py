"""Order sub-records and the attribute payload accepted by `update_attributes`."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AddressAttributes(BaseModel):
    """Billing or shipping address as submitted at the address step."""

    model_config = ConfigDict(extra="forbid")

    firstname: str = Field(min_length=1)
    lastname: str = Field(min_length=1)
    address1: str = Field(min_length=1)
    address2: str | None = None
    city: str = Field(min_length=1)
    zipcode: str = Field(min_length=1)
    phone: str | None = None
    state_name: str | None = None
    country: str = Field(min_length=2)


class PaymentAttributes(BaseModel):
    """One payment as submitted at the payment step."""

    model_config = ConfigDict(extra="forbid")

    payment_method_id: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    source_attributes: dict[str, Any] = Field(default_factory=dict)


class OrderAttributes(BaseModel):
    """Assignable order attributes; unknown keys fail validation."""

    model_config = ConfigDict(extra="forbid")

    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    special_instructions: str | None = None
    use_billing: bool | None = None
    coupon_code: str | None = None
    bill_address: AddressAttributes | None = None
    ship_address: AddressAttributes | None = None
    payments_attributes: list[PaymentAttributes] | None = None


class Payment(BaseModel):
    payment_method_id: str
    amount: Decimal
    source: dict[str, Any] = Field(default_factory=dict)
    state: str = "checkout"


class Shipment(BaseModel):
    number: str
    address: AddressAttributes | None = None
    item_count: int
    state: str = "pending"


class Adjustment(BaseModel):
    label: str
    amount: Decimal
    kind: str = "tax"


class ReturnAuthorization(BaseModel):
    number: str
    state: str = "authorized"
