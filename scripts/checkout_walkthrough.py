"""Walk one order through checkout against a SQLite database.

Useful for eyeballing hook side effects and the persisted state timeline.
"""

import argparse
import json
from decimal import Decimal

from storefront.checkout.errors import CheckoutError
from storefront.common.config import settings
from storefront.common.db import Base, make_engine, make_session_factory
from storefront.common.logging import configure_logging
from storefront.orders.order import Order
from storefront.orders.store import OrderStore


ADDRESS = {
    "firstname": "Ryan",
    "lastname": "Bigg",
    "address1": "143 Swan Street",
    "city": "Richmond",
    "zipcode": "12345",
    "country": "AU",
}


def walkthrough(store: OrderStore, number: str, item_total: Decimal, up_to: str) -> Order:
    """Advance a fresh order until it reaches `up_to` or checkout stops."""

    order = Order(number, item_total=item_total, item_count=1, store=store)
    order.save()
    while order.state != up_to:
        if order.state == "address":
            order.update_attributes({"email": "ryan@example.com", "bill_address": ADDRESS, "use_billing": True})
        if order.state == "payment":
            order.update_from_params(
                {
                    "order": {"payments_attributes": [{"payment_method_id": "Check", "amount": "0"}]},
                    "payment_source": {"check": {"name": "Ryan Bigg"}},
                }
            )
        order.next()
    return order


def main() -> None:
    """Parse CLI args, run the walkthrough and print the timeline."""

    parser = argparse.ArgumentParser(description="Drive an order through checkout.")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--number", default="R100000001")
    parser.add_argument("--item-total", default="19.99")
    parser.add_argument("--up-to", default="complete")
    args = parser.parse_args()

    configure_logging()
    engine = make_engine(args.database_url)
    Base.metadata.create_all(engine)
    store = OrderStore(make_session_factory(engine))

    try:
        order = walkthrough(store, args.number, Decimal(args.item_total), args.up_to)
    except CheckoutError as exc:
        raise SystemExit(f"checkout stopped: {exc}") from exc
    print(json.dumps({"order": order.number, "state": order.state, "timeline": store.timeline(order.number)}))


if __name__ == "__main__":
    main()
