"""SQL persistence for orders with optimistic state versioning."""

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from storefront.checkout.errors import PersistenceFailure
from storefront.common.logging import logger
from storefront.common.metrics import order_state_conflicts_total
from storefront.orders.models import OrderRecord, OrderStateChange


class OrderStore:
    """Saves `Order` aggregates; the engine calls this through `order.save()`.

    Updates are guarded by `(number, state_version)` so a stale copy of an
    order cannot overwrite a newer state. Conflicts raise `PersistenceFailure`;
    retrying is left to the caller.
    """

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def save(self, order) -> None:
        with self.session_factory() as db:
            try:
                if order.persisted:
                    new_version = self._update(db, order)
                else:
                    new_version = self._insert(db, order)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                order_state_conflicts_total.inc()
                logger.warning("order_save_conflict order=%s error=%s", order.number, exc.orig)
                raise PersistenceFailure(f"Could not save order {order.number}", order.number) from exc
        order.state_version = new_version
        order.persisted = True

    def _insert(self, db, order) -> int:
        db.add(
            OrderRecord(
                number=order.number,
                email=order.email,
                state=order.state,
                state_version=0,
                item_total=order.item_total,
                total=order.total,
                payment_state=order.payment_state,
                shipment_state=order.shipment_state,
                completed_at=order.completed_at,
            )
        )
        db.flush()
        db.add(OrderStateChange(order_number=order.number, from_state=None, to_state=order.state, state_version=0))
        return 0

    def _update(self, db, order) -> int:
        current_version = order.state_version
        from_state = db.execute(
            select(OrderRecord.state).where(OrderRecord.number == order.number)
        ).scalar_one_or_none()
        result = db.execute(
            update(OrderRecord)
            .where(
                OrderRecord.number == order.number,
                OrderRecord.state_version == current_version,
            )
            .values(
                email=order.email,
                state=order.state,
                state_version=current_version + 1,
                item_total=order.item_total,
                total=order.total,
                payment_state=order.payment_state,
                shipment_state=order.shipment_state,
                completed_at=order.completed_at,
                updated_at=datetime.now(timezone.utc),
            )
        )
        if result.rowcount != 1:
            db.rollback()
            order_state_conflicts_total.inc()
            raise PersistenceFailure(
                f"optimistic concurrency conflict for order {order.number} "
                f"(expected version {current_version})",
                order.number,
            )
        if from_state != order.state:
            db.add(
                OrderStateChange(
                    order_number=order.number,
                    from_state=from_state,
                    to_state=order.state,
                    state_version=current_version + 1,
                )
            )
        return current_version + 1

    def load_state(self, number: str) -> tuple[str, int] | None:
        """Return the persisted (state, state_version) of an order."""

        with self.session_factory() as db:
            row = db.execute(
                select(OrderRecord.state, OrderRecord.state_version).where(OrderRecord.number == number)
            ).one_or_none()
            if row is None:
                return None
            return row.state, row.state_version

    def timeline(self, number: str) -> list[tuple[str | None, str]]:
        with self.session_factory() as db:
            rows = db.execute(
                select(OrderStateChange.from_state, OrderStateChange.to_state)
                .where(OrderStateChange.order_number == number)
                .order_by(OrderStateChange.state_version)
            ).all()
            return [(row.from_state, row.to_state) for row in rows]
