"""Fulfillment service: shipping, delivery and cancellation of orders."""

import logging
from dataclasses import replace
from typing import Optional

from .approval.machine import OrderStateMachine
from .approval.states import OrderEvent
from .errors import InvalidStateError, NotFoundError
from .models import Order
from .store import OrderStore

logger = logging.getLogger(__name__)


class FulfillmentService:
    """Advances paid orders through shipping and handles cancellation."""

    def __init__(self, store: OrderStore):
        self.store = store

    def ship(self, order_id: str, actor_id: Optional[str] = None) -> Order:
        """Mark a processing order as shipped."""
        return self._apply(order_id, OrderEvent.SHIP, actor_id=actor_id)

    def deliver(self, order_id: str, actor_id: Optional[str] = None) -> Order:
        """Mark a shipped order as delivered."""
        return self._apply(order_id, OrderEvent.DELIVER, actor_id=actor_id)

    def cancel(self, order_id: str, actor_id: Optional[str] = None, reason: Optional[str] = None) -> Order:
        """
        Cancel an order that has not been delivered.

        Raises:
            NotFoundError: If the order does not exist
            InvalidStateError: If the order is delivered, already cancelled,
                or rejected
        """
        return self._apply(order_id, OrderEvent.CANCEL, actor_id=actor_id, remarks=reason)

    def _apply(
        self,
        order_id: str,
        event: OrderEvent,
        *,
        actor_id: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise NotFoundError(order_id)

        machine = OrderStateMachine(order)
        updated = replace(
            machine.apply(event, actor_id=actor_id, remarks=remarks),
            version=order.version + 1,
        )

        if not self.store.compare_and_swap(order.id, order.version, updated, machine.get_history()):
            raise InvalidStateError(f"Order {order.id} changed during {event.value}", order.id)

        logger.info(f"Order {order.id} {order.order_status.value} -> {updated.order_status.value} ({event.value})")
        return updated
