"""Payment service: gated payment attempts and payment confirmation.

The gate is consulted before the provider is called and again, on fresh
state, before the payment record is written. The write itself goes through
the same per-order compare-and-swap as admin decisions, so a double-submitted
confirmation can record at most one payment.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Union

from ..approval.machine import OrderStateMachine
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import Order, PaymentMethod, PaymentRecord, utcnow
from ..store import OrderStore
from .gate import authorize_payment_attempt

if TYPE_CHECKING:
    from orderflow.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class PaymentProvider(ABC):
    """Opaque payment provider integration."""

    @abstractmethod
    def charge(self, order: Order, method: PaymentMethod) -> str:
        """Collect payment for an order and return the provider transaction ID."""


def parse_payment_method(method: Union[PaymentMethod, str]) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError as e:
        raise ValidationError(f"Unknown payment method: {method!r}") from e


class PaymentService:
    """Runs payment attempts against the gate and records confirmed payments."""

    def __init__(self, store: OrderStore, dispatcher: "NotificationDispatcher"):
        self.store = store
        self.dispatcher = dispatcher

    def attempt_payment(
        self,
        order_id: str,
        method: Union[PaymentMethod, str],
        provider: PaymentProvider,
    ) -> Order:
        """
        Gate, charge and confirm a payment.

        Raises:
            NotFoundError: If the order does not exist
            GateError: If the order is not payable
            ValidationError: If the payment method is unknown
        """
        method = parse_payment_method(method)
        order = self._load(order_id)
        authorize_payment_attempt(order)

        logger.info(f"Charging order {order.id} ({order.total}) via {method.value}")
        transaction_id = provider.charge(order, method)

        return self.confirm_payment(order_id, method, transaction_id)

    def confirm_payment(
        self,
        order_id: str,
        method: Union[PaymentMethod, str],
        provider_transaction_id: str,
        *,
        confirmed_at: Optional[datetime] = None,
    ) -> Order:
        """
        Record a provider-confirmed payment.

        Returns:
            Updated order in PROCESSING with its payment record

        Raises:
            NotFoundError: If the order does not exist
            GateError: If the order is no longer payable (e.g. already paid)
            InvalidStateError: If the order changed concurrently without
                becoming unpayable
        """
        method = parse_payment_method(method)
        if not provider_transaction_id:
            raise ValidationError("Payment confirmation requires a provider transaction ID")

        order = self._load(order_id)
        authorize_payment_attempt(order)

        machine = OrderStateMachine(order)
        paid = machine.record_payment(
            PaymentRecord(
                method=method,
                provider_transaction_id=provider_transaction_id,
                confirmed_at=confirmed_at or utcnow(),
            )
        )
        updated = replace(paid, version=order.version + 1)

        if not self.store.compare_and_swap(order.id, order.version, updated, machine.get_history()):
            logger.warning(f"Payment confirmation for order {order.id} lost a concurrent update")
            authorize_payment_attempt(self._load(order_id))
            raise InvalidStateError(f"Order {order.id} changed during payment confirmation", order.id)

        logger.info(f"Payment {provider_transaction_id} recorded for order {order.id}")

        owner = self.store.get_owner(updated.owner_id)
        if owner is None:
            logger.warning(f"Owner {updated.owner_id} of order {updated.id} not found, skipping notification")
        else:
            self.dispatcher.dispatch(
                self.dispatcher.gateway.notify_payment_confirmed, updated, owner, order_id=updated.id
            )
        return updated

    def _load(self, order_id: str) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise NotFoundError(order_id)
        return order
