"""Order state machine implementation.

Applies decisions, payments and fulfillment events to an order snapshot,
validating each transition and recording it for the audit trail. The
machine never persists anything; services hand its result and history to
the order store's compare-and-swap.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional, Union

from ..errors import InvalidStateError, OrderIntegrityError, ValidationError
from ..models import (
    AdminDecision,
    ApprovalStatus,
    Decision,
    Order,
    OrderStatus,
    PaymentRecord,
    TransitionRecord,
    utcnow,
)
from .states import (
    DECISION_OUTCOMES,
    TERMINAL_ORDER_STATUSES,
    OrderEvent,
    can_apply,
    can_transition,
    check_invariants,
    get_target_status,
    next_order_status,
)


def parse_decision(decision: Union[Decision, str]) -> Decision:
    try:
        return Decision(decision)
    except ValueError as e:
        raise ValidationError(f"Unknown decision: {decision!r}") from e


def is_fresh(order: Order) -> bool:
    """Whether the order still carries the state Order.create gives it."""
    return (
        order.approval_status == ApprovalStatus.PENDING
        and order.order_status == OrderStatus.AWAITING_APPROVAL
        and order.admin_decision is None
        and order.payment_record is None
        and order.cancelled_at is None
    )


def clean_remarks(remarks: Optional[str]) -> Optional[str]:
    if remarks is None:
        return None
    remarks = remarks.strip()
    return remarks or None


class OrderStateMachine:
    """
    State machine for a single order snapshot.

    Each successful transition replaces the held snapshot and appends a
    TransitionRecord; the version is left untouched for the store to bump.
    """

    def __init__(self, order: Order):
        self._order = order
        self._history: list[TransitionRecord] = []

    @property
    def order(self) -> Order:
        """Current snapshot."""
        return self._order

    @property
    def is_terminal(self) -> bool:
        """Check if the order status has no outgoing transitions."""
        return self._order.order_status in TERMINAL_ORDER_STATUSES

    def can_decide(self, decision: Union[Decision, str]) -> bool:
        """Check if an admin decision is possible from the current state."""
        return can_transition(self._order, DECISION_OUTCOMES[parse_decision(decision)])

    def get_available_events(self) -> list[OrderEvent]:
        """Order status events available from the current snapshot."""
        return [event for event in OrderEvent if can_apply(self._order, event)]

    def submit(self, *, submitted_at: Optional[datetime] = None) -> Order:
        """
        Place a just-created order into the approval queue.

        Raises:
            InvalidStateError: If the order was already submitted or is not
                in its just-created state
        """
        order = self._order
        if order.is_submitted or order.version != 0:
            raise InvalidStateError(f"Order {order.id} has already been submitted", order.id)

        if not is_fresh(order):
            raise InvalidStateError(
                f"Order {order.id} is not in its just-created state "
                f"({order.approval_status.value}/{order.order_status.value})",
                order.id,
            )

        return self._commit(
            replace(order, submitted_at=submitted_at or utcnow()),
            OrderEvent.SUBMIT,
            actor_id=order.owner_id,
        )

    def decide(
        self,
        decision: Union[Decision, str],
        *,
        admin_id: str,
        remarks: Optional[str] = None,
        decided_at: Optional[datetime] = None,
    ) -> Order:
        """
        Record an admin decision.

        Raises:
            InvalidStateError: If the order was already decided
            OrderIntegrityError: If a pending order has left AWAITING_APPROVAL
            ValidationError: If a rejection has no remarks
        """
        decision = parse_decision(decision)
        outcome = DECISION_OUTCOMES[decision]
        order = self._order

        if not can_transition(order, outcome):
            raise InvalidStateError(f"Order {order.id} already decided", order.id)

        if order.order_status != OrderStatus.AWAITING_APPROVAL:
            raise OrderIntegrityError(
                f"Pending order {order.id} is in {order.order_status.value}, expected awaiting_approval",
                order.id,
            )

        remarks = clean_remarks(remarks)
        if decision == Decision.REJECT and not remarks:
            raise ValidationError("Rejection requires remarks")

        decided = replace(
            order,
            approval_status=outcome,
            admin_decision=AdminDecision(
                decided_by=admin_id,
                decided_at=decided_at or utcnow(),
                remarks=remarks,
            ),
        )
        decided = replace(decided, order_status=next_order_status(decided))

        event = OrderEvent.APPROVE if decision == Decision.APPROVE else OrderEvent.REJECT
        return self._commit(decided, event, actor_id=admin_id, remarks=remarks)

    def record_payment(self, record: PaymentRecord) -> Order:
        """Attach a confirmed payment and move the order to PROCESSING."""
        order = self._order
        if order.payment_record is not None or not can_apply(order, OrderEvent.PAY):
            raise InvalidStateError(
                f"Cannot record payment for order {order.id} in {order.order_status.value}", order.id
            )

        return self._commit(
            replace(
                order,
                payment_record=record,
                order_status=get_target_status(order.order_status, OrderEvent.PAY),
            ),
            OrderEvent.PAY,
            actor_id=order.owner_id,
        )

    def apply(
        self,
        event: OrderEvent,
        *,
        actor_id: Optional[str] = None,
        remarks: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Order:
        """Apply a fulfillment event (ship, deliver, cancel)."""
        if event not in (OrderEvent.SHIP, OrderEvent.DELIVER, OrderEvent.CANCEL):
            raise InvalidStateError(f"{event.value} is not a fulfillment event", self._order.id)

        order = self._order
        if not can_apply(order, event):
            raise InvalidStateError(
                f"Cannot {event.value} order {order.id} from {order.order_status.value}", order.id
            )

        remarks = clean_remarks(remarks)
        updated = replace(order, order_status=get_target_status(order.order_status, event))
        if event == OrderEvent.CANCEL:
            updated = replace(updated, cancelled_at=at or utcnow(), cancel_reason=remarks)

        return self._commit(updated, event, actor_id=actor_id, remarks=remarks)

    def get_history(self) -> list[TransitionRecord]:
        """Transitions applied through this machine, oldest first."""
        return self._history.copy()

    def _commit(
        self,
        updated: Order,
        event: OrderEvent,
        *,
        actor_id: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> Order:
        check_invariants(updated)

        self._history.append(
            TransitionRecord(
                order_id=updated.id,
                event=event.value,
                from_approval_status=self._order.approval_status,
                to_approval_status=updated.approval_status,
                from_order_status=self._order.order_status,
                to_order_status=updated.order_status,
                actor_id=actor_id,
                remarks=remarks,
            )
        )
        self._order = updated
        return updated
