"""Order workflow states and transitions.

State Machine Diagram:

    approval axis                 order axis

    ┌──────────┐                  ┌───────────────────┐
    │ PENDING  │ ← initial        │ AWAITING_APPROVAL │ ← initial
    └────┬─────┘                  └─────────┬─────────┘
         │                                  │ approve (requires APPROVED)
         ├───────────┐            ┌─────────▼─────────┐
         │           │            │  PAYMENT_PENDING  │
    ┌────▼─────┐ ┌───▼──────┐     └─────────┬─────────┘
    │ APPROVED │ │ REJECTED │               │ pay
    └──────────┘ └──────────┘     ┌─────────▼─────────┐
                                  │    PROCESSING     │
                                  └─────────┬─────────┘
                                            │ ship
                                  ┌─────────▼─────────┐
                                  │      SHIPPED      │
                                  └─────────┬─────────┘
                                            │ deliver
                                  ┌─────────▼─────────┐
                                  │     DELIVERED     │
                                  └───────────────────┘

CANCELLED is reachable from every order status before DELIVERED, except
for rejected orders, which stay at AWAITING_APPROVAL for good.
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Set

from ..errors import OrderIntegrityError
from ..models import ApprovalStatus, Decision, Order, OrderStatus


class OrderEvent(str, Enum):
    """Actions that move an order through the workflow."""

    SUBMIT = "submit"        # creation → PENDING / AWAITING_APPROVAL
    APPROVE = "approve"      # AWAITING_APPROVAL → PAYMENT_PENDING
    REJECT = "reject"        # AWAITING_APPROVAL stays put
    PAY = "pay"              # AWAITING_APPROVAL/PAYMENT_PENDING → PROCESSING
    SHIP = "ship"            # PROCESSING → SHIPPED
    DELIVER = "deliver"      # SHIPPED → DELIVERED
    CANCEL = "cancel"        # any pre-DELIVERED → CANCELLED


class TransitionRule(NamedTuple):
    """Defines a valid order status transition."""
    from_status: OrderStatus
    to_status: OrderStatus
    event: OrderEvent
    requires_approval: bool = False


ORDER_TRANSITION_RULES: list[TransitionRule] = [
    # Decision
    TransitionRule(OrderStatus.AWAITING_APPROVAL, OrderStatus.PAYMENT_PENDING, OrderEvent.APPROVE,
                   requires_approval=True),
    TransitionRule(OrderStatus.AWAITING_APPROVAL, OrderStatus.AWAITING_APPROVAL, OrderEvent.REJECT),

    # Payment
    TransitionRule(OrderStatus.AWAITING_APPROVAL, OrderStatus.PROCESSING, OrderEvent.PAY,
                   requires_approval=True),
    TransitionRule(OrderStatus.PAYMENT_PENDING, OrderStatus.PROCESSING, OrderEvent.PAY,
                   requires_approval=True),

    # Fulfillment
    TransitionRule(OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderEvent.SHIP, requires_approval=True),
    TransitionRule(OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderEvent.DELIVER, requires_approval=True),

    # Cancellation
    TransitionRule(OrderStatus.AWAITING_APPROVAL, OrderStatus.CANCELLED, OrderEvent.CANCEL),
    TransitionRule(OrderStatus.PAYMENT_PENDING, OrderStatus.CANCELLED, OrderEvent.CANCEL),
    TransitionRule(OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderEvent.CANCEL),
    TransitionRule(OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderEvent.CANCEL),
]

# Build lookup tables
VALID_EVENTS: Dict[OrderStatus, Set[OrderEvent]] = {}
TRANSITION_TARGETS: Dict[tuple[OrderStatus, OrderEvent], TransitionRule] = {}

for rule in ORDER_TRANSITION_RULES:
    VALID_EVENTS.setdefault(rule.from_status, set()).add(rule.event)
    TRANSITION_TARGETS[(rule.from_status, rule.event)] = rule


# Order statuses with no outgoing transitions
TERMINAL_ORDER_STATUSES: Set[OrderStatus] = {
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
}

# Order statuses in which an approved order may still accept payment
PAYABLE_ORDER_STATUSES: Set[OrderStatus] = {
    OrderStatus.AWAITING_APPROVAL,
    OrderStatus.PAYMENT_PENDING,
}

# Approval outcomes an admin can record
DECIDED_STATUSES: Set[ApprovalStatus] = {
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
}

DECISION_OUTCOMES: Dict[Decision, ApprovalStatus] = {
    Decision.APPROVE: ApprovalStatus.APPROVED,
    Decision.REJECT: ApprovalStatus.REJECTED,
}

ORDER_STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.AWAITING_APPROVAL: "Awaiting Approval",
    OrderStatus.PAYMENT_PENDING: "Payment Pending",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.SHIPPED: "Shipped",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}


def can_transition(order: Order, requested: ApprovalStatus) -> bool:
    """Check if an admin decision may move the order to ``requested``.

    Decisions are one-shot: only a pending order can be approved or
    rejected, and never twice.
    """
    return order.approval_status == ApprovalStatus.PENDING and requested in DECIDED_STATUSES


def next_order_status(order: Order) -> OrderStatus:
    """Order status implied by the current approval status."""
    if (
        order.approval_status == ApprovalStatus.APPROVED
        and order.order_status == OrderStatus.AWAITING_APPROVAL
    ):
        return OrderStatus.PAYMENT_PENDING
    return order.order_status


def is_payable(order: Order) -> bool:
    """Whether the order may accept a payment attempt right now."""
    return (
        order.approval_status == ApprovalStatus.APPROVED
        and order.order_status in PAYABLE_ORDER_STATUSES
        and order.payment_record is None
    )


def get_transition_rule(from_status: OrderStatus, event: OrderEvent) -> Optional[TransitionRule]:
    """Get the transition rule for a status/event combination."""
    return TRANSITION_TARGETS.get((from_status, event))


def get_target_status(from_status: OrderStatus, event: OrderEvent) -> Optional[OrderStatus]:
    """Get the target order status for an event."""
    rule = get_transition_rule(from_status, event)
    return rule.to_status if rule else None


def can_apply(order: Order, event: OrderEvent) -> bool:
    """Check if an order status event is valid for this order."""
    rule = get_transition_rule(order.order_status, event)
    if rule is None:
        return False
    if rule.requires_approval and order.approval_status != ApprovalStatus.APPROVED:
        return False
    # Rejected orders never leave AWAITING_APPROVAL
    if order.approval_status == ApprovalStatus.REJECTED and rule.to_status != OrderStatus.AWAITING_APPROVAL:
        return False
    return True


def status_label(order: Order) -> str:
    """Customer/admin facing label for the combined approval and order status."""
    if order.order_status == OrderStatus.CANCELLED:
        return ORDER_STATUS_LABELS[OrderStatus.CANCELLED]
    if order.approval_status == ApprovalStatus.PENDING:
        return "Awaiting Admin Approval"
    if order.approval_status == ApprovalStatus.REJECTED:
        return "Rejected by Admin"
    if is_payable(order):
        return "Payment Required"
    return ORDER_STATUS_LABELS[order.order_status]


def check_invariants(order: Order) -> None:
    """Raise OrderIntegrityError if the snapshot breaks a workflow invariant.

    Amount invariants are enforced when the Order is constructed.
    """
    approval = order.approval_status

    if approval == ApprovalStatus.REJECTED and order.order_status != OrderStatus.AWAITING_APPROVAL:
        raise OrderIntegrityError(
            f"Rejected order {order.id} has progressed to {order.order_status.value}", order.id
        )

    if order.payment_record is not None and approval != ApprovalStatus.APPROVED:
        raise OrderIntegrityError(f"Order {order.id} has a payment but is not approved", order.id)

    if (order.admin_decision is not None) != (approval != ApprovalStatus.PENDING):
        raise OrderIntegrityError(
            f"Order {order.id}: admin decision does not match approval status {approval.value}",
            order.id,
        )

    if approval == ApprovalStatus.REJECTED and not (order.admin_decision.remarks or "").strip():
        raise OrderIntegrityError(f"Rejected order {order.id} has no remarks", order.id)

    if (
        order.order_status not in (OrderStatus.AWAITING_APPROVAL, OrderStatus.CANCELLED)
        and approval != ApprovalStatus.APPROVED
    ):
        raise OrderIntegrityError(
            f"Order {order.id} reached {order.order_status.value} without approval", order.id
        )
