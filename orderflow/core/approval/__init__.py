"""Order approval workflow module.

Implements the order approval state machine and the service that drives it.
"""

from .states import (
    OrderEvent,
    TransitionRule,
    VALID_EVENTS,
    can_transition,
    next_order_status,
    is_payable,
    status_label,
    check_invariants,
)
from .machine import OrderStateMachine
from .service import ApprovalService

__all__ = [
    "OrderEvent",
    "TransitionRule",
    "VALID_EVENTS",
    "can_transition",
    "next_order_status",
    "is_payable",
    "status_label",
    "check_invariants",
    "OrderStateMachine",
    "ApprovalService",
]
