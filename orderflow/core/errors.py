"""Workflow error taxonomy.

Every error raised by the approval, payment and fulfillment services
derives from WorkflowError so callers can map the whole family at once.
"""

from enum import Enum
from typing import Optional


class WorkflowError(Exception):
    """Base class for order workflow errors."""


class NotFoundError(WorkflowError):
    """Raised when a referenced order does not exist."""

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InvalidStateError(WorkflowError):
    """Raised when a transition is attempted from a state that forbids it."""

    def __init__(self, message: str, order_id: Optional[str] = None):
        super().__init__(message)
        self.order_id = order_id


class OrderIntegrityError(InvalidStateError):
    """Raised when an order snapshot breaks the workflow invariants."""


class ValidationError(WorkflowError):
    """Raised on malformed input (empty rejection remarks, bad line items)."""


class GateReason(str, Enum):
    """Why a payment attempt was refused."""

    NOT_YET_APPROVED = "not_yet_approved"
    REJECTED = "rejected"
    ALREADY_PAID = "already_paid"
    CANCELLED = "cancelled"


class GateError(WorkflowError):
    """Raised when a payment attempt is made on a non-payable order."""

    def __init__(self, reason: GateReason, order_id: Optional[str] = None):
        super().__init__(f"Payment not permitted: {reason.value}")
        self.reason = reason
        self.order_id = order_id
