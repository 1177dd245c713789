"""Payment gate: the guard consulted before any payment-provider call.

Stateless and side-effect free. Eligibility itself comes from
``is_payable``; this module only explains refusals.
"""

from typing import Optional

from ..approval.states import is_payable
from ..errors import GateError, GateReason
from ..models import ApprovalStatus, Order, OrderStatus


def block_reason(order: Order) -> Optional[GateReason]:
    """Why the order may not accept payment, or None if it may."""
    if is_payable(order):
        return None
    if order.payment_record is not None:
        return GateReason.ALREADY_PAID
    if order.order_status == OrderStatus.CANCELLED:
        return GateReason.CANCELLED
    if order.approval_status == ApprovalStatus.PENDING:
        return GateReason.NOT_YET_APPROVED
    if order.approval_status == ApprovalStatus.REJECTED:
        return GateReason.REJECTED
    # Approved, but the order status has moved past payment
    return GateReason.ALREADY_PAID


def authorize_payment_attempt(order: Order) -> None:
    """
    Allow a payment attempt to proceed.

    Raises:
        GateError: If the order is not payable, carrying the reason
    """
    reason = block_reason(order)
    if reason is not None:
        raise GateError(reason, order.id)
