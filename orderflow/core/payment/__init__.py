"""Payment gating for approved orders."""

from .gate import authorize_payment_attempt, block_reason
from .service import PaymentProvider, PaymentService

__all__ = [
    "authorize_payment_attempt",
    "block_reason",
    "PaymentProvider",
    "PaymentService",
]
