"""Order domain objects.

Orders are immutable snapshots: every transition produces a new Order via
dataclasses.replace and is persisted with the store's compare-and-swap.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .errors import ValidationError


CENT = Decimal("0.01")


class ApprovalStatus(str, Enum):
    """Admin review outcome, decided at most once per order."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrderStatus(str, Enum):
    """Fulfillment progress, gated by the approval status."""

    AWAITING_APPROVAL = "awaiting_approval"
    PAYMENT_PENDING = "payment_pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Decision(str, Enum):
    """Admin decision on a pending order."""

    APPROVE = "approve"
    REJECT = "reject"


class PaymentMethod(str, Enum):
    """Payment methods offered at checkout."""

    BENEFIT_PAY = "benefit_pay"
    CASH_ON_DELIVERY = "cash_on_delivery"
    KNET = "knet"
    BENEFIT_DEBIT = "benefit_debit"
    STRIPE = "stripe"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Any) -> Decimal:
    """Coerce a number or numeric string to a 2dp Decimal."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e


@dataclass(frozen=True)
class LineItem:
    """One product line on an order."""

    product_ref: str
    quantity: int
    unit_price: Decimal
    product_name: Optional[str] = None

    def __post_init__(self):
        if not self.product_ref:
            raise ValidationError("Line item requires a product reference")
        if not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError(f"Line item {self.product_ref}: quantity must be positive")
        price = to_money(self.unit_price)
        if price < 0:
            raise ValidationError(f"Line item {self.product_ref}: unit price must not be negative")
        object.__setattr__(self, "unit_price", price)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class AdminDecision:
    """Immutable record of who approved/rejected an order, when, and why."""

    decided_by: str
    decided_at: datetime
    remarks: Optional[str] = None


@dataclass(frozen=True)
class PaymentRecord:
    """Confirmed payment for an order."""

    method: PaymentMethod
    provider_transaction_id: str
    confirmed_at: datetime


@dataclass(frozen=True)
class Owner:
    """Contact details for the user who placed an order."""

    id: str
    email: Optional[str]
    name: Optional[str] = None
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id


@dataclass(frozen=True)
class TransitionRecord:
    """One persisted transition, kept as the order's audit trail."""

    order_id: str
    event: str
    from_approval_status: ApprovalStatus
    to_approval_status: ApprovalStatus
    from_order_status: OrderStatus
    to_order_status: OrderStatus
    actor_id: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


def compute_subtotal(line_items: Iterable[LineItem]) -> Decimal:
    return to_money(sum((item.line_total for item in line_items), Decimal("0")))


@dataclass(frozen=True)
class Order:
    """An order under workflow control."""

    id: str
    owner_id: str
    line_items: Tuple[LineItem, ...]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    order_status: OrderStatus = OrderStatus.AWAITING_APPROVAL
    admin_decision: Optional[AdminDecision] = None
    payment_record: Optional[PaymentRecord] = None
    shipping_address: Optional[Dict[str, Any]] = None
    submitted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    version: int = 0

    def __post_init__(self):
        if not self.owner_id:
            raise ValidationError("Order requires an owner")
        items = tuple(self.line_items)
        if not items:
            raise ValidationError("Order requires at least one line item")
        object.__setattr__(self, "line_items", items)
        for name in ("subtotal", "tax_amount", "total"):
            object.__setattr__(self, name, to_money(getattr(self, name)))
        if self.tax_amount < 0:
            raise ValidationError("Tax amount must not be negative")
        if self.subtotal != compute_subtotal(items):
            raise ValidationError(
                f"Order {self.id}: subtotal {self.subtotal} does not match line items"
            )
        if self.total != self.subtotal + self.tax_amount:
            raise ValidationError(
                f"Order {self.id}: total {self.total} != subtotal {self.subtotal} + tax {self.tax_amount}"
            )

    @classmethod
    def create(
        cls,
        owner_id: str,
        line_items: Iterable[LineItem],
        tax_amount: Any = Decimal("0"),
        *,
        order_id: Optional[str] = None,
        shipping_address: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> "Order":
        """Build a just-created order with derived amounts."""
        items = tuple(line_items)
        subtotal = compute_subtotal(items)
        tax = to_money(tax_amount)
        return cls(
            id=order_id or str(uuid.uuid4()),
            owner_id=owner_id,
            line_items=items,
            subtotal=subtotal,
            tax_amount=tax,
            total=subtotal + tax,
            shipping_address=shipping_address,
            created_at=created_at or utcnow(),
        )

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None
