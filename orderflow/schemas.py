"""Read models for presenting orders to UIs and API layers."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from orderflow.core.approval.states import is_payable, status_label
from orderflow.core.models import Order, TransitionRecord


class LineItemView(BaseModel):
    product_ref: str
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class AdminDecisionView(BaseModel):
    decided_by: str
    decided_at: datetime
    remarks: Optional[str] = None


class PaymentRecordView(BaseModel):
    method: str
    provider_transaction_id: str
    confirmed_at: datetime


class OrderView(BaseModel):
    """
    Order as shown to customers and admins.

    ``status_label`` and ``is_payable`` are computed here once so views
    never re-derive them from raw statuses.
    """
    id: str
    owner_id: str
    line_items: List[LineItemView]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    approval_status: str
    order_status: str
    status_label: str
    is_payable: bool
    admin_decision: Optional[AdminDecisionView] = None
    payment_record: Optional[PaymentRecordView] = None
    shipping_address: Optional[Dict[str, Any]] = None
    submitted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    version: int

    @classmethod
    def from_order(cls, order: Order) -> "OrderView":
        decision = order.admin_decision
        payment = order.payment_record
        return cls(
            id=order.id,
            owner_id=order.owner_id,
            line_items=[
                LineItemView(
                    product_ref=item.product_ref,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                )
                for item in order.line_items
            ],
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            total=order.total,
            approval_status=order.approval_status.value,
            order_status=order.order_status.value,
            status_label=status_label(order),
            is_payable=is_payable(order),
            admin_decision=AdminDecisionView(
                decided_by=decision.decided_by,
                decided_at=decision.decided_at,
                remarks=decision.remarks,
            ) if decision else None,
            payment_record=PaymentRecordView(
                method=payment.method.value,
                provider_transaction_id=payment.provider_transaction_id,
                confirmed_at=payment.confirmed_at,
            ) if payment else None,
            shipping_address=order.shipping_address,
            submitted_at=order.submitted_at,
            cancelled_at=order.cancelled_at,
            created_at=order.created_at,
            version=order.version,
        )


class TransitionView(BaseModel):
    event: str
    from_approval_status: str
    to_approval_status: str
    from_order_status: str
    to_order_status: str
    actor_id: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: TransitionRecord) -> "TransitionView":
        return cls(
            event=record.event,
            from_approval_status=record.from_approval_status.value,
            to_approval_status=record.to_approval_status.value,
            from_order_status=record.from_order_status.value,
            to_order_status=record.to_order_status.value,
            actor_id=record.actor_id,
            remarks=record.remarks,
            created_at=record.created_at,
        )
