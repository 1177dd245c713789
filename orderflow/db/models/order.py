"""Order workflow database models.

Stores orders, their line items and the transition history.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Integer, Numeric
from sqlalchemy.orm import relationship

from orderflow.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderRecord(Base):
    """
    Persisted order under workflow control.

    ``version`` is the compare-and-swap token; every transition bumps it.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Workflow state
    approval_status = Column(String(20), nullable=False, default="pending", index=True)
    status = Column(String(30), nullable=False, default="awaiting_approval", index=True)
    version = Column(Integer, nullable=False, default=0)

    # Amounts
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    shipping_address = Column(JSON, nullable=True)

    # Admin decision
    decided_by = Column(String(36), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    admin_remarks = Column(Text, nullable=True)

    # Payment
    payment_method = Column(String(30), nullable=True)
    payment_transaction_id = Column(String(100), nullable=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Lifecycle
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history = relationship("OrderHistory", back_populates="order", order_by="OrderHistory.id")

    def __repr__(self) -> str:
        return f"<OrderRecord {self.id} [{self.approval_status}/{self.status}] v{self.version}>"


class OrderItem(Base):
    """One product line on an order. Written once, at submission."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    product_id = Column(String(36), nullable=False)
    product_name = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("OrderRecord", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem {self.product_id} x{self.quantity}>"


class OrderHistory(Base):
    """
    Records all state transitions for orders.

    Provides a complete audit trail of the order workflow.
    """
    __tablename__ = "order_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # Transition details
    event = Column(String(30), nullable=False)
    from_approval_status = Column(String(20), nullable=False)
    to_approval_status = Column(String(20), nullable=False)
    from_status = Column(String(30), nullable=False)
    to_status = Column(String(30), nullable=False)

    # Actor
    actor_id = Column(String(36), nullable=True)

    # Admin remarks or cancellation reason
    remarks = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    order = relationship("OrderRecord", back_populates="history")

    def __repr__(self) -> str:
        return f"<OrderHistory {self.event}: {self.from_status} -> {self.to_status}>"
