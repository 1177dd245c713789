"""Database models for orderflow."""

from orderflow.db.models.user import User
from orderflow.db.models.order import OrderRecord, OrderItem, OrderHistory

__all__ = [
    "User",
    "OrderRecord",
    "OrderItem",
    "OrderHistory",
]
