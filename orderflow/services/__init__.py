"""Service layer for orderflow."""

from orderflow.services.notifications import (
    EmailNotificationGateway,
    NotificationDispatcher,
    NotificationEvent,
    NotificationGateway,
)

__all__ = [
    "EmailNotificationGateway",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationGateway",
]
