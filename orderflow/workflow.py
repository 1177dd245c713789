"""Assembly of the order workflow from settings.

Usage::

    from orderflow.workflow import build_workflow

    workflow = build_workflow()
    order = workflow.approvals.submit_for_approval(order)
    workflow.approvals.decide(order.id, admin_id, "approve", "looks good")
"""

import logging
from dataclasses import dataclass
from typing import Optional

from orderflow.common.logger import configure_logging
from orderflow.core.approval.service import ApprovalService
from orderflow.core.config import Settings, get_settings
from orderflow.core.fulfillment import FulfillmentService
from orderflow.core.payment.service import PaymentService
from orderflow.core.store import OrderStore
from orderflow.db.session import create_db_engine, create_session_factory, init_db
from orderflow.db.store import SqlAlchemyOrderStore
from orderflow.services.notifications import (
    EmailNotificationGateway,
    NotificationDispatcher,
    NotificationGateway,
)

logger = logging.getLogger(__name__)


@dataclass
class OrderWorkflow:
    """The wired services sharing one store and one notification dispatcher."""

    store: OrderStore
    dispatcher: NotificationDispatcher
    approvals: ApprovalService
    payments: PaymentService
    fulfillment: FulfillmentService

    def close(self) -> None:
        self.dispatcher.shutdown(wait=False)


def build_workflow(
    settings: Optional[Settings] = None,
    *,
    store: Optional[OrderStore] = None,
    gateway: Optional[NotificationGateway] = None,
) -> OrderWorkflow:
    """
    Build the order workflow.

    Args:
        settings: Settings to use (defaults to environment settings)
        store: Order store; a SQLAlchemy store on ``database_url`` by default
        gateway: Notification gateway; SMTP email by default

    Returns:
        Wired OrderWorkflow
    """
    settings = settings or get_settings()
    configure_logging(settings)

    if store is None:
        engine = create_db_engine(settings.database_url, echo=settings.debug)
        init_db(engine)
        store = SqlAlchemyOrderStore(create_session_factory(engine))

    dispatcher = NotificationDispatcher(
        gateway or EmailNotificationGateway(settings),
        timeout=settings.notification_timeout,
        max_workers=settings.notification_workers,
    )

    logger.info(f"{settings.app_name} workflow ready ({type(store).__name__})")
    return OrderWorkflow(
        store=store,
        dispatcher=dispatcher,
        approvals=ApprovalService(store, dispatcher),
        payments=PaymentService(store, dispatcher),
        fulfillment=FulfillmentService(store),
    )
