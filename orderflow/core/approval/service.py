"""Approval service for managing order approval workflows.

Provides the high-level API used by checkout and admin actions: it loads
orders, drives the state machine, persists transitions with the store's
compare-and-swap and triggers best-effort notifications.
"""

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ..errors import InvalidStateError, NotFoundError, WorkflowError
from ..models import ApprovalStatus, Decision, Order, TransitionRecord
from ..store import OrderStore
from .machine import OrderStateMachine, parse_decision

if TYPE_CHECKING:
    from orderflow.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class ApprovalService:
    """
    High-level service for order approvals.

    Handles:
    - Submitting freshly created orders for review
    - One-shot admin decisions with atomic persistence
    - Querying pending reviews and transition history
    - Batch decisions
    """

    def __init__(self, store: OrderStore, dispatcher: "NotificationDispatcher"):
        """
        Initialize the approval service.

        Args:
            store: Order store providing per-order compare-and-swap
            dispatcher: Best-effort notification dispatcher
        """
        self.store = store
        self.dispatcher = dispatcher

    def submit_for_approval(self, order: Order) -> Order:
        """
        Place a just-created order in the approval queue.

        Returns:
            The persisted order (pending / awaiting_approval)

        Raises:
            InvalidStateError: If the order was already submitted
        """
        machine = OrderStateMachine(order)
        submitted = replace(machine.submit(), version=order.version + 1)

        if not self.store.insert(submitted, machine.get_history()):
            raise InvalidStateError(f"Order {order.id} has already been submitted", order.id)

        logger.info(f"Order {order.id} submitted for approval by {order.owner_id} (total {order.total})")

        owner = self.store.get_owner(order.owner_id)
        if owner is None:
            logger.warning(f"Owner {order.owner_id} of order {order.id} not found, skipping notifications")
            return submitted

        self.dispatcher.dispatch(
            self.dispatcher.gateway.notify_order_submitted, submitted, owner, order_id=order.id
        )
        admins = self.store.list_admins()
        if admins:
            self.dispatcher.dispatch(
                self.dispatcher.gateway.notify_admins_order_submitted,
                submitted,
                owner,
                admins,
                order_id=order.id,
            )
        return submitted

    def decide(
        self,
        order_id: str,
        admin_id: str,
        decision: Union[Decision, str],
        remarks: Optional[str] = None,
    ) -> Order:
        """
        Approve or reject a pending order.

        Args:
            order_id: ID of the order
            admin_id: ID of the deciding admin
            decision: approve or reject
            remarks: Admin remarks (required for rejections)

        Returns:
            Updated order

        Raises:
            NotFoundError: If the order does not exist
            InvalidStateError: If the order was already decided, or another
                writer got there first
            ValidationError: If a rejection has no remarks
        """
        order = self.get_order(order_id)
        decision = parse_decision(decision)

        machine = OrderStateMachine(order)
        decided = machine.decide(decision, admin_id=admin_id, remarks=remarks)
        updated = replace(decided, version=order.version + 1)

        if not self.store.compare_and_swap(order.id, order.version, updated, machine.get_history()):
            current = self.store.get(order.id)
            if current is not None and current.approval_status != ApprovalStatus.PENDING:
                logger.info(f"Lost decision race on order {order.id}: already {current.approval_status.value}")
                raise InvalidStateError(f"Order {order.id} already decided", order.id)
            raise InvalidStateError(f"Order {order.id} changed while being decided", order.id)

        logger.info(f"Order {order.id} {updated.approval_status.value} by admin {admin_id}")
        self._notify_decision(updated, decision)
        return updated

    def get_order(self, order_id: str) -> Order:
        """Get an order by ID."""
        order = self.store.get(order_id)
        if order is None:
            raise NotFoundError(order_id)
        return order

    def list_pending_reviews(self, *, limit: int = 100, offset: int = 0) -> List[Order]:
        """Get orders awaiting an admin decision, oldest first."""
        return self.store.list_by_approval_status(ApprovalStatus.PENDING, limit=limit, offset=offset)

    def list_orders_for_owner(self, owner_id: str) -> List[Order]:
        """Get a customer's orders, newest first."""
        return self.store.list_for_owner(owner_id)

    def get_history(self, order_id: str) -> List[TransitionRecord]:
        """Get the transition history for an order."""
        self.get_order(order_id)
        return self.store.get_history(order_id)

    def batch_approve(
        self,
        order_ids: List[str],
        *,
        admin_id: str,
        remarks: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Approve multiple orders; each is decided independently.

        Returns:
            Summary of results
        """
        return self._batch(order_ids, Decision.APPROVE, "approved", admin_id=admin_id, remarks=remarks)

    def batch_reject(
        self,
        order_ids: List[str],
        *,
        admin_id: str,
        remarks: str,  # Required for rejections
    ) -> Dict[str, Any]:
        """
        Reject multiple orders; each is decided independently.

        Returns:
            Summary of results
        """
        return self._batch(order_ids, Decision.REJECT, "rejected", admin_id=admin_id, remarks=remarks)

    def _batch(
        self,
        order_ids: List[str],
        decision: Decision,
        key: str,
        *,
        admin_id: str,
        remarks: Optional[str],
    ) -> Dict[str, Any]:
        results: Dict[str, Any] = {key: [], "failed": []}

        for order_id in order_ids:
            try:
                self.decide(order_id, admin_id, decision, remarks)
                results[key].append(order_id)
            except WorkflowError as e:
                results["failed"].append({
                    "id": order_id,
                    "error": str(e),
                })

        return results

    def _notify_decision(self, order: Order, decision: Decision) -> None:
        owner = self.store.get_owner(order.owner_id)
        if owner is None:
            logger.warning(f"Owner {order.owner_id} of order {order.id} not found, skipping notification")
            return

        gateway = self.dispatcher.gateway
        send = gateway.notify_approved if decision == Decision.APPROVE else gateway.notify_rejected
        self.dispatcher.dispatch(send, order, owner, order.admin_decision.remarks, order_id=order.id)
