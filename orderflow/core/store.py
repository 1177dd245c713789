"""Order store interface and an in-process implementation.

The store is the only shared mutable resource in the workflow. Writers
serialize on an order's identity through compare_and_swap: a write only
lands if the stored version still matches the version the writer read.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from .models import ApprovalStatus, Order, Owner, TransitionRecord


class OrderStore(ABC):
    """Persistence interface consumed by the workflow services."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        """Get an order by ID, or None if it does not exist."""

    @abstractmethod
    def insert(self, order: Order, transitions: Iterable[TransitionRecord] = ()) -> bool:
        """Insert a new order. Returns False if the ID is already taken."""

    @abstractmethod
    def compare_and_swap(
        self,
        order_id: str,
        expected_version: int,
        new_order: Order,
        transitions: Iterable[TransitionRecord] = (),
    ) -> bool:
        """
        Replace the stored order if its version equals ``expected_version``.

        ``new_order`` is written as given (callers bump the version) and
        ``transitions`` are appended to the history in the same atomic unit.

        Returns:
            True if the write landed, False if the order changed or is missing
        """

    @abstractmethod
    def get_owner(self, owner_id: str) -> Optional[Owner]:
        """Get the contact record of an order owner."""

    @abstractmethod
    def list_admins(self) -> List[Owner]:
        """Get all admin users."""

    @abstractmethod
    def list_for_owner(self, owner_id: str) -> List[Order]:
        """Get an owner's orders, newest first."""

    @abstractmethod
    def list_by_approval_status(
        self,
        status: ApprovalStatus,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        """Get orders in an approval status, oldest first."""

    @abstractmethod
    def get_history(self, order_id: str) -> List[TransitionRecord]:
        """Get the transition history for an order, oldest first."""


class InMemoryOrderStore(OrderStore):
    """
    Thread-safe in-process order store.

    Orders are immutable snapshots, so they are handed out without copying.
    """

    def __init__(self, owners: Optional[Iterable[Owner]] = None):
        self._lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self._history: Dict[str, List[TransitionRecord]] = {}
        self._owners: Dict[str, Owner] = {owner.id: owner for owner in owners or []}

    def add_owner(self, owner: Owner) -> None:
        with self._lock:
            self._owners[owner.id] = owner

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def insert(self, order: Order, transitions: Iterable[TransitionRecord] = ()) -> bool:
        with self._lock:
            if order.id in self._orders:
                return False
            self._orders[order.id] = order
            self._history[order.id] = list(transitions)
            return True

    def compare_and_swap(
        self,
        order_id: str,
        expected_version: int,
        new_order: Order,
        transitions: Iterable[TransitionRecord] = (),
    ) -> bool:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.version != expected_version:
                return False
            self._orders[order_id] = new_order
            self._history.setdefault(order_id, []).extend(transitions)
            return True

    def get_owner(self, owner_id: str) -> Optional[Owner]:
        with self._lock:
            return self._owners.get(owner_id)

    def list_admins(self) -> List[Owner]:
        with self._lock:
            return [owner for owner in self._owners.values() if owner.is_admin]

    def list_for_owner(self, owner_id: str) -> List[Order]:
        with self._lock:
            orders = [o for o in self._orders.values() if o.owner_id == owner_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def list_by_approval_status(
        self,
        status: ApprovalStatus,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        with self._lock:
            orders = [o for o in self._orders.values() if o.approval_status == status]
        orders.sort(key=lambda o: o.created_at)
        return orders[offset:offset + limit]

    def get_history(self, order_id: str) -> List[TransitionRecord]:
        with self._lock:
            return list(self._history.get(order_id, []))
