"""SQLAlchemy-backed order store.

compare_and_swap is a single ``UPDATE ... WHERE id = :id AND version = :expected``
issued in the same transaction as the history rows, so a lost race writes
nothing at all.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from orderflow.core.models import (
    AdminDecision,
    ApprovalStatus,
    LineItem,
    Order,
    OrderStatus,
    Owner,
    PaymentMethod,
    PaymentRecord,
    TransitionRecord,
    utcnow,
)
from orderflow.core.store import OrderStore
from orderflow.db.models import OrderHistory, OrderItem, OrderRecord, User

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; all stored values are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlAlchemyOrderStore(OrderStore):
    """Order store on top of a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, order_id: str) -> Optional[Order]:
        with self.session_factory() as session:
            record = session.get(OrderRecord, order_id)
            return self._record_to_order(record) if record else None

    def insert(self, order: Order, transitions: Iterable[TransitionRecord] = ()) -> bool:
        """
        Insert a new order with its items and history.

        Returns False only when the order ID is taken; other constraint
        failures (e.g. an unknown owner with foreign keys enforced) propagate.
        """
        try:
            with self.session_factory.begin() as session:
                if session.get(OrderRecord, order.id) is not None:
                    logger.info(f"Order {order.id} already exists, insert skipped")
                    return False
                record = OrderRecord(
                    id=order.id,
                    user_id=order.owner_id,
                    created_at=order.created_at,
                    **self._order_columns(order),
                )
                record.items = [
                    OrderItem(
                        position=position,
                        product_id=item.product_ref,
                        product_name=item.product_name,
                        quantity=item.quantity,
                        price=item.unit_price,
                    )
                    for position, item in enumerate(order.line_items)
                ]
                session.add(record)
                session.add_all(self._history_rows(transitions))
        except IntegrityError:
            # A concurrent insert of the same ID wins the primary key
            if self.get(order.id) is not None:
                logger.info(f"Order {order.id} inserted concurrently, insert skipped")
                return False
            raise
        return True

    def compare_and_swap(
        self,
        order_id: str,
        expected_version: int,
        new_order: Order,
        transitions: Iterable[TransitionRecord] = (),
    ) -> bool:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(OrderRecord)
                .where(OrderRecord.id == order_id, OrderRecord.version == expected_version)
                .values(updated_at=utcnow(), **self._order_columns(new_order))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.debug(f"CAS miss on order {order_id} at version {expected_version}")
                return False
            session.add_all(self._history_rows(transitions))
        return True

    def add_owner(self, owner: Owner) -> None:
        """Create or update a user record."""
        with self.session_factory.begin() as session:
            session.merge(User(id=owner.id, email=owner.email, name=owner.name, is_admin=owner.is_admin))

    def get_owner(self, owner_id: str) -> Optional[Owner]:
        with self.session_factory() as session:
            user = session.get(User, owner_id)
            return self._user_to_owner(user) if user else None

    def list_admins(self) -> List[Owner]:
        with self.session_factory() as session:
            users = session.scalars(select(User).where(User.is_admin.is_(True))).all()
            return [self._user_to_owner(u) for u in users]

    def list_for_owner(self, owner_id: str) -> List[Order]:
        with self.session_factory() as session:
            records = session.scalars(
                select(OrderRecord)
                .where(OrderRecord.user_id == owner_id)
                .order_by(OrderRecord.created_at.desc())
            ).all()
            return [self._record_to_order(r) for r in records]

    def list_by_approval_status(
        self,
        status: ApprovalStatus,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        with self.session_factory() as session:
            records = session.scalars(
                select(OrderRecord)
                .where(OrderRecord.approval_status == status.value)
                .order_by(OrderRecord.created_at.asc())
                .offset(offset)
                .limit(limit)
            ).all()
            return [self._record_to_order(r) for r in records]

    def get_history(self, order_id: str) -> List[TransitionRecord]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(OrderHistory)
                .where(OrderHistory.order_id == order_id)
                .order_by(OrderHistory.id.asc())
            ).all()
            return [
                TransitionRecord(
                    order_id=row.order_id,
                    event=row.event,
                    from_approval_status=ApprovalStatus(row.from_approval_status),
                    to_approval_status=ApprovalStatus(row.to_approval_status),
                    from_order_status=OrderStatus(row.from_status),
                    to_order_status=OrderStatus(row.to_status),
                    actor_id=row.actor_id,
                    remarks=row.remarks,
                    created_at=_aware(row.created_at),
                )
                for row in rows
            ]

    def _order_columns(self, order: Order) -> Dict[str, Any]:
        """Mutable columns of an order row."""
        decision = order.admin_decision
        payment = order.payment_record
        return {
            "approval_status": order.approval_status.value,
            "status": order.order_status.value,
            "version": order.version,
            "subtotal": order.subtotal,
            "tax": order.tax_amount,
            "total": order.total,
            "shipping_address": order.shipping_address,
            "decided_by": decision.decided_by if decision else None,
            "decided_at": decision.decided_at if decision else None,
            "admin_remarks": decision.remarks if decision else None,
            "payment_method": payment.method.value if payment else None,
            "payment_transaction_id": payment.provider_transaction_id if payment else None,
            "payment_confirmed_at": payment.confirmed_at if payment else None,
            "submitted_at": order.submitted_at,
            "cancelled_at": order.cancelled_at,
            "cancel_reason": order.cancel_reason,
        }

    def _history_rows(self, transitions: Iterable[TransitionRecord]) -> List[OrderHistory]:
        return [
            OrderHistory(
                order_id=t.order_id,
                event=t.event,
                from_approval_status=t.from_approval_status.value,
                to_approval_status=t.to_approval_status.value,
                from_status=t.from_order_status.value,
                to_status=t.to_order_status.value,
                actor_id=t.actor_id,
                remarks=t.remarks,
                created_at=t.created_at,
            )
            for t in transitions
        ]

    def _record_to_order(self, record: OrderRecord) -> Order:
        """Convert an OrderRecord row to a domain Order."""
        decision = None
        if record.decided_by:
            decision = AdminDecision(
                decided_by=record.decided_by,
                decided_at=_aware(record.decided_at),
                remarks=record.admin_remarks,
            )

        payment = None
        if record.payment_transaction_id:
            payment = PaymentRecord(
                method=PaymentMethod(record.payment_method),
                provider_transaction_id=record.payment_transaction_id,
                confirmed_at=_aware(record.payment_confirmed_at),
            )

        return Order(
            id=record.id,
            owner_id=record.user_id,
            line_items=tuple(
                LineItem(
                    product_ref=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.price,
                    product_name=item.product_name,
                )
                for item in record.items
            ),
            subtotal=record.subtotal,
            tax_amount=record.tax,
            total=record.total,
            approval_status=ApprovalStatus(record.approval_status),
            order_status=OrderStatus(record.status),
            admin_decision=decision,
            payment_record=payment,
            shipping_address=record.shipping_address,
            submitted_at=_aware(record.submitted_at),
            cancelled_at=_aware(record.cancelled_at),
            cancel_reason=record.cancel_reason,
            created_at=_aware(record.created_at),
            version=record.version,
        )

    def _user_to_owner(self, user: User) -> Owner:
        return Owner(id=user.id, email=user.email, name=user.name, is_admin=bool(user.is_admin))
