"""Integration tests for the SQLAlchemy order store.

Run with: pytest tests/integration -m db
Uses in-memory SQLite, so no external database is needed.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from orderflow.core.approval.machine import OrderStateMachine
from orderflow.core.approval.service import ApprovalService
from orderflow.core.approval.states import is_payable
from orderflow.core.errors import GateError, GateReason, InvalidStateError
from orderflow.core.fulfillment import FulfillmentService
from orderflow.core.models import ApprovalStatus, OrderStatus, PaymentMethod
from orderflow.core.payment.service import PaymentService
from orderflow.db.session import create_db_engine, create_session_factory, init_db
from orderflow.db.store import SqlAlchemyOrderStore

from tests.factories import make_order


pytestmark = [pytest.mark.db, pytest.mark.integration]


def _submit(store, order):
    machine = OrderStateMachine(order)
    submitted = replace(machine.submit(), version=1)
    assert store.insert(submitted, machine.get_history())
    return submitted


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


class TestInsertAndGet:

    def test_round_trip(self, sql_store, customer):
        order = _submit(sql_store, make_order(owner_id=customer.id, tax_amount="1.25"))

        loaded = sql_store.get(order.id)

        assert loaded == order
        assert loaded.total == Decimal(order.total)
        assert loaded.line_items == order.line_items
        assert loaded.shipping_address == order.shipping_address
        assert loaded.created_at.tzinfo is not None

    def test_missing_order(self, sql_store):
        assert sql_store.get("missing") is None

    def test_duplicate_insert(self, sql_store, customer):
        order = _submit(sql_store, make_order(owner_id=customer.id))
        assert not sql_store.insert(order)

    def test_history_written_with_insert(self, sql_store, customer):
        order = _submit(sql_store, make_order(owner_id=customer.id))

        history = sql_store.get_history(order.id)

        assert len(history) == 1
        assert history[0].event == "submit"
        assert history[0].to_order_status == OrderStatus.AWAITING_APPROVAL


class TestCompareAndSwap:

    def test_matching_version_writes(self, sql_store, customer):
        order = _submit(sql_store, make_order(owner_id=customer.id))
        machine = OrderStateMachine(order)
        approved = replace(machine.decide("approve", admin_id="admin-1"), version=2)

        assert sql_store.compare_and_swap(order.id, 1, approved, machine.get_history())

        loaded = sql_store.get(order.id)
        assert loaded.approval_status == ApprovalStatus.APPROVED
        assert loaded.order_status == OrderStatus.PAYMENT_PENDING
        assert loaded.admin_decision.decided_by == "admin-1"
        assert loaded.version == 2
        assert [r.event for r in sql_store.get_history(order.id)] == ["submit", "approve"]

    def test_stale_version_writes_nothing(self, sql_store, customer):
        order = _submit(sql_store, make_order(owner_id=customer.id))

        first = OrderStateMachine(order)
        approved = replace(first.decide("approve", admin_id="admin-1"), version=2)
        second = OrderStateMachine(order)
        rejected = replace(second.decide("reject", admin_id="admin-2", remarks="late"), version=2)

        assert sql_store.compare_and_swap(order.id, 1, approved, first.get_history())
        assert not sql_store.compare_and_swap(order.id, 1, rejected, second.get_history())

        assert sql_store.get(order.id).approval_status == ApprovalStatus.APPROVED
        assert [r.event for r in sql_store.get_history(order.id)] == ["submit", "approve"]

    def test_missing_order(self, sql_store):
        assert not sql_store.compare_and_swap("missing", 1, make_order(order_id="missing"))


class TestQueries:

    def test_owners_and_admins(self, sql_store, customer, admin):
        assert sql_store.get_owner(customer.id) == customer
        assert sql_store.get_owner("nobody") is None
        assert sql_store.list_admins() == [admin]

    def test_list_for_owner_newest_first(self, sql_store, customer):
        now = datetime.now(timezone.utc)
        older = _submit(sql_store, make_order(owner_id=customer.id, created_at=now - timedelta(hours=1)))
        newer = _submit(sql_store, make_order(owner_id=customer.id, created_at=now))

        assert [o.id for o in sql_store.list_for_owner(customer.id)] == [newer.id, older.id]

    def test_list_by_approval_status(self, sql_store, customer):
        now = datetime.now(timezone.utc)
        orders = [
            _submit(sql_store, make_order(owner_id=customer.id, created_at=now + timedelta(minutes=i)))
            for i in range(3)
        ]

        pending = sql_store.list_by_approval_status(ApprovalStatus.PENDING)
        assert [o.id for o in pending] == [o.id for o in orders]

        page = sql_store.list_by_approval_status(ApprovalStatus.PENDING, limit=1, offset=1)
        assert [o.id for o in page] == [orders[1].id]

        assert sql_store.list_by_approval_status(ApprovalStatus.APPROVED) == []


# ---------------------------------------------------------------------------
# Services on the database
# ---------------------------------------------------------------------------


class TestWorkflowOnDatabase:

    @pytest.fixture
    def approvals(self, sql_store, dispatcher):
        return ApprovalService(sql_store, dispatcher)

    @pytest.fixture
    def payments(self, sql_store, dispatcher):
        return PaymentService(sql_store, dispatcher)

    def test_approve_pay_ship(self, approvals, payments, sql_store, customer, admin, gateway):
        order = approvals.submit_for_approval(make_order(owner_id=customer.id))
        approved = approvals.decide(order.id, admin.id, "approve", remarks="looks good")
        assert is_payable(sql_store.get(order.id))

        paid = payments.confirm_payment(order.id, PaymentMethod.BENEFIT_DEBIT, "bd-1")
        assert paid.order_status == OrderStatus.PROCESSING

        shipped = FulfillmentService(sql_store).ship(order.id, actor_id=admin.id)

        loaded = sql_store.get(order.id)
        assert loaded == shipped
        assert loaded.payment_record.method == PaymentMethod.BENEFIT_DEBIT
        assert loaded.admin_decision.remarks == "looks good"
        assert [r.event for r in sql_store.get_history(order.id)] == ["submit", "approve", "pay", "ship"]
        gateway.notify_admins_order_submitted.assert_called_once_with(order, customer, [admin])
        gateway.notify_approved.assert_called_once_with(approved, customer, "looks good")

    def test_reject_then_pay(self, approvals, payments, sql_store, customer, admin):
        order = approvals.submit_for_approval(make_order(owner_id=customer.id))
        approvals.decide(order.id, admin.id, "reject", remarks="out of stock")

        loaded = sql_store.get(order.id)
        assert loaded.approval_status == ApprovalStatus.REJECTED
        assert loaded.order_status == OrderStatus.AWAITING_APPROVAL

        with pytest.raises(GateError) as exc_info:
            payments.confirm_payment(order.id, "knet", "knet-1")
        assert exc_info.value.reason == GateReason.REJECTED

    def test_second_decision(self, approvals, customer, admin):
        order = approvals.submit_for_approval(make_order(owner_id=customer.id))
        approvals.decide(order.id, admin.id, "reject", remarks="out of stock")

        with pytest.raises(InvalidStateError):
            approvals.decide(order.id, admin.id, "approve")

    def test_double_confirmation(self, approvals, payments, sql_store, customer, admin):
        order = approvals.submit_for_approval(make_order(owner_id=customer.id))
        approvals.decide(order.id, admin.id, "approve")
        payments.confirm_payment(order.id, "knet", "knet-1")

        with pytest.raises(GateError) as exc_info:
            payments.confirm_payment(order.id, "knet", "knet-1")

        assert exc_info.value.reason == GateReason.ALREADY_PAID
        assert [r.event for r in sql_store.get_history(order.id)].count("pay") == 1


# ---------------------------------------------------------------------------
# Foreign keys enforced
# ---------------------------------------------------------------------------


class TestForeignKeysEnforced:
    """SQLite with PRAGMA foreign_keys=ON behaves like PostgreSQL."""

    @pytest.fixture
    def fk_store(self, customer):
        engine = create_db_engine("sqlite://")

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        init_db(engine)
        store = SqlAlchemyOrderStore(create_session_factory(engine))
        store.add_owner(customer)
        yield store
        engine.dispose()

    def test_unknown_owner_is_not_reported_as_duplicate(self, fk_store, dispatcher):
        service = ApprovalService(fk_store, dispatcher)
        order = make_order(owner_id="ghost")

        with pytest.raises(IntegrityError):
            service.submit_for_approval(order)

        assert fk_store.get(order.id) is None

    def test_duplicate_id_still_returns_false(self, fk_store, customer):
        order = _submit(fk_store, make_order(owner_id=customer.id))

        assert not fk_store.insert(order)
        assert len(fk_store.get_history(order.id)) == 1

    def test_known_owner_submits(self, fk_store, dispatcher, customer):
        order = ApprovalService(fk_store, dispatcher).submit_for_approval(make_order(owner_id=customer.id))
        assert fk_store.get(order.id) == order
