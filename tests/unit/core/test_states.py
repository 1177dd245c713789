"""Tests for order workflow states and transition rules."""

from dataclasses import replace

import pytest

from orderflow.core.approval.states import (
    DECIDED_STATUSES,
    ORDER_STATUS_LABELS,
    PAYABLE_ORDER_STATUSES,
    TERMINAL_ORDER_STATUSES,
    VALID_EVENTS,
    OrderEvent,
    can_apply,
    can_transition,
    check_invariants,
    get_target_status,
    get_transition_rule,
    is_payable,
    next_order_status,
    status_label,
)
from orderflow.core.errors import OrderIntegrityError
from orderflow.core.models import ApprovalStatus, OrderStatus

from tests.factories import (
    make_approved_order,
    make_paid_order,
    make_rejected_order,
    make_submitted_order,
)


class TestOrderStates:
    """Test status set definitions."""

    def test_terminal_statuses(self):
        assert OrderStatus.DELIVERED in TERMINAL_ORDER_STATUSES
        assert OrderStatus.CANCELLED in TERMINAL_ORDER_STATUSES
        assert OrderStatus.PROCESSING not in TERMINAL_ORDER_STATUSES

    def test_payable_statuses(self):
        assert PAYABLE_ORDER_STATUSES == {OrderStatus.AWAITING_APPROVAL, OrderStatus.PAYMENT_PENDING}

    def test_decided_statuses(self):
        assert ApprovalStatus.PENDING not in DECIDED_STATUSES
        assert DECIDED_STATUSES == {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}

    def test_every_status_has_a_label(self):
        for status in OrderStatus:
            assert status in ORDER_STATUS_LABELS

    def test_terminal_statuses_have_no_events(self):
        for status in TERMINAL_ORDER_STATUSES:
            assert status not in VALID_EVENTS


class TestCanTransition:
    """Decisions are one-shot."""

    def test_pending_can_be_decided(self):
        order = make_submitted_order()
        assert can_transition(order, ApprovalStatus.APPROVED)
        assert can_transition(order, ApprovalStatus.REJECTED)

    def test_pending_to_pending_is_not_a_decision(self):
        assert not can_transition(make_submitted_order(), ApprovalStatus.PENDING)

    @pytest.mark.parametrize("requested", [ApprovalStatus.APPROVED, ApprovalStatus.REJECTED])
    def test_decided_orders_cannot_transition(self, requested):
        assert not can_transition(make_approved_order(), requested)
        assert not can_transition(make_rejected_order(), requested)


class TestNextOrderStatus:

    def test_approval_moves_to_payment_pending(self):
        order = replace(make_submitted_order(), approval_status=ApprovalStatus.APPROVED)
        assert next_order_status(order) == OrderStatus.PAYMENT_PENDING

    def test_rejection_keeps_awaiting_approval(self):
        assert next_order_status(make_rejected_order()) == OrderStatus.AWAITING_APPROVAL

    def test_pending_keeps_awaiting_approval(self):
        assert next_order_status(make_submitted_order()) == OrderStatus.AWAITING_APPROVAL

    def test_later_statuses_unchanged(self):
        assert next_order_status(make_paid_order()) == OrderStatus.PROCESSING


class TestIsPayable:
    """is_payable is true only for approved orders before payment."""

    @pytest.mark.parametrize("approval", list(ApprovalStatus))
    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_status_combinations(self, approval, status):
        order = replace(make_submitted_order(), approval_status=approval, order_status=status)
        expected = approval == ApprovalStatus.APPROVED and status in (
            OrderStatus.AWAITING_APPROVAL,
            OrderStatus.PAYMENT_PENDING,
        )
        assert is_payable(order) is expected

    def test_approved_order_is_payable(self):
        assert is_payable(make_approved_order())

    def test_paid_order_is_not_payable(self):
        assert not is_payable(make_paid_order())

    def test_payment_record_blocks_payment(self):
        paid = make_paid_order()
        order = replace(paid, order_status=OrderStatus.PAYMENT_PENDING)
        assert not is_payable(order)


class TestTransitionRules:

    def test_get_target_status(self):
        assert get_target_status(OrderStatus.PROCESSING, OrderEvent.SHIP) == OrderStatus.SHIPPED
        assert get_target_status(OrderStatus.SHIPPED, OrderEvent.DELIVER) == OrderStatus.DELIVERED
        assert get_target_status(OrderStatus.PAYMENT_PENDING, OrderEvent.PAY) == OrderStatus.PROCESSING
        assert get_target_status(OrderStatus.DELIVERED, OrderEvent.CANCEL) is None

    def test_approve_rule_requires_approval(self):
        rule = get_transition_rule(OrderStatus.AWAITING_APPROVAL, OrderEvent.APPROVE)
        assert rule is not None
        assert rule.requires_approval

    def test_cancel_rule_does_not_require_approval(self):
        rule = get_transition_rule(OrderStatus.AWAITING_APPROVAL, OrderEvent.CANCEL)
        assert rule is not None
        assert not rule.requires_approval

    def test_pending_order_cannot_pay_or_ship(self):
        order = make_submitted_order()
        assert not can_apply(order, OrderEvent.PAY)
        assert not can_apply(order, OrderEvent.SHIP)
        assert can_apply(order, OrderEvent.CANCEL)

    def test_rejected_order_cannot_move(self):
        order = make_rejected_order()
        assert not can_apply(order, OrderEvent.PAY)
        assert not can_apply(order, OrderEvent.CANCEL)

    def test_approved_order_can_pay_or_cancel(self):
        order = make_approved_order()
        assert can_apply(order, OrderEvent.PAY)
        assert can_apply(order, OrderEvent.CANCEL)
        assert not can_apply(order, OrderEvent.SHIP)

    def test_paid_order_can_ship(self):
        assert can_apply(make_paid_order(), OrderEvent.SHIP)


class TestStatusLabel:

    def test_pending(self):
        assert status_label(make_submitted_order()) == "Awaiting Admin Approval"

    def test_rejected(self):
        assert status_label(make_rejected_order()) == "Rejected by Admin"

    def test_approved_unpaid(self):
        assert status_label(make_approved_order()) == "Payment Required"

    def test_paid(self):
        assert status_label(make_paid_order()) == "Processing"

    def test_cancelled_wins(self):
        order = replace(make_submitted_order(), order_status=OrderStatus.CANCELLED)
        assert status_label(order) == "Cancelled"


class TestCheckInvariants:

    def test_valid_snapshots_pass(self):
        for order in (make_submitted_order(), make_approved_order(), make_rejected_order(), make_paid_order()):
            check_invariants(order)

    def test_rejected_order_cannot_progress(self):
        order = replace(make_rejected_order(), order_status=OrderStatus.PAYMENT_PENDING)
        with pytest.raises(OrderIntegrityError):
            check_invariants(order)

    def test_payment_requires_approval(self):
        paid = make_paid_order()
        order = replace(
            paid,
            approval_status=ApprovalStatus.PENDING,
            admin_decision=None,
            order_status=OrderStatus.AWAITING_APPROVAL,
        )
        with pytest.raises(OrderIntegrityError):
            check_invariants(order)

    def test_decision_without_record(self):
        order = replace(make_approved_order(), admin_decision=None)
        with pytest.raises(OrderIntegrityError):
            check_invariants(order)

    def test_rejection_requires_remarks(self):
        rejected = make_rejected_order()
        order = replace(rejected, admin_decision=replace(rejected.admin_decision, remarks="  "))
        with pytest.raises(OrderIntegrityError):
            check_invariants(order)

    def test_progress_requires_approval(self):
        order = replace(make_submitted_order(), order_status=OrderStatus.SHIPPED)
        with pytest.raises(OrderIntegrityError):
            check_invariants(order)
