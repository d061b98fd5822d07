"""
Tests for settlement Celery tasks.

This module tests:
- execute_refund_reversal: provider reversal of approved refunds
- process_payout: single payout transfer
- process_scheduled_payouts: periodic dispatch of due and stuck payouts
- notify_order_status_changed: order status hook
"""

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from settlement.exceptions import PaymentProviderError
from settlement.state_machines import PayoutStatus, RefundDecision, RefundStatus
from settlement.tasks import (
    execute_refund_reversal,
    notify_order_status_changed,
    process_payout,
    process_scheduled_payouts,
)
from settlement.tests.factories import PayoutFactory
from settlement.types import RefundRequestParams


@pytest.fixture(autouse=True)
def use_test_engine(mocker, engine):
    """Tasks resolve the engine lazily; hand them the test engine."""
    return mocker.patch("settlement.engine.get_engine", return_value=engine)


@pytest.fixture
def approved_refund(engine, delivered_order, buyer_actor, admin_actor):
    refund = engine.refunds.request(
        delivered_order.id, buyer_actor, RefundRequestParams(reason="Broken")
    )
    return engine.refunds.decide(refund.id, RefundDecision.APPROVE, admin_actor)


@pytest.fixture
def scheduled_payout(engine, delivered_order, seller):
    return engine.payouts.request_payout(seller.pk)


# =============================================================================
# Refund Reversal
# =============================================================================


class TestExecuteRefundReversal:
    def test_completes_refund(self, approved_refund):
        result = execute_refund_reversal(str(approved_refund.id))

        assert result["status"] == RefundStatus.COMPLETED
        assert result["provider_reference"] == f"rv_refund:{approved_refund.id}"

    def test_retryable_error_raised_for_retry(self, provider, approved_refund):
        provider.reversal_errors.append(PaymentProviderError("Timeout"))

        with pytest.raises(PaymentProviderError):
            execute_refund_reversal(str(approved_refund.id))

    def test_permanent_error_reported(self, provider, approved_refund):
        provider.reversal_errors.append(
            PaymentProviderError("Card expired", is_retryable=False)
        )

        result = execute_refund_reversal(str(approved_refund.id))

        assert result["status"] == "failed"
        assert result["error"] == "Card expired"

    def test_unknown_refund(self, db):
        result = execute_refund_reversal(str(uuid.uuid4()))

        assert result["status"] == "not_found"

    def test_malformed_id(self, db):
        result = execute_refund_reversal("not-a-uuid")

        assert result == {"status": "not_found", "refund_id": "not-a-uuid"}


# =============================================================================
# Payouts
# =============================================================================


class TestProcessPayout:
    def test_sends_payout(self, scheduled_payout):
        result = process_payout(str(scheduled_payout.id))

        assert result["status"] == PayoutStatus.COMPLETED
        assert result["provider_reference"] == f"tr_payout:{scheduled_payout.id}"

    def test_non_retryable_failure_reported(self, provider, scheduled_payout):
        provider.transfer_errors.append(
            PaymentProviderError("Account closed", is_retryable=False)
        )

        result = process_payout(str(scheduled_payout.id))

        assert result["status"] == PayoutStatus.FAILED

    def test_retryable_failure_raised(self, provider, scheduled_payout):
        provider.transfer_errors.append(PaymentProviderError("Timeout"))

        with pytest.raises(PaymentProviderError):
            process_payout(str(scheduled_payout.id))

    def test_unknown_payout(self, db):
        payout_id = str(uuid.uuid4())

        result = process_payout(payout_id)

        assert result["status"] == "not_found"
        assert result["error_code"] == "PAYOUT_NOT_FOUND"


class TestProcessScheduledPayouts:
    def test_queues_due_payouts_only(self, mocker, seller):
        mock_delay = mocker.patch("settlement.tasks.process_payout.delay")
        due = PayoutFactory(seller=seller, scheduled_at=timezone.now() - timedelta(hours=1))
        PayoutFactory(seller=seller, scheduled_at=timezone.now() + timedelta(hours=23))

        result = process_scheduled_payouts()

        assert result == {"queued_count": 1, "requeued_count": 0}
        mock_delay.assert_called_once_with(str(due.id))

    def test_requeues_stuck_processing_payouts(self, mocker, seller):
        mock_delay = mocker.patch("settlement.tasks.process_payout.delay")
        stuck = PayoutFactory(
            seller=seller,
            status=PayoutStatus.PROCESSING,
            processed_at=timezone.now() - timedelta(hours=2),
        )
        PayoutFactory(
            seller=seller,
            status=PayoutStatus.PROCESSING,
            processed_at=timezone.now(),
        )

        result = process_scheduled_payouts()

        assert result == {"queued_count": 0, "requeued_count": 1}
        mock_delay.assert_called_once_with(str(stuck.id))

    def test_nothing_due(self, mocker, db):
        mock_delay = mocker.patch("settlement.tasks.process_payout.delay")

        assert process_scheduled_payouts() == {"queued_count": 0, "requeued_count": 0}
        mock_delay.assert_not_called()


# =============================================================================
# Notifications
# =============================================================================


class TestNotifyOrderStatusChanged:
    def test_notifies(self, pending_order):
        result = notify_order_status_changed(str(pending_order.id), "confirmed")

        assert result == {
            "status": "notified",
            "order_id": str(pending_order.id),
            "order_status": "confirmed",
        }

    def test_unknown_order(self, db):
        result = notify_order_status_changed(str(uuid.uuid4()), "confirmed")

        assert result["status"] == "not_found"
