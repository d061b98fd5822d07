"""
Tests for RefundWorkflow.

Covers:
- Refund requests: eligibility, amounts, one active refund per order
- Withdrawal by the requester
- Admin approval (ledger adjustment, reversal dispatch) and rejection
- Provider reversal execution, failure bookkeeping and confirmation
"""

import uuid

import pytest

from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from settlement.exceptions import (
    IneligibleOrderError,
    InvalidTransitionError,
    PaymentAllocatedError,
    PaymentProviderError,
    RefundAlreadyExistsError,
    RefundExceedsPaymentError,
)
from settlement.models import Payment, PaymentAdjustment, Refund
from settlement.state_machines import (
    ActorRole,
    PaymentStatus,
    RefundDecision,
    RefundStatus,
)
from settlement.types import Actor, RefundRequestParams


@pytest.fixture
def pending_refund(engine, delivered_order, buyer_actor):
    return engine.refunds.request(
        delivered_order.id, buyer_actor, RefundRequestParams(reason="Item damaged")
    )


@pytest.fixture
def approved_refund(engine, pending_refund, admin_actor):
    return engine.refunds.decide(pending_refund.id, RefundDecision.APPROVE, admin_actor)


# =============================================================================
# Requests
# =============================================================================


class TestRefundRequest:
    def test_full_refund_by_default(self, pending_refund, delivered_order, buyer):
        assert pending_refund.status == RefundStatus.PENDING
        assert pending_refund.amount_cents == 10_000
        assert pending_refund.order_id == delivered_order.id
        assert pending_refund.requested_by_id == buyer.pk
        assert pending_refund.reason == "Item damaged"

    def test_partial_amount(self, engine, delivered_order, buyer_actor):
        refund = engine.refunds.request(
            delivered_order.id,
            buyer_actor,
            RefundRequestParams(reason="One item missing", amount_cents=2_500),
        )

        assert refund.amount_cents == 2_500

    def test_undelivered_order_ineligible(self, engine, shipped_order, buyer_actor):
        with pytest.raises(IneligibleOrderError) as exc_info:
            engine.refunds.request(
                shipped_order.id, buyer_actor, RefundRequestParams(reason="Late")
            )

        assert exc_info.value.details["status"] == "shipped"
        assert exc_info.value.details["rule"] == "refund_requires_delivered_order"

    def test_one_active_refund_per_order(self, engine, pending_refund, buyer_actor):
        with pytest.raises(RefundAlreadyExistsError) as exc_info:
            engine.refunds.request(
                pending_refund.order_id, buyer_actor, RefundRequestParams(reason="Again")
            )

        assert exc_info.value.details["refund_id"] == str(pending_refund.id)
        assert Refund.objects.filter(order_id=pending_refund.order_id).count() == 1

    def test_new_request_after_rejection(self, engine, pending_refund, admin_actor, buyer_actor):
        engine.refunds.decide(pending_refund.id, RefundDecision.REJECT, admin_actor)

        refund = engine.refunds.request(
            pending_refund.order_id, buyer_actor, RefundRequestParams(reason="Second try")
        )

        assert refund.status == RefundStatus.PENDING
        assert refund.id != pending_refund.id

    def test_amount_above_payment_rejected(self, engine, delivered_order, buyer_actor):
        with pytest.raises(RefundExceedsPaymentError) as exc_info:
            engine.refunds.request(
                delivered_order.id,
                buyer_actor,
                RefundRequestParams(reason="Damaged", amount_cents=10_001),
            )

        assert exc_info.value.details["maximum_cents"] == 10_000

    def test_non_positive_amount_rejected(self):
        with pytest.raises(ValidationError):
            RefundRequestParams(reason="Damaged", amount_cents=0)

    def test_unknown_order(self, engine, buyer_actor):
        with pytest.raises(NotFoundError):
            engine.refunds.request(uuid.uuid4(), buyer_actor, RefundRequestParams(reason="x"))


class TestRefundWithdraw:
    def test_requester_withdraws(self, engine, pending_refund, buyer_actor):
        refund = engine.refunds.withdraw(pending_refund.id, buyer_actor)

        assert refund.status == RefundStatus.REJECTED
        assert refund.admin_notes == "Withdrawn by requester"

    def test_other_user_cannot_withdraw(self, engine, pending_refund, other_user):
        actor = Actor(role=ActorRole.BUYER, user_id=other_user.pk)

        with pytest.raises(ForbiddenError):
            engine.refunds.withdraw(pending_refund.id, actor)

        assert Refund.objects.get(pk=pending_refund.id).status == RefundStatus.PENDING

    def test_cannot_withdraw_approved(self, engine, approved_refund, buyer_actor):
        with pytest.raises(InvalidTransitionError):
            engine.refunds.withdraw(approved_refund.id, buyer_actor)


# =============================================================================
# Decisions
# =============================================================================


class TestRefundDecision:
    def test_approve_applies_full_refund(self, approved_refund, admin_user):
        payment = Payment.objects.get(pk=approved_refund.payment_id)

        assert approved_refund.status == RefundStatus.APPROVED
        assert approved_refund.approved_at is not None
        assert approved_refund.processed_by_id == admin_user.pk
        assert payment.status == PaymentStatus.REFUNDED
        assert PaymentAdjustment.objects.get(refund=approved_refund).amount_cents == 10_000

    def test_approve_with_override_amount(self, engine, pending_refund, admin_actor):
        refund = engine.refunds.decide(
            pending_refund.id,
            RefundDecision.APPROVE,
            admin_actor,
            override_amount_cents=4_000,
            admin_notes="Partial goodwill refund",
        )
        payment = Payment.objects.get(pk=refund.payment_id)

        assert refund.amount_cents == 4_000
        assert refund.admin_notes == "Partial goodwill refund"
        assert payment.status == PaymentStatus.COMPLETED
        assert engine.ledger.refunded_amount(payment) == 4_000

    def test_override_above_refundable_rejected(self, engine, pending_refund, admin_actor):
        with pytest.raises(RefundExceedsPaymentError):
            engine.refunds.decide(
                pending_refund.id,
                RefundDecision.APPROVE,
                admin_actor,
                override_amount_cents=12_000,
            )

        assert Refund.objects.get(pk=pending_refund.id).status == RefundStatus.PENDING

    def test_approval_dispatches_reversal_after_commit(
        self, engine, pending_refund, admin_actor, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            engine.refunds.decide(pending_refund.id, RefundDecision.APPROVE, admin_actor)

        engine.refunds.reversal_dispatcher.assert_called_once_with(pending_refund.id)

    def test_reject_leaves_ledger_untouched(
        self, engine, pending_refund, admin_actor, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            refund = engine.refunds.decide(
                pending_refund.id,
                RefundDecision.REJECT,
                admin_actor,
                admin_notes="Photos show no damage",
            )
        payment = Payment.objects.get(pk=refund.payment_id)

        assert refund.status == RefundStatus.REJECTED
        assert refund.rejected_at is not None
        assert payment.status == PaymentStatus.COMPLETED
        assert not PaymentAdjustment.objects.filter(payment=payment).exists()
        engine.refunds.reversal_dispatcher.assert_not_called()

    def test_decide_twice_rejected(self, engine, approved_refund, admin_actor):
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.refunds.decide(approved_refund.id, RefundDecision.REJECT, admin_actor)

        assert exc_info.value.details["from"] == RefundStatus.APPROVED

    def test_approval_blocked_once_payout_allocated(
        self, engine, pending_refund, admin_actor, seller
    ):
        engine.payouts.request_payout(seller.pk)

        with pytest.raises(PaymentAllocatedError):
            engine.refunds.decide(pending_refund.id, RefundDecision.APPROVE, admin_actor)

        refund = Refund.objects.get(pk=pending_refund.id)
        assert refund.status == RefundStatus.PENDING
        assert not PaymentAdjustment.objects.exists()


# =============================================================================
# Provider Reversal
# =============================================================================


class TestRefundReversal:
    def test_execute_reversal_completes_refund(self, engine, provider, approved_refund):
        refund = engine.refunds.execute_reversal(approved_refund.id)

        assert refund.status == RefundStatus.COMPLETED
        assert refund.completed_at is not None
        assert refund.provider_reference == f"rv_refund:{approved_refund.id}"
        assert provider.reversals == [
            {
                "payment_id": approved_refund.payment_id,
                "amount_cents": 10_000,
                "key": f"refund:{approved_refund.id}",
            }
        ]

    def test_execute_reversal_idempotent(self, engine, provider, approved_refund):
        engine.refunds.execute_reversal(approved_refund.id)
        refund = engine.refunds.execute_reversal(approved_refund.id)

        assert refund.status == RefundStatus.COMPLETED
        assert len(provider.reversals) == 1

    def test_provider_failure_recorded(self, engine, provider, approved_refund):
        provider.reversal_errors.append(PaymentProviderError("Gateway timeout"))

        with pytest.raises(PaymentProviderError):
            engine.refunds.execute_reversal(approved_refund.id)

        refund = Refund.objects.get(pk=approved_refund.id)
        assert refund.status == RefundStatus.APPROVED
        assert refund.provider_attempts == 1
        assert refund.last_provider_error == "Gateway timeout"

    def test_retry_after_failure_clears_error(self, engine, provider, approved_refund):
        provider.reversal_errors.append(PaymentProviderError("Gateway timeout"))
        with pytest.raises(PaymentProviderError):
            engine.refunds.execute_reversal(approved_refund.id)

        refund = engine.refunds.execute_reversal(approved_refund.id)

        assert refund.status == RefundStatus.COMPLETED
        assert refund.provider_attempts == 1
        assert refund.last_provider_error == ""

    def test_pending_refund_cannot_be_reversed(self, engine, provider, pending_refund):
        with pytest.raises(InvalidTransitionError):
            engine.refunds.execute_reversal(pending_refund.id)

        assert provider.reversals == []

    def test_confirm_reversal(self, engine, approved_refund):
        refund = engine.refunds.confirm_reversal(approved_refund.id, "re_12345")

        assert refund.status == RefundStatus.COMPLETED
        assert refund.provider_reference == "re_12345"

    def test_confirm_twice_is_noop(self, engine, approved_refund):
        engine.refunds.confirm_reversal(approved_refund.id, "re_12345")
        refund = engine.refunds.confirm_reversal(approved_refund.id, "re_other")

        assert refund.provider_reference == "re_12345"

    def test_confirm_pending_rejected(self, engine, pending_refund):
        with pytest.raises(InvalidTransitionError):
            engine.refunds.confirm_reversal(pending_refund.id, "re_12345")
