"""
End-to-end settlement flows through the engine.

Each test walks an order from placement to payout or refund, asserting the
ledger and balance properties the marketplace relies on:
- platform cut + seller net always equals the payment amount
- order status history is always a path through the transition table
- seller balance never goes negative and no payment is claimed beyond its net
- process is idempotent
- at most one active refund per order
"""

import pytest
from django.db.models import Sum

from settlement.exceptions import (
    InsufficientBalanceError,
    InvalidTransitionError,
    RefundAlreadyExistsError,
    RequiresRefundError,
)
from settlement.models import Payment, PayoutItem
from settlement.state_machines import (
    ORDER_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
    PayoutAction,
    PayoutStatus,
    RefundDecision,
    RefundStatus,
    ShipmentStatus,
)
from settlement.tests.factories import ProductFactory
from settlement.types import Actor, RefundRequestParams

SYSTEM = Actor.system("test")


class TestSaleToPayout:
    def test_full_lifecycle(
        self, engine, provider, place_order, advance_order, seller, admin_actor
    ):
        placed = place_order()

        assert placed.payment.platform_cut_cents == 1_000
        assert placed.payment.seller_net_cents == 9_000

        advance_order(placed.order)
        payment = Payment.objects.get(pk=placed.payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert engine.payouts.compute_available_balance(seller.pk) == 9_000

        payout = engine.payouts.request_payout(seller.pk, amount_cents=9_000)
        assert payout.status == PayoutStatus.SCHEDULED
        assert payout.total_amount_cents == 9_000
        assert engine.payouts.compute_available_balance(seller.pk) == 0

        results = engine.payouts.process_batch([payout.id], PayoutAction.APPROVE, admin_actor)
        assert results[0].success
        assert engine.payouts.compute_available_balance(seller.pk) == 0
        assert len(provider.transfers) == 1

    def test_delivery_agent_drives_settlement(
        self, engine, place_order, advance_order, delivery_agent, seller
    ):
        order = advance_order(place_order().order, OrderStatus.SHIPPED)
        shipment = order.shipment
        agent = Actor(role="agent", user_id=delivery_agent.user_id)

        for target in (
            ShipmentStatus.PICKED_UP,
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.DELIVERED,
        ):
            engine.shipments.transition(shipment.id, target, agent)

        delivery_agent.refresh_from_db()
        assert delivery_agent.earnings_cents == 80_000
        assert engine.payouts.compute_available_balance(seller.pk) == 9_000

    def test_process_twice_is_idempotent(self, engine, provider, delivered_order, seller):
        payout = engine.payouts.request_payout(seller.pk)

        first = engine.payouts.process(payout.id)
        balance_after_first = engine.payouts.compute_available_balance(seller.pk)
        second = engine.payouts.process(payout.id)

        assert first.status == second.status == PayoutStatus.COMPLETED
        assert second.provider_reference == first.provider_reference
        assert engine.payouts.compute_available_balance(seller.pk) == balance_after_first
        assert len(provider.transfers) == 1


class TestLedgerProperties:
    @pytest.mark.parametrize("price_cents", [1, 99, 9_999, 10_000, 123_457])
    def test_split_always_balances(self, engine, place_order, advance_order, seller, price_cents):
        product = ProductFactory(seller=seller, category="electronics", price_cents=price_cents)

        placed = place_order(product=product)
        advance_order(placed.order)
        payment = Payment.objects.get(pk=placed.payment.id)

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.platform_cut_cents + payment.seller_net_cents == payment.amount_cents
        assert payment.platform_cut_cents == price_cents // 10

    def test_status_history_follows_transition_table(
        self, engine, place_order, django_capture_on_commit_callbacks
    ):
        order = place_order().order
        with django_capture_on_commit_callbacks(execute=True):
            for target in (
                OrderStatus.CONFIRMED,
                OrderStatus.SHIPPED,
                OrderStatus.CONFIRMED,
                OrderStatus.DELIVERED,
                OrderStatus.CANCELLED,
            ):
                try:
                    engine.orders.transition(order.id, target, SYSTEM)
                except (InvalidTransitionError, RequiresRefundError):
                    pass

        history = [OrderStatus.PENDING] + [
            call.args[1] for call in engine.orders.notifier.call_args_list
        ]
        assert history == [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]
        for current, following in zip(history, history[1:]):
            assert following in ORDER_TRANSITIONS[current]

    def test_delivered_to_confirmed_rejected(self, engine, delivered_order):
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.orders.transition(delivered_order.id, OrderStatus.CONFIRMED, SYSTEM)

        assert exc_info.value.details["from"] == "delivered"
        assert exc_info.value.details["to"] == "confirmed"


class TestRefundSettlement:
    def test_full_refund_removes_seller_balance(
        self, engine, delivered_order, seller, buyer_actor, admin_actor
    ):
        assert engine.payouts.compute_available_balance(seller.pk) == 9_000

        refund = engine.refunds.request(
            delivered_order.id, buyer_actor, RefundRequestParams(reason="Wrong item")
        )
        engine.refunds.decide(refund.id, RefundDecision.APPROVE, admin_actor)
        refund = engine.refunds.execute_reversal(refund.id)

        payment = Payment.objects.get(order=delivered_order)
        assert payment.status == PaymentStatus.REFUNDED
        assert refund.status == RefundStatus.COMPLETED
        assert engine.payouts.compute_available_balance(seller.pk) == 0
        with pytest.raises(InsufficientBalanceError):
            engine.payouts.request_payout(seller.pk)

    def test_one_active_refund_through_lifecycle(
        self, engine, delivered_order, buyer_actor, admin_actor
    ):
        params = RefundRequestParams(reason="Damaged", amount_cents=1_000)
        first = engine.refunds.request(delivered_order.id, buyer_actor, params)

        engine.refunds.decide(first.id, RefundDecision.APPROVE, admin_actor)
        with pytest.raises(RefundAlreadyExistsError):
            engine.refunds.request(delivered_order.id, buyer_actor, params)

        engine.refunds.execute_reversal(first.id)
        with pytest.raises(RefundAlreadyExistsError):
            engine.refunds.request(delivered_order.id, buyer_actor, params)


class TestPayoutAllocation:
    def test_requests_exceeding_balance_allocate_once(
        self, engine, delivered_order, seller
    ):
        first = engine.payouts.request_payout(seller.pk, amount_cents=9_000)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            engine.payouts.request_payout(seller.pk, amount_cents=9_000)

        payment = Payment.objects.get(order=delivered_order)
        assert exc_info.value.details["available_cents"] == 0
        assert payment.allocated_cents == 9_000
        claims = PayoutItem.objects.filter(payment=payment)
        assert list(claims.values_list("payout", flat=True)) == [first.id]

    def test_requests_within_balance_never_overclaim(
        self, engine, place_order, advance_order, seller
    ):
        for _ in range(2):
            advance_order(place_order().order)

        payouts = [
            engine.payouts.request_payout(seller.pk, amount_cents=amount)
            for amount in (6_000, 6_000, 6_000)
        ]

        for payment in Payment.objects.filter(seller=seller):
            claimed = PayoutItem.objects.filter(payment=payment).aggregate(
                total=Sum("amount_cents")
            )["total"]
            assert claimed == payment.allocated_cents == payment.seller_net_cents
        assert sum(p.total_amount_cents for p in payouts) == 18_000
        assert engine.payouts.compute_available_balance(seller.pk) == 0

    def test_insufficient_balance_reports_available(self, engine, delivered_order, seller):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            engine.payouts.request_payout(seller.pk, amount_cents=9_001)

        assert exc_info.value.details["available_cents"] == 9_000
        assert exc_info.value.to_dict()["error_code"] == "INSUFFICIENT_BALANCE"
