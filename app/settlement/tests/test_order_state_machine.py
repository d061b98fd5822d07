"""
Tests for OrderIntake and OrderStateMachine.

Covers:
- Order placement: totals, split, pending payment, unavailable products
- Every allowed transition and its side effects (shipment, payment)
- Rejected transitions and the refund-required cancellation rule
- Optimistic locking with expected_version
- After-commit notifications
"""

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import NotFoundError, ValidationError
from settlement.exceptions import (
    InvalidTransitionError,
    RequiresRefundError,
    StaleRecordError,
)
from settlement.models import Order, Payment, Shipment
from settlement.state_machines import (
    OrderStatus,
    PaymentStatus,
    ShipmentStatus,
)
from settlement.tests.factories import ProductFactory
from settlement.types import Actor, CreateOrderParams

SYSTEM = Actor.system("test")


# =============================================================================
# Intake
# =============================================================================


class TestOrderIntake:
    def test_creates_pending_order_and_payment(self, place_order, buyer, seller):
        result = place_order()

        assert result.order.status == OrderStatus.PENDING
        assert result.order.buyer_id == buyer.pk
        assert result.order.seller_id == seller.pk
        assert result.order.total_amount_cents == 10_000
        assert result.order.payment_status == PaymentStatus.PENDING
        assert result.payment.order_id == result.order.id
        assert result.payment.status == PaymentStatus.PENDING

    def test_total_is_price_times_quantity(self, place_order):
        result = place_order(quantity=3)

        assert result.order.total_amount_cents == 30_000
        assert result.payment.platform_cut_cents == 3_000
        assert result.payment.seller_net_cents == 27_000

    @freeze_time("2026-03-01 12:00:00")
    def test_expected_delivery_date(self, place_order):
        result = place_order()

        assert result.order.expected_delivery_date == timezone.now() + timedelta(days=7)

    def test_inactive_product_rejected(self, place_order, seller):
        product = ProductFactory(seller=seller, is_active=False)

        with pytest.raises(ValidationError) as exc_info:
            place_order(product=product)

        assert exc_info.value.error_code == "PRODUCT_UNAVAILABLE"
        assert not Order.objects.exists()

    def test_unknown_product_not_found(self, engine, buyer):
        params = CreateOrderParams(
            product_id=uuid.uuid4(),
            quantity=1,
            shipping_address="12 Marina Road, Lagos",
        )

        with pytest.raises(NotFoundError) as exc_info:
            engine.intake.create_order(buyer, params)

        assert exc_info.value.error_code == "PRODUCT_NOT_FOUND"

    def test_zero_quantity_rejected(self, product):
        with pytest.raises(ValidationError):
            CreateOrderParams(product_id=product.id, quantity=0, shipping_address="x")


# =============================================================================
# Transitions
# =============================================================================


class TestOrderTransitions:
    def test_confirm(self, engine, pending_order):
        order = engine.orders.transition(pending_order.id, OrderStatus.CONFIRMED, SYSTEM)

        assert order.status == OrderStatus.CONFIRMED
        assert order.version > pending_order.version

    def test_ship_creates_shipment(self, engine, confirmed_order):
        order = engine.orders.transition(confirmed_order.id, OrderStatus.SHIPPED, SYSTEM)
        shipment = Shipment.objects.get(order=order)

        assert order.status == OrderStatus.SHIPPED
        assert shipment.status == ShipmentStatus.ASSIGNED
        assert shipment.tracking_number.startswith("TRK")
        assert shipment.delivery_fee_cents == 100_000

    def test_ship_assigns_active_agent(self, engine, confirmed_order, delivery_agent):
        engine.orders.transition(confirmed_order.id, OrderStatus.SHIPPED, SYSTEM)

        assert Shipment.objects.get(order=confirmed_order).agent_id == delivery_agent.id

    def test_deliver_completes_payment(self, engine, shipped_order):
        order = engine.orders.transition(shipped_order.id, OrderStatus.DELIVERED, SYSTEM)
        payment = Payment.objects.get(order=order)

        assert order.status == OrderStatus.DELIVERED
        assert order.delivery_date is not None
        assert order.payment_status == PaymentStatus.COMPLETED
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.paid_at is not None

    def test_cancel_pending_cancels_payment(self, engine, pending_order):
        order = engine.orders.transition(
            pending_order.id, OrderStatus.CANCELLED, SYSTEM, reason="Out of stock"
        )
        payment = Payment.objects.get(order=order)

        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at is not None
        assert order.cancellation_reason == "Out of stock"
        assert order.payment_status == PaymentStatus.CANCELLED
        assert payment.status == PaymentStatus.CANCELLED

    def test_cancel_shipped_cancels_shipment(self, engine, shipped_order):
        engine.orders.transition(shipped_order.id, OrderStatus.CANCELLED, SYSTEM)
        shipment = Shipment.objects.get(order=shipped_order)

        assert shipment.status == ShipmentStatus.CANCELLED
        assert shipment.cancelled_at is not None

    def test_cancel_delivered_requires_refund(self, engine, delivered_order):
        with pytest.raises(RequiresRefundError) as exc_info:
            engine.orders.transition(delivered_order.id, OrderStatus.CANCELLED, SYSTEM)

        assert exc_info.value.error_code == "REQUIRES_REFUND"
        assert Order.objects.get(pk=delivered_order.id).status == OrderStatus.DELIVERED

    def test_delivered_cannot_go_back_to_confirmed(self, engine, delivered_order):
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.orders.transition(delivered_order.id, OrderStatus.CONFIRMED, SYSTEM)

        details = exc_info.value.details
        assert details["from"] == OrderStatus.DELIVERED
        assert details["to"] == OrderStatus.CONFIRMED
        assert details["allowed"] == []
        assert exc_info.value.http_status == 400

    @pytest.mark.parametrize(
        "target",
        [OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.PENDING],
    )
    def test_pending_cannot_skip_ahead(self, engine, pending_order, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.orders.transition(pending_order.id, target, SYSTEM)

        assert exc_info.value.details["allowed"] == [
            OrderStatus.CANCELLED,
            OrderStatus.CONFIRMED,
        ]

    def test_cancelled_is_terminal(self, engine, pending_order):
        order = engine.orders.transition(pending_order.id, OrderStatus.CANCELLED, SYSTEM)

        assert order.is_terminal
        with pytest.raises(InvalidTransitionError):
            engine.orders.transition(order.id, OrderStatus.CONFIRMED, SYSTEM)

    def test_unknown_order(self, engine, pending_order):
        with pytest.raises(NotFoundError) as exc_info:
            engine.orders.transition(uuid.uuid4(), OrderStatus.CONFIRMED, SYSTEM)

        assert exc_info.value.error_code == "ORDER_NOT_FOUND"

    def test_status_field_is_protected(self, pending_order):
        with pytest.raises(AttributeError):
            pending_order.status = OrderStatus.DELIVERED


class TestOrderVersioning:
    def test_matching_version_accepted(self, engine, pending_order):
        order = engine.orders.transition(
            pending_order.id,
            OrderStatus.CONFIRMED,
            SYSTEM,
            expected_version=pending_order.version,
        )

        assert order.status == OrderStatus.CONFIRMED

    def test_stale_version_rejected(self, engine, pending_order):
        engine.orders.transition(pending_order.id, OrderStatus.CONFIRMED, SYSTEM)

        with pytest.raises(StaleRecordError) as exc_info:
            engine.orders.transition(
                pending_order.id,
                OrderStatus.SHIPPED,
                SYSTEM,
                expected_version=pending_order.version,
            )

        assert exc_info.value.http_status == 409
        assert exc_info.value.details["expected_version"] == pending_order.version
        assert Order.objects.get(pk=pending_order.id).status == OrderStatus.CONFIRMED


class TestOrderNotifications:
    def test_notifier_called_after_commit(
        self, engine, pending_order, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            engine.orders.transition(pending_order.id, OrderStatus.CONFIRMED, SYSTEM)

        assert len(callbacks) == 1
        engine.orders.notifier.assert_called_once_with(
            pending_order.id, OrderStatus.CONFIRMED
        )

    def test_no_notification_for_rejected_transition(
        self, engine, pending_order, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(InvalidTransitionError):
                engine.orders.transition(pending_order.id, OrderStatus.DELIVERED, SYSTEM)

        engine.orders.notifier.assert_not_called()
