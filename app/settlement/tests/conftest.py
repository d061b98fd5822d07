"""
Pytest fixtures for settlement tests.

Behavior is exercised through a SettlementEngine wired to a FakeProvider,
with the after-commit dispatchers replaced by mocks. Redis is mocked for
every test so distributed locks always succeed unless a test says
otherwise.

Usage:
    def test_refund(engine, delivered_order, buyer_actor):
        refund = engine.refunds.request(
            delivered_order.id, buyer_actor, RefundRequestParams(reason="Damaged")
        )
        assert refund.status == RefundStatus.PENDING
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from settlement.engine import SettlementEngine
from settlement.providers.base import ReversalResult, TransferResult
from settlement.state_machines import ActorRole, OrderStatus
from settlement.tests.factories import (
    AdminUserFactory,
    DeliveryAgentFactory,
    ProductFactory,
    RevenueShareSchemeFactory,
    UserFactory,
)
from settlement.types import Actor, CreateOrderParams


# =============================================================================
# Provider
# =============================================================================


class FakeProvider:
    """
    In-memory PaymentProvider that records every call.

    Set ``reversal_errors`` or ``transfer_errors`` to a list of exceptions;
    each call pops the first one and raises it, and calls succeed once the
    list is empty.
    """

    name = "fake"

    def __init__(self):
        self.reversals = []
        self.transfers = []
        self.reversal_errors = []
        self.transfer_errors = []

    def reverse_payment(self, payment, amount_cents, idempotency_key):
        self.reversals.append(
            {"payment_id": payment.id, "amount_cents": amount_cents, "key": idempotency_key}
        )
        if self.reversal_errors:
            raise self.reversal_errors.pop(0)
        return ReversalResult(reference=f"rv_{idempotency_key}", amount_cents=amount_cents)

    def send_payout(self, payout, idempotency_key):
        self.transfers.append(
            {
                "payout_id": payout.id,
                "amount_cents": payout.total_amount_cents,
                "key": idempotency_key,
            }
        )
        if self.transfer_errors:
            raise self.transfer_errors.pop(0)
        return TransferResult(
            reference=f"tr_{idempotency_key}", amount_cents=payout.total_amount_cents
        )


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock the Redis connection behind settlement distributed locks."""
    with patch("settlement.locks.get_redis_connection") as mock_get_conn:
        redis_instance = MagicMock()
        redis_instance.set.return_value = True
        redis_instance.get.return_value = None
        redis_instance.delete.return_value = 1
        redis_instance.eval.return_value = 1
        mock_get_conn.return_value = redis_instance
        yield redis_instance


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def engine(db, provider):
    """Engine with a fake provider and mocked after-commit dispatchers."""
    return SettlementEngine(
        provider,
        reversal_dispatcher=MagicMock(name="reversal_dispatcher"),
        order_notifier=MagicMock(name="order_notifier"),
    )


# =============================================================================
# Users & Actors
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory()


@pytest.fixture
def seller(db):
    return UserFactory()


@pytest.fixture
def other_user(db):
    """A user with no part in the order under test."""
    return UserFactory()


@pytest.fixture
def admin_user(db):
    return AdminUserFactory()


@pytest.fixture
def delivery_agent(db):
    return DeliveryAgentFactory()


@pytest.fixture
def buyer_actor(buyer):
    return Actor(role=ActorRole.BUYER, user_id=buyer.pk)


@pytest.fixture
def seller_actor(seller):
    return Actor(role=ActorRole.SELLER, user_id=seller.pk)


@pytest.fixture
def admin_actor(admin_user):
    return Actor.admin(admin_user.pk)


# =============================================================================
# Catalogue
# =============================================================================


@pytest.fixture
def scheme(db):
    """10% platform / 90% seller for electronics."""
    return RevenueShareSchemeFactory(
        category="electronics",
        platform_percentage=Decimal("0.1000"),
        seller_percentage=Decimal("0.9000"),
    )


@pytest.fixture
def product(db, seller, scheme):
    """A 10,000 product in the electronics category."""
    return ProductFactory(seller=seller, category="electronics", price_cents=10_000)


# =============================================================================
# Order Flow Helpers
# =============================================================================


@pytest.fixture
def place_order(engine, buyer, product):
    """
    Place an order through the engine.

    Returns a callable accepting optional ``quantity``, ``buyer`` and
    ``product`` overrides; it returns the OrderCreationResult.
    """

    def _place(quantity=1, buyer=buyer, product=product):
        return engine.intake.create_order(
            buyer,
            CreateOrderParams(
                product_id=product.id,
                quantity=quantity,
                shipping_address="12 Marina Road, Lagos",
                payment_method="card",
            ),
        )

    return _place


@pytest.fixture
def advance_order(engine):
    """Move an order through the state machine up to ``target``."""
    path = [OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED]

    def _advance(order, target=OrderStatus.DELIVERED):
        actor = Actor.system("test")
        for status in path:
            order = engine.orders.transition(order.id, status, actor)
            if status == target:
                break
        return order

    return _advance


@pytest.fixture
def pending_order(place_order):
    return place_order().order


@pytest.fixture
def confirmed_order(place_order, advance_order):
    return advance_order(place_order().order, OrderStatus.CONFIRMED)


@pytest.fixture
def shipped_order(place_order, advance_order):
    return advance_order(place_order().order, OrderStatus.SHIPPED)


@pytest.fixture
def delivered_order(place_order, advance_order):
    """A delivered 10,000 order: completed payment, 9,000 owed to the seller."""
    return advance_order(place_order().order)
