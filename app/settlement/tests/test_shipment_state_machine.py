"""
Tests for ShipmentStateMachine.

Covers:
- Shipment creation on ship, idempotency and least-loaded agent assignment
- Agent reassignment rules
- Pickup, transit and delivery, with agent commission and order delivery
- Location, proof and notes recording
- Rejected transitions and stale versions
"""

import uuid

import pytest

from core.exceptions import NotFoundError, ValidationError
from settlement.exceptions import InvalidTransitionError, StaleRecordError
from settlement.models import Order, Payment, Shipment
from settlement.services import ShipmentStateMachine
from settlement.state_machines import (
    ActorRole,
    OrderStatus,
    PaymentStatus,
    ShipmentStatus,
)
from settlement.tests.factories import DeliveryAgentFactory, ShipmentFactory
from settlement.types import Actor

SYSTEM = Actor.system("test")


@pytest.fixture
def shipment(delivery_agent, shipped_order):
    """Shipment of a shipped order, assigned to ``delivery_agent``."""
    return Shipment.objects.get(order=shipped_order)


@pytest.fixture
def agent_actor(delivery_agent):
    return Actor(role=ActorRole.AGENT, user_id=delivery_agent.user_id)


def _advance(engine, shipment, actor, *targets):
    for target in targets:
        shipment = engine.shipments.transition(shipment.id, target, actor)
    return shipment


# =============================================================================
# Creation & Assignment
# =============================================================================


class TestShipmentCreation:
    def test_created_with_agent(self, shipment, delivery_agent):
        assert shipment.agent_id == delivery_agent.id
        assert shipment.status == ShipmentStatus.ASSIGNED
        assert shipment.estimated_delivery is not None

    def test_create_for_order_is_idempotent(self, engine, shipment, shipped_order):
        again = engine.shipments.create_for_order(shipped_order)

        assert again.id == shipment.id
        assert Shipment.objects.filter(order=shipped_order).count() == 1

    def test_least_loaded_agent_chosen(self, delivery_agent, place_order, advance_order):
        busy = delivery_agent
        ShipmentFactory(agent=busy)
        idle = DeliveryAgentFactory()

        order = advance_order(place_order().order, OrderStatus.SHIPPED)

        assert Shipment.objects.get(order=order).agent_id == idle.id

    def test_inactive_agents_skipped(self, place_order, advance_order):
        DeliveryAgentFactory(is_active=False)

        order = advance_order(place_order().order, OrderStatus.SHIPPED)

        assert Shipment.objects.get(order=order).agent_id is None

    def test_tracking_number_format(self):
        tracking = ShipmentStateMachine.generate_tracking_number()

        assert tracking.startswith("TRK")
        assert len(tracking) == 3 + 13 + 4


class TestAssignAgent:
    def test_reassign_while_assigned(self, engine, shipment, admin_actor):
        other = DeliveryAgentFactory()

        updated = engine.shipments.assign_agent(shipment.id, other.id, admin_actor)

        assert updated.agent_id == other.id

    def test_cannot_reassign_after_pickup(self, engine, shipment, agent_actor, admin_actor):
        _advance(engine, shipment, agent_actor, ShipmentStatus.PICKED_UP)
        other = DeliveryAgentFactory()

        with pytest.raises(ValidationError) as exc_info:
            engine.shipments.assign_agent(shipment.id, other.id, admin_actor)

        assert exc_info.value.error_code == "SHIPMENT_NOT_ASSIGNABLE"

    def test_inactive_agent_rejected(self, engine, shipment, admin_actor):
        inactive = DeliveryAgentFactory(is_active=False)

        with pytest.raises(ValidationError) as exc_info:
            engine.shipments.assign_agent(shipment.id, inactive.id, admin_actor)

        assert exc_info.value.error_code == "AGENT_INACTIVE"

    def test_unknown_agent(self, engine, shipment, admin_actor):
        with pytest.raises(NotFoundError) as exc_info:
            engine.shipments.assign_agent(shipment.id, uuid.uuid4(), admin_actor)

        assert exc_info.value.error_code == "DELIVERYAGENT_NOT_FOUND"


# =============================================================================
# Transitions
# =============================================================================


class TestShipmentTransitions:
    def test_pick_up(self, engine, shipment, agent_actor):
        updated = _advance(engine, shipment, agent_actor, ShipmentStatus.PICKED_UP)

        assert updated.status == ShipmentStatus.PICKED_UP
        assert updated.picked_up_at is not None

    def test_location_recorded_on_shipment_and_agent(
        self, engine, shipment, agent_actor, delivery_agent
    ):
        location = {"lat": 6.4541, "lng": 3.3947}

        updated = engine.shipments.transition(
            shipment.id, ShipmentStatus.PICKED_UP, agent_actor, location=location
        )
        delivery_agent.refresh_from_db()

        assert updated.current_location == location
        assert delivery_agent.current_location == location

    def test_notes_appended(self, engine, shipment, agent_actor):
        engine.shipments.transition(
            shipment.id, ShipmentStatus.PICKED_UP, agent_actor, notes="Collected at gate"
        )
        updated = engine.shipments.transition(
            shipment.id, ShipmentStatus.IN_TRANSIT, agent_actor, notes="On the bridge"
        )

        assert updated.notes == "Collected at gate\nOn the bridge"

    def test_delivery_credits_agent_and_delivers_order(
        self, engine, shipment, agent_actor, delivery_agent
    ):
        proof = {"signature": "sig-123", "received_by": "Ada"}
        _advance(
            engine, shipment, agent_actor, ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT
        )

        delivered = engine.shipments.transition(
            shipment.id, ShipmentStatus.DELIVERED, agent_actor, proof=proof
        )
        delivery_agent.refresh_from_db()
        order = Order.objects.get(pk=shipment.order_id)
        payment = Payment.objects.get(order=order)

        assert delivered.status == ShipmentStatus.DELIVERED
        assert delivered.delivered_at is not None
        assert delivered.delivery_proof == proof
        assert delivered.agent_earnings_cents == 80_000
        assert delivery_agent.earnings_cents == 80_000
        assert order.status == OrderStatus.DELIVERED
        assert payment.status == PaymentStatus.COMPLETED

    def test_agent_commission_is_floored(self, engine):
        assert engine.shipments.agent_commission(99_999) == 79_999

    def test_delivery_after_order_already_delivered(
        self, engine, shipment, agent_actor, delivery_agent
    ):
        engine.orders.transition(shipment.order_id, OrderStatus.DELIVERED, SYSTEM)

        _advance(
            engine,
            shipment,
            agent_actor,
            ShipmentStatus.PICKED_UP,
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.DELIVERED,
        )
        delivery_agent.refresh_from_db()

        assert Order.objects.get(pk=shipment.order_id).status == OrderStatus.DELIVERED
        assert delivery_agent.earnings_cents == 80_000

    def test_cannot_skip_to_delivered(self, engine, shipment, agent_actor, delivery_agent):
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.shipments.transition(shipment.id, ShipmentStatus.DELIVERED, agent_actor)

        delivery_agent.refresh_from_db()
        assert exc_info.value.details["entity"] == "shipment"
        assert exc_info.value.details["allowed"] == [
            ShipmentStatus.CANCELLED,
            ShipmentStatus.PICKED_UP,
        ]
        assert delivery_agent.earnings_cents == 0

    def test_cancel_in_transit(self, engine, shipment, agent_actor):
        _advance(
            engine, shipment, agent_actor, ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT
        )

        cancelled = engine.shipments.transition(
            shipment.id, ShipmentStatus.CANCELLED, agent_actor, notes="Address not found"
        )

        assert cancelled.status == ShipmentStatus.CANCELLED
        assert "Address not found" in cancelled.notes
        assert cancelled.is_terminal

    def test_stale_version_rejected(self, engine, shipment, agent_actor):
        stale_version = shipment.version
        _advance(engine, shipment, agent_actor, ShipmentStatus.PICKED_UP)

        with pytest.raises(StaleRecordError):
            engine.shipments.transition(
                shipment.id,
                ShipmentStatus.IN_TRANSIT,
                agent_actor,
                expected_version=stale_version,
            )

    def test_unknown_shipment(self, engine, agent_actor):
        with pytest.raises(NotFoundError):
            engine.shipments.transition(uuid.uuid4(), ShipmentStatus.PICKED_UP, agent_actor)
