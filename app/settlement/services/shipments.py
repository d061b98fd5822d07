"""
Shipment state machine.

ShipmentStateMachine is the only writer of Shipment.status. A shipment is
created when its order ships; delivering it credits the delivery agent's
commission and delivers the parent order in the same transaction.

Locking:
    The order row is locked before the shipment row, the same order the
    order state machine uses, so a shipment update and an order update
    on the same order never deadlock.

Usage:
    from settlement.engine import get_engine

    shipments = get_engine().shipments
    shipments.transition(
        shipment_id,
        ShipmentStatus.DELIVERED,
        actor,
        proof={"signature": "..."},
    )
"""

from __future__ import annotations

import secrets
import string
from datetime import timedelta
from decimal import ROUND_FLOOR, Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService
from settlement.exceptions import InvalidTransitionError
from settlement.state_machines import SHIPMENT_TRANSITIONS, ShipmentStatus, allowed_targets

if TYPE_CHECKING:
    from typing import Any

    from settlement.models import Order, Shipment
    from settlement.repositories import (
        DeliveryAgentRepository,
        OrderRepository,
        ShipmentRepository,
    )
    from settlement.services.orders import OrderStateMachine
    from settlement.types import Actor


TRACKING_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


class ShipmentStateMachine(BaseService):
    """
    Owns Shipment.status and the delivery agent commission.

    Args:
        shipments: Shipment repository
        agents: Delivery agent repository
        orders: Order repository (for the order row lock)
        commission_rate: Share of the delivery fee credited to the agent
        default_delivery_fee_cents: Fee stamped on new shipments
        estimated_delivery_days: Days from creation to estimated delivery
        order_state_machine: Set by the engine after construction
    """

    def __init__(
        self,
        shipments: ShipmentRepository,
        agents: DeliveryAgentRepository,
        orders: OrderRepository,
        commission_rate: Decimal = Decimal("0.80"),
        default_delivery_fee_cents: int = 100_000,
        estimated_delivery_days: int = 3,
        order_state_machine: OrderStateMachine | None = None,
    ) -> None:
        self.shipments = shipments
        self.agents = agents
        self.orders = orders
        self.commission_rate = Decimal(commission_rate)
        self.default_delivery_fee_cents = default_delivery_fee_cents
        self.estimated_delivery_days = estimated_delivery_days
        self.order_state_machine = order_state_machine

    # =========================================================================
    # Creation & Assignment
    # =========================================================================

    @staticmethod
    def generate_tracking_number() -> str:
        """TRK<epoch ms><4 random characters>."""
        epoch_ms = int(timezone.now().timestamp() * 1000)
        suffix = "".join(secrets.choice(TRACKING_SUFFIX_ALPHABET) for _ in range(4))
        return f"TRK{epoch_ms}{suffix}"

    def agent_commission(self, delivery_fee_cents: int) -> int:
        return int(
            (Decimal(delivery_fee_cents) * self.commission_rate).to_integral_value(
                rounding=ROUND_FLOOR
            )
        )

    def create_for_order(self, order: Order) -> Shipment:
        """
        Create the order's shipment, or return the existing one.

        The least-loaded active delivery agent is assigned when one exists.
        """
        existing = self.shipments.for_order(order.id)
        if existing is not None:
            return existing

        agent = self.agents.least_loaded_active()
        try:
            with transaction.atomic():
                shipment = self.shipments.create(
                    order=order,
                    agent=agent,
                    tracking_number=self.generate_tracking_number(),
                    delivery_fee_cents=self.default_delivery_fee_cents,
                    estimated_delivery=timezone.now()
                    + timedelta(days=self.estimated_delivery_days),
                )
        except IntegrityError:
            existing = self.shipments.for_order(order.id)
            if existing is None:
                raise
            return existing

        self.get_logger().info(
            "Shipment created",
            extra={
                "shipment_id": str(shipment.id),
                "order_id": str(order.id),
                "tracking_number": shipment.tracking_number,
                "agent_id": str(agent.id) if agent else None,
            },
        )
        return shipment

    def assign_agent(self, shipment_id: Any, agent_id: Any, actor: Actor) -> Shipment:
        """
        (Re)assign a delivery agent while the shipment is still assigned.

        Raises:
            NotFoundError: No such shipment or agent
            ValidationError: Shipment already picked up, or agent inactive
        """
        with self.atomic():
            shipment = self.shipments.get_for_update(shipment_id)
            if shipment.status != ShipmentStatus.ASSIGNED:
                raise ValidationError(
                    "Only shipments that have not been picked up can be reassigned",
                    error_code="SHIPMENT_NOT_ASSIGNABLE",
                    details={
                        "shipment_id": str(shipment.id),
                        "status": shipment.status,
                    },
                )

            agent = self.agents.get(agent_id)
            if not agent.is_active:
                raise ValidationError(
                    "Delivery agent is not active",
                    error_code="AGENT_INACTIVE",
                    details={"agent_id": str(agent.id)},
                )

            previous_agent_id = shipment.agent_id
            shipment.agent = agent
            shipment.save()

        self.get_logger().info(
            "Delivery agent assigned",
            extra={
                "shipment_id": str(shipment.id),
                "agent_id": str(agent.id),
                "previous_agent_id": str(previous_agent_id) if previous_agent_id else None,
                "actor": actor.label,
            },
        )
        return shipment

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        shipment_id: Any,
        target: str,
        actor: Actor,
        location: dict[str, Any] | None = None,
        proof: dict[str, Any] | None = None,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Shipment:
        """
        Move a shipment to ``target``.

        Authorization is checked by the caller (see
        settlement.permissions.authorize_shipment_update).

        Raises:
            NotFoundError: No such shipment
            StaleRecordError: ``expected_version`` no longer matches
            InvalidTransitionError: ``target`` not reachable
        """
        order_id = self.shipments.get(shipment_id).order_id

        with self.atomic():
            self.orders.get_for_update(order_id)
            shipment = self.shipments.get_checked(shipment_id, expected_version)
            from_status = shipment.status

            if target not in allowed_targets(SHIPMENT_TRANSITIONS, from_status):
                raise InvalidTransitionError(
                    "shipment",
                    from_status=from_status,
                    to_status=target,
                    allowed=allowed_targets(SHIPMENT_TRANSITIONS, from_status),
                )

            if target == ShipmentStatus.PICKED_UP:
                shipment.pick_up()
            elif target == ShipmentStatus.IN_TRANSIT:
                shipment.start_transit()
            elif target == ShipmentStatus.DELIVERED:
                shipment.deliver(proof=proof)
            else:
                shipment.cancel(reason=notes)

            if notes and target != ShipmentStatus.CANCELLED:
                shipment.notes = f"{shipment.notes}\n{notes}".strip()

            if location is not None:
                shipment.current_location = location
                if shipment.agent_id is not None:
                    self.agents.update_location(shipment.agent_id, location)

            credited = 0
            if target == ShipmentStatus.DELIVERED and shipment.agent_id is not None:
                credited = self.agent_commission(shipment.delivery_fee_cents)
                self.agents.credit_earnings(shipment.agent_id, credited)
                shipment.agent_earnings_cents = credited

            shipment.save()

            if target == ShipmentStatus.DELIVERED:
                self.order_state_machine.deliver_from_shipment(order_id, actor)

        self.get_logger().info(
            "Shipment transitioned",
            extra={
                "shipment_id": str(shipment.id),
                "order_id": str(order_id),
                "from_status": from_status,
                "to_status": target,
                "agent_credit_cents": credited,
                "actor": actor.label,
            },
        )
        return shipment

    def cancel_for_order(
        self, order: Order, reason: str | None, actor: Actor
    ) -> Shipment | None:
        """
        Cancel the order's shipment if it is still open.

        Called by the order state machine, which already holds the order
        row lock.
        """
        shipment = self.shipments.for_order_for_update(order.id)
        if shipment is None or shipment.is_terminal:
            return shipment

        from_status = shipment.status
        shipment.cancel(reason=reason)
        shipment.save()

        self.get_logger().info(
            "Shipment cancelled with its order",
            extra={
                "shipment_id": str(shipment.id),
                "order_id": str(order.id),
                "from_status": from_status,
                "actor": actor.label,
            },
        )
        return shipment
