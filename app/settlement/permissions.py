"""
Authorization for settlement operations.

Who may do what:

    Order transitions:
        seller, admin  - any transition
        buyer          - cancellation only
    Order detail:       buyer, seller, admin
    Refund request:     buyer of the order
    Shipment updates:   assigned delivery agent, admin
    Admin endpoints:    staff users (IsPlatformAdmin)

Each authorize_* function returns the Actor the engine should record, or
raises core.exceptions.ForbiddenError.

Usage:
    actor = authorize_order_transition(order, request.user, target)
    engine.orders.transition(order.id, target, actor)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from core.exceptions import ForbiddenError
from settlement.state_machines import ActorRole, OrderStatus
from settlement.types import Actor

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView

    from settlement.models import Order, Shipment


class IsPlatformAdmin(permissions.BasePermission):
    """Allows access only to staff users."""

    message = "Only platform administrators can perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and user.is_staff)


def order_actor(order: Order, user) -> Actor | None:
    """The user's role on an order, admin taking precedence."""
    if user.is_staff:
        return Actor.admin(user.pk)
    if user.pk == order.seller_id:
        return Actor(role=ActorRole.SELLER, user_id=user.pk)
    if user.pk == order.buyer_id:
        return Actor(role=ActorRole.BUYER, user_id=user.pk)
    return None


def authorize_order_view(order: Order, user) -> Actor:
    actor = order_actor(order, user)
    if actor is None:
        raise ForbiddenError(
            "You are not a party to this order",
            details={"order_id": str(order.id)},
        )
    return actor


def authorize_order_transition(order: Order, user, target: str) -> Actor:
    """
    Raises:
        ForbiddenError: Not a party to the order, or a buyer asking for
            anything but cancellation
    """
    actor = authorize_order_view(order, user)
    if actor.role == ActorRole.BUYER and target != OrderStatus.CANCELLED:
        raise ForbiddenError(
            "Buyers can only cancel orders",
            details={"order_id": str(order.id), "to": str(target)},
        )
    return actor


def authorize_refund_request(order: Order, user) -> Actor:
    if user.pk != order.buyer_id:
        raise ForbiddenError(
            "Only the buyer can request a refund",
            details={"order_id": str(order.id)},
        )
    return Actor(role=ActorRole.BUYER, user_id=user.pk)


def authorize_shipment_update(shipment: Shipment, user) -> Actor:
    """
    Raises:
        ForbiddenError: User is neither an admin nor the assigned agent
    """
    if user.is_staff:
        return Actor.admin(user.pk)
    if shipment.agent_id is not None and shipment.agent.user_id == user.pk:
        return Actor(role=ActorRole.AGENT, user_id=user.pk)
    raise ForbiddenError(
        "Only the assigned delivery agent can update this shipment",
        details={"shipment_id": str(shipment.id)},
    )
