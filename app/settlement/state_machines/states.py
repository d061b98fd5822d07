"""
State enums and transition tables for settlement models.

Every status field is a django-fsm FSMField whose @transition sources are
derived from the tables below, so the model methods, the service layer and
the API all answer "can X move to Y" from one place.

State Machines Overview:

Order:
    pending → confirmed → shipped → delivered
    pending/confirmed/shipped → cancelled

Payment:
    pending → completed → refunded
    pending → cancelled

Shipment:
    assigned → picked_up → in_transit → delivered
    assigned/picked_up/in_transit → cancelled

Refund:
    pending → approved → completed
    pending → rejected

Payout:
    scheduled → processing → completed
    scheduled/processing → failed
"""

from __future__ import annotations

from collections.abc import Mapping

from django.db import models


class OrderStatus(models.TextChoices):
    """
    States for the Order lifecycle.

    Terminal states: DELIVERED, CANCELLED
    """

    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    """
    States for the Payment lifecycle.

    A partially refunded payment stays COMPLETED; the refunded portion is
    recorded as PaymentAdjustment rows. REFUNDED means the whole amount
    went back to the buyer.
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


class ShipmentStatus(models.TextChoices):
    """
    States for the Shipment lifecycle.

    Terminal states: DELIVERED, CANCELLED
    """

    ASSIGNED = "assigned", "Assigned"
    PICKED_UP = "picked_up", "Picked Up"
    IN_TRANSIT = "in_transit", "In Transit"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class RefundStatus(models.TextChoices):
    """
    States for the Refund lifecycle.

    APPROVED means the ledger adjustment is applied and the provider
    reversal is in flight; COMPLETED means the provider confirmed it.
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    COMPLETED = "completed", "Completed"


class PayoutStatus(models.TextChoices):
    """
    States for the Payout lifecycle.

    SCHEDULED, PROCESSING and COMPLETED payouts count against the seller's
    balance. FAILED payouts release their payments.
    """

    SCHEDULED = "scheduled", "Scheduled"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class RefundDecision(models.TextChoices):
    """Admin decision on a pending refund."""

    APPROVE = "approve", "Approve"
    REJECT = "reject", "Reject"


class PayoutAction(models.TextChoices):
    """Admin action applied to a batch of payouts."""

    APPROVE = "approve", "Approve"
    REJECT = "reject", "Reject"


class ActorRole(models.TextChoices):
    """Who is performing an action, for authorization and audit."""

    BUYER = "buyer", "Buyer"
    SELLER = "seller", "Seller"
    ADMIN = "admin", "Admin"
    AGENT = "agent", "Delivery Agent"
    SYSTEM = "system", "System"


# =============================================================================
# Transition Tables
# =============================================================================

ORDER_TRANSITIONS: Mapping[str, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: Mapping[str, frozenset[str]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.CANCELLED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

SHIPMENT_TRANSITIONS: Mapping[str, frozenset[str]] = {
    ShipmentStatus.ASSIGNED: frozenset(
        {ShipmentStatus.PICKED_UP, ShipmentStatus.CANCELLED}
    ),
    ShipmentStatus.PICKED_UP: frozenset(
        {ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED}
    ),
    ShipmentStatus.IN_TRANSIT: frozenset(
        {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}
    ),
    ShipmentStatus.DELIVERED: frozenset(),
    ShipmentStatus.CANCELLED: frozenset(),
}

REFUND_TRANSITIONS: Mapping[str, frozenset[str]] = {
    RefundStatus.PENDING: frozenset({RefundStatus.APPROVED, RefundStatus.REJECTED}),
    RefundStatus.APPROVED: frozenset({RefundStatus.COMPLETED}),
    RefundStatus.REJECTED: frozenset(),
    RefundStatus.COMPLETED: frozenset(),
}

PAYOUT_TRANSITIONS: Mapping[str, frozenset[str]] = {
    PayoutStatus.SCHEDULED: frozenset({PayoutStatus.PROCESSING, PayoutStatus.FAILED}),
    PayoutStatus.PROCESSING: frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED}),
    PayoutStatus.COMPLETED: frozenset(),
    PayoutStatus.FAILED: frozenset(),
}


def sources_for(table: Mapping[str, frozenset[str]], target: str) -> list[str]:
    """
    States from which ``target`` is reachable, for @transition(source=...).

    Example:
        @transition(field=status, source=sources_for(ORDER_TRANSITIONS, "cancelled"),
                    target=OrderStatus.CANCELLED)
    """
    return sorted(str(source) for source, targets in table.items() if target in targets)


def allowed_targets(table: Mapping[str, frozenset[str]], current: str) -> frozenset[str]:
    """States reachable from ``current`` in one step."""
    return table.get(current, frozenset())


def is_terminal(table: Mapping[str, frozenset[str]], current: str) -> bool:
    """True when no transition leaves ``current``."""
    return not allowed_targets(table, current)
