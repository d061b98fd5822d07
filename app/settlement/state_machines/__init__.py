"""
State machine enums and transition tables for settlement models.
"""

from settlement.state_machines.states import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    PAYOUT_TRANSITIONS,
    REFUND_TRANSITIONS,
    SHIPMENT_TRANSITIONS,
    ActorRole,
    OrderStatus,
    PaymentStatus,
    PayoutAction,
    PayoutStatus,
    RefundDecision,
    RefundStatus,
    ShipmentStatus,
    allowed_targets,
    is_terminal,
    sources_for,
)

__all__ = [
    "ORDER_TRANSITIONS",
    "PAYMENT_TRANSITIONS",
    "PAYOUT_TRANSITIONS",
    "REFUND_TRANSITIONS",
    "SHIPMENT_TRANSITIONS",
    "ActorRole",
    "OrderStatus",
    "PaymentStatus",
    "PayoutAction",
    "PayoutStatus",
    "RefundDecision",
    "RefundStatus",
    "ShipmentStatus",
    "allowed_targets",
    "is_terminal",
    "sources_for",
]
