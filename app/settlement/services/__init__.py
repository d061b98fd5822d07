"""
Settlement components.

Components, leaves first:
    CommissionCalculator - platform/seller split
    PaymentLedger - Payment records, adjustments and audit trail
    OrderStateMachine / OrderIntake - Order status and order placement
    ShipmentStateMachine - Shipment status and agent commission
    RefundWorkflow - Refund records and provider reversals
    PayoutBatcher - Payout records and payment allocation

Components are built once, with their repositories, by
settlement.engine.get_engine().
"""

from settlement.services.commission import CommissionCalculator
from settlement.services.ledger import PaymentLedger
from settlement.services.orders import OrderIntake, OrderStateMachine
from settlement.services.payouts import PayoutBatcher
from settlement.services.refunds import RefundWorkflow
from settlement.services.shipments import ShipmentStateMachine

__all__ = [
    "CommissionCalculator",
    "OrderIntake",
    "OrderStateMachine",
    "PaymentLedger",
    "PayoutBatcher",
    "RefundWorkflow",
    "ShipmentStateMachine",
]
