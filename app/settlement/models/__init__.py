"""
Settlement domain models.

This module contains all settlement models:
- Product: Listing reference used for order intake
- RevenueShareScheme: Platform/seller split per product category
- Order: A buyer's purchase and its lifecycle
- Payment: Money collected for an order, with its locked split
- PaymentAdjustment: Refund amounts applied to a completed payment
- PaymentAuditEntry: Append-only trail of payment mutations
- Shipment: Delivery of an order
- DeliveryAgent: Courier with a running earnings counter
- Refund: Buyer refund request and decision
- Payout: Money sent to a seller
- PayoutItem: Payments settled by a payout
"""

from settlement.models.order import Order
from settlement.models.payment import (
    Payment,
    PaymentAdjustment,
    PaymentAuditAction,
    PaymentAuditEntry,
)
from settlement.models.payout import Payout, PayoutItem
from settlement.models.product import Product
from settlement.models.refund import Refund
from settlement.models.scheme import RevenueShareScheme
from settlement.models.shipment import DeliveryAgent, Shipment

__all__ = [
    "DeliveryAgent",
    "Order",
    "Payment",
    "PaymentAdjustment",
    "PaymentAuditAction",
    "PaymentAuditEntry",
    "Payout",
    "PayoutItem",
    "Product",
    "Refund",
    "RevenueShareScheme",
    "Shipment",
]
