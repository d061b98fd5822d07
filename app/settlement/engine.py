"""
Settlement engine container.

SettlementEngine builds every component once, with its repositories and
collaborators, and wires the two state machines to each other. Views and
Celery tasks reach components through get_engine(); tests may build their
own SettlementEngine with a fake provider.

Usage:
    from settlement.engine import get_engine

    engine = get_engine()
    engine.orders.transition(order_id, OrderStatus.SHIPPED, actor)
    engine.payouts.request_payout(seller_id)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import TYPE_CHECKING

from django.conf import settings

from settlement.providers import load_provider
from settlement.repositories import (
    DeliveryAgentRepository,
    OrderRepository,
    PaymentRepository,
    PayoutRepository,
    ProductRepository,
    RefundRepository,
    RevenueShareSchemeRepository,
    ShipmentRepository,
)
from settlement.services import (
    CommissionCalculator,
    OrderIntake,
    OrderStateMachine,
    PaymentLedger,
    PayoutBatcher,
    RefundWorkflow,
    ShipmentStateMachine,
)

if TYPE_CHECKING:
    from typing import Any

    from settlement.providers import PaymentProvider


logger = logging.getLogger(__name__)


# =============================================================================
# Task Dispatchers
# =============================================================================
#
# Components call these after their transaction commits. Tasks are imported
# lazily because settlement.tasks imports this module.


def dispatch_refund_reversal(refund_id: Any) -> None:
    from settlement.tasks import execute_refund_reversal

    execute_refund_reversal.delay(str(refund_id))


def dispatch_order_notification(order_id: Any, status: str) -> None:
    from settlement.tasks import notify_order_status_changed

    notify_order_status_changed.delay(str(order_id), status)


class SettlementEngine:
    """
    The wired set of settlement components.

    Attributes:
        calculator: CommissionCalculator
        ledger: PaymentLedger
        intake: OrderIntake
        orders: OrderStateMachine
        shipments: ShipmentStateMachine
        refunds: RefundWorkflow
        payouts: PayoutBatcher
    """

    def __init__(
        self,
        provider: PaymentProvider,
        reversal_dispatcher=dispatch_refund_reversal,
        order_notifier=dispatch_order_notification,
    ) -> None:
        self.provider = provider

        order_repo = OrderRepository()
        payment_repo = PaymentRepository()

        self.calculator = CommissionCalculator(
            RevenueShareSchemeRepository(),
            fallback_platform_percentage=Decimal(
                str(settings.SETTLEMENT_FALLBACK_PLATFORM_PERCENTAGE)
            ),
            default_category=settings.SETTLEMENT_DEFAULT_SCHEME_CATEGORY,
            processing_fee_percentage=Decimal(
                str(settings.SETTLEMENT_PROCESSING_FEE_PERCENTAGE)
            ),
            minimum_processing_fee_cents=settings.SETTLEMENT_MINIMUM_PROCESSING_FEE_CENTS,
            maximum_processing_fee_cents=settings.SETTLEMENT_MAXIMUM_PROCESSING_FEE_CENTS,
        )
        self.ledger = PaymentLedger(
            payment_repo, order_repo, currency=settings.SETTLEMENT_CURRENCY
        )
        self.intake = OrderIntake(
            ProductRepository(),
            order_repo,
            self.calculator,
            self.ledger,
            expected_delivery_days=settings.ORDER_EXPECTED_DELIVERY_DAYS,
        )
        self.orders = OrderStateMachine(
            order_repo,
            payment_repo,
            self.ledger,
            notifier=order_notifier,
        )
        self.shipments = ShipmentStateMachine(
            ShipmentRepository(),
            DeliveryAgentRepository(),
            order_repo,
            commission_rate=Decimal(str(settings.DELIVERY_AGENT_COMMISSION_RATE)),
            default_delivery_fee_cents=settings.SHIPMENT_DEFAULT_DELIVERY_FEE_CENTS,
            estimated_delivery_days=settings.SHIPMENT_ESTIMATED_DELIVERY_DAYS,
        )
        self.orders.shipment_state_machine = self.shipments
        self.shipments.order_state_machine = self.orders

        self.refunds = RefundWorkflow(
            RefundRepository(),
            order_repo,
            payment_repo,
            self.ledger,
            provider,
            reversal_dispatcher=reversal_dispatcher,
        )
        self.payouts = PayoutBatcher(
            PayoutRepository(),
            payment_repo,
            self.ledger,
            provider,
            schedule_delay_hours=settings.PAYOUT_SCHEDULE_DELAY_HOURS,
            max_retries=settings.PAYOUT_MAX_RETRIES,
            currency=settings.SETTLEMENT_CURRENCY,
        )


@lru_cache(maxsize=1)
def get_engine() -> SettlementEngine:
    """Process-wide engine using the configured payment provider."""
    provider = load_provider(settings.SETTLEMENT_PAYMENT_PROVIDER)
    logger.info(
        "Settlement engine initialized",
        extra={"provider": getattr(provider, "name", type(provider).__name__)},
    )
    return SettlementEngine(provider)
