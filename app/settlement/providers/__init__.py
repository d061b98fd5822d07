"""
Payment providers for refund reversals and seller payouts.

Usage:
    from settlement.providers import load_provider

    provider = load_provider(settings.SETTLEMENT_PAYMENT_PROVIDER)
    result = provider.send_payout(payout, idempotency_key=f"payout:{payout.id}")
"""

from settlement.providers.base import (
    PaymentProvider,
    ReversalResult,
    TransferResult,
    load_provider,
)
from settlement.providers.manual import ManualSettlementProvider

__all__ = [
    "ManualSettlementProvider",
    "PaymentProvider",
    "ReversalResult",
    "TransferResult",
    "load_provider",
]
