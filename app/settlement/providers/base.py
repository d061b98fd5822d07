"""
Payment provider port.

The settlement engine moves money out of the platform in two ways: reversing
part of a buyer's payment (refunds) and transferring a seller's earnings
(payouts). Both go through a PaymentProvider, selected by the dotted path in
the SETTLEMENT_PAYMENT_PROVIDER setting.

Providers raise settlement.exceptions.PaymentProviderError on failure, with
``is_retryable`` telling the Celery tasks whether to try again.

Every call carries an idempotency key derived from the refund or payout id,
so a retried call never moves money twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from settlement.models import Payment, Payout


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class ReversalResult:
    """
    Result of a payment reversal.

    Attributes:
        reference: Provider reversal id
        amount_cents: Amount returned to the buyer
        raw_response: Provider payload, for debugging
    """

    reference: str
    amount_cents: int
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """
    Result of a seller transfer.

    Attributes:
        reference: Provider transfer id
        amount_cents: Amount sent to the seller
        raw_response: Provider payload, for debugging
    """

    reference: str
    amount_cents: int
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Port
# =============================================================================


class PaymentProvider(Protocol):
    """Money movement operations the settlement engine depends on."""

    name: str

    def reverse_payment(
        self, payment: Payment, amount_cents: int, idempotency_key: str
    ) -> ReversalResult: ...

    def send_payout(self, payout: Payout, idempotency_key: str) -> TransferResult: ...


def load_provider(path: str) -> PaymentProvider:
    """Instantiate the provider class named by a dotted path."""
    provider_class = import_string(path)
    return provider_class()
