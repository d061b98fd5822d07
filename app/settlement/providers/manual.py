"""
Provider for money moved outside the platform.

ManualSettlementProvider performs no network call. It returns a reference
derived from the idempotency key, so repeating a call for the same refund or
payout yields the same reference, and finance staff settle the money by hand
using that reference.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from settlement.providers.base import ReversalResult, TransferResult

if TYPE_CHECKING:
    from settlement.models import Payment, Payout


logger = logging.getLogger(__name__)


class ManualSettlementProvider:
    name = "manual"

    @staticmethod
    def _reference(prefix: str, idempotency_key: str) -> str:
        digest = hashlib.sha256(idempotency_key.encode()).hexdigest()[:16]
        return f"{prefix}_{digest}"

    def reverse_payment(
        self, payment: Payment, amount_cents: int, idempotency_key: str
    ) -> ReversalResult:
        reference = self._reference("mrv", idempotency_key)
        logger.info(
            "Manual payment reversal recorded",
            extra={
                "payment_id": str(payment.id),
                "amount_cents": amount_cents,
                "reference": reference,
            },
        )
        return ReversalResult(reference=reference, amount_cents=amount_cents)

    def send_payout(self, payout: Payout, idempotency_key: str) -> TransferResult:
        reference = self._reference("mtr", idempotency_key)
        logger.info(
            "Manual payout transfer recorded",
            extra={
                "payout_id": str(payout.id),
                "seller_id": payout.seller_id,
                "amount_cents": payout.total_amount_cents,
                "reference": reference,
            },
        )
        return TransferResult(reference=reference, amount_cents=payout.total_amount_cents)
