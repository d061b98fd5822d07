"""
Payout batching: turning seller balances into transfers.

PayoutBatcher owns Payout records and the allocation of payments to them.

Balance:
    available = sum of settleable net over the seller's completed payments
                (seller net minus refund adjustments, never below zero)
              - total of the seller's scheduled, processing and completed
                payouts

Allocation:
    A payout claims its amount from the seller's payments, oldest first,
    taking each payment whole except the last, which may be split. What
    live payouts claim from a payment is kept in Payment.allocated_cents
    and never exceeds the payment's settleable net, so no earnings are
    paid out twice. A failed payout gives its claims back.

Processing follows a three-phase pattern so the provider call never runs
inside a transaction that could roll back after money moved:
    1. scheduled -> processing, committed
    2. provider transfer, outside any transaction
    3. processing -> completed, committed

Usage:
    from settlement.engine import get_engine

    payouts = get_engine().payouts
    payout = payouts.request_payout(seller.id, actor=seller_actor)
    payouts.process(payout.id)
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import BaseApplicationError, ValidationError
from core.services import BaseService
from settlement.exceptions import (
    InsufficientBalanceError,
    InvalidTransitionError,
    LedgerInconsistencyError,
    PaymentProviderError,
)
from settlement.locks import payout_transfer_lock, seller_payout_lock
from settlement.models import PaymentAuditAction
from settlement.state_machines import (
    PAYOUT_TRANSITIONS,
    PayoutAction,
    PayoutStatus,
    allowed_targets,
)
from settlement.types import Actor, BalanceSnapshot, PayoutBatchItemResult

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from typing import Any

    from settlement.locks import DistributedLock
    from settlement.models import Payment, Payout
    from settlement.providers import PaymentProvider
    from settlement.repositories import PaymentRepository, PayoutRepository
    from settlement.services.ledger import PaymentLedger


class PayoutBatcher(BaseService):
    """
    Owns Payout records and payment allocation.

    Args:
        payouts: Payout repository
        payments: Payment repository
        ledger: Payment ledger, for settleable amounts
        provider: Payment provider performing transfers
        schedule_delay_hours: Delay between request and earliest transfer
        max_retries: Provider attempts before a payout fails
        currency: Currency stamped on new payouts
        seller_lock: Factory for the per-seller allocation lock
        transfer_lock: Factory for the per-payout transfer lock
    """

    def __init__(
        self,
        payouts: PayoutRepository,
        payments: PaymentRepository,
        ledger: PaymentLedger,
        provider: PaymentProvider,
        schedule_delay_hours: int = 24,
        max_retries: int = 3,
        currency: str = "ngn",
        seller_lock: Callable[[Any], DistributedLock] = seller_payout_lock,
        transfer_lock: Callable[[Any], DistributedLock] = payout_transfer_lock,
    ) -> None:
        self.payouts = payouts
        self.payments = payments
        self.ledger = ledger
        self.provider = provider
        self.schedule_delay_hours = schedule_delay_hours
        self.max_retries = max_retries
        self.currency = currency
        self.seller_lock = seller_lock
        self.transfer_lock = transfer_lock

    # =========================================================================
    # Balance
    # =========================================================================

    def balance_snapshot(self, seller_id: Any) -> BalanceSnapshot:
        completed = self.payments.completed_for_seller(seller_id)
        refunded = self.payments.refunded_totals(p.id for p in completed)
        earned = sum(
            self.ledger.settleable_amount(p, refunded_cents=refunded[p.id])
            for p in completed
        )
        return BalanceSnapshot(
            seller_id=seller_id,
            earned_cents=earned,
            committed_cents=self.payouts.committed_total(seller_id),
            processing_fees_cents=sum(p.processing_fee_cents for p in completed),
        )

    def compute_available_balance(self, seller_id: Any) -> int:
        """
        Amount the seller may still be paid.

        Raises:
            LedgerInconsistencyError: Committed payouts exceed earnings
        """
        snapshot = self.balance_snapshot(seller_id)
        if snapshot.available_cents < 0:
            self.get_logger().critical(
                "Negative seller balance",
                extra={
                    "seller_id": str(seller_id),
                    "earned_cents": snapshot.earned_cents,
                    "committed_cents": snapshot.committed_cents,
                },
            )
            raise LedgerInconsistencyError(
                f"Seller {seller_id} has a negative balance",
                details={
                    "seller_id": str(seller_id),
                    "earned_cents": snapshot.earned_cents,
                    "committed_cents": snapshot.committed_cents,
                },
            )
        return snapshot.available_cents

    # =========================================================================
    # Request
    # =========================================================================

    def request_payout(
        self,
        seller_id: Any,
        amount_cents: int | None = None,
        actor: Actor | None = None,
    ) -> Payout:
        """
        Schedule a payout of ``amount_cents`` (default: the whole balance).

        Runs under the seller's distributed lock, with the seller's free
        completed payments row-locked while the balance is re-read. Any
        amount up to the available balance can be allocated.

        Raises:
            ValidationError: Amount is not positive
            InsufficientBalanceError: Amount above the available balance
            LedgerInconsistencyError: Free payments do not match the balance
            LockAcquisitionError: Another allocation for the seller is running
        """
        actor = actor or Actor.system("payout-request")
        if amount_cents is not None and amount_cents <= 0:
            raise ValidationError(
                "Payout amount must be positive",
                details={"amount_cents": amount_cents},
            )

        with self.seller_lock(seller_id):
            with self.atomic():
                candidates = self._free_amounts(
                    seller_id, self.payments.lock_allocatable_completed(seller_id)
                )

                available = self.compute_available_balance(seller_id)
                free_total = sum(amount for _, amount in candidates)
                if free_total != available:
                    self.get_logger().critical(
                        "Unallocated payments do not match seller balance",
                        extra={
                            "seller_id": str(seller_id),
                            "free_total_cents": free_total,
                            "available_cents": available,
                        },
                    )
                    raise LedgerInconsistencyError(
                        f"Unallocated payments of seller {seller_id} do not match the balance",
                        details={
                            "seller_id": str(seller_id),
                            "free_total_cents": free_total,
                            "available_cents": available,
                        },
                    )

                requested = available if amount_cents is None else amount_cents
                if requested <= 0 or requested > available:
                    raise InsufficientBalanceError(seller_id, requested, available)

                chosen = self._allocate_oldest_first(candidates, requested)

                payout = self.payouts.create(
                    seller_id=seller_id,
                    total_amount_cents=requested,
                    currency=self.currency,
                    provider=self.provider.name,
                    scheduled_at=timezone.now()
                    + timedelta(hours=self.schedule_delay_hours),
                    max_retries=self.max_retries,
                )
                self.payouts.add_items(payout, chosen)

                if self.payments.allocate(chosen) != len(chosen):
                    raise LedgerInconsistencyError(
                        "Payment over-allocated under the seller lock",
                        details={"seller_id": str(seller_id), "payout_id": str(payout.id)},
                    )
                self.payments.record_audit_many(
                    [payment_id for payment_id, _ in chosen],
                    PaymentAuditAction.ALLOCATED,
                    actor,
                    details={"payout_id": str(payout.id)},
                )

        self.get_logger().info(
            "Payout scheduled",
            extra={
                "payout_id": str(payout.id),
                "seller_id": str(seller_id),
                "amount_cents": requested,
                "payment_count": len(chosen),
                "scheduled_at": payout.scheduled_at.isoformat(),
            },
        )
        return payout

    def _free_amounts(
        self, seller_id: Any, payments: Iterable[Payment]
    ) -> list[tuple[Any, int]]:
        """
        Unclaimed settleable net per payment, oldest first.

        Raises:
            LedgerInconsistencyError: A payment is allocated beyond its
                settleable net
        """
        payments = list(payments)
        refunded = self.payments.refunded_totals(p.id for p in payments)
        free = []
        for payment in payments:
            settleable = self.ledger.settleable_amount(
                payment, refunded_cents=refunded[payment.id]
            )
            unclaimed = settleable - payment.allocated_cents
            if unclaimed < 0:
                raise LedgerInconsistencyError(
                    f"Payment {payment.id} is allocated beyond its settleable net",
                    details={
                        "seller_id": str(seller_id),
                        "payment_id": str(payment.id),
                        "settleable_cents": settleable,
                        "allocated_cents": payment.allocated_cents,
                    },
                )
            if unclaimed:
                free.append((payment.id, unclaimed))
        return free

    @staticmethod
    def _allocate_oldest_first(
        candidates: Iterable[tuple[Any, int]], amount_cents: int
    ) -> list[tuple[Any, int]]:
        """
        Claim ``amount_cents`` from the oldest payments first.

        Every payment is taken whole except the last, which gives only what
        is still needed.
        """
        chosen = []
        remaining = amount_cents
        for payment_id, unclaimed in candidates:
            if remaining == 0:
                break
            take = min(unclaimed, remaining)
            chosen.append((payment_id, take))
            remaining -= take
        return chosen

    # =========================================================================
    # Processing
    # =========================================================================

    def process(self, payout_id: Any, actor: Actor | None = None) -> Payout:
        """
        Send a payout through the provider.

        Completed and failed payouts are returned unchanged. A processing
        payout is retried (its earlier attempt failed).

        Raises:
            NotFoundError: No such payout
            LockAcquisitionError: Another worker is sending this payout
            PaymentProviderError: Transient failure with retries remaining;
                the payout stays processing
        """
        actor = actor or Actor.system("payout-processor")
        with self.transfer_lock(payout_id):
            return self._process_locked(payout_id, actor)

    def _process_locked(self, payout_id: Any, actor: Actor) -> Payout:
        # Phase 1: claim
        with self.atomic():
            payout = self.payouts.get_for_update(payout_id)
            if payout.is_finished:
                self.get_logger().info(
                    "Payout already finished, nothing to do",
                    extra={"payout_id": str(payout.id), "status": payout.status},
                )
                return payout
            if payout.status == PayoutStatus.SCHEDULED:
                payout.start_processing()
                if actor.user_id is not None:
                    payout.processed_by_id = actor.user_id
                payout.save()

        # Phase 2: provider call, outside any transaction
        try:
            result = self.provider.send_payout(
                payout, idempotency_key=f"payout:{payout.id}"
            )
        except PaymentProviderError as exc:
            return self._record_failure(payout_id, exc, actor)

        # Phase 3: confirm
        with self.atomic():
            payout = self.payouts.get_for_update(payout_id)
            if payout.status == PayoutStatus.PROCESSING:
                payout.complete(provider_reference=result.reference)
                payout.save()

        self.get_logger().info(
            "Payout completed",
            extra={
                "payout_id": str(payout.id),
                "seller_id": str(payout.seller_id),
                "amount_cents": payout.total_amount_cents,
                "provider_reference": result.reference,
            },
        )
        return payout

    def _record_failure(
        self, payout_id: Any, exc: PaymentProviderError, actor: Actor
    ) -> Payout:
        with self.atomic():
            payout = self.payouts.get_for_update(payout_id)
            payout.retry_count += 1
            payout.failure_reason = exc.message
            give_up = payout.retries_exhausted or not exc.is_retryable
            if give_up:
                payout.fail(reason=exc.message)
                payout.save()
                self._release(payout, actor)
            else:
                payout.save()

        if give_up:
            self.get_logger().error(
                "Payout failed, payments released",
                extra={
                    "payout_id": str(payout.id),
                    "retry_count": payout.retry_count,
                    "is_retryable": exc.is_retryable,
                    "error": exc.message,
                },
            )
            return payout

        self.get_logger().warning(
            "Payout transfer failed, will retry",
            extra={
                "payout_id": str(payout.id),
                "retry_count": payout.retry_count,
                "max_retries": payout.max_retries,
                "error": exc.message,
            },
        )
        raise exc

    # =========================================================================
    # Rejection & Batches
    # =========================================================================

    def reject(self, payout_id: Any, reason: str, admin: Actor) -> Payout:
        """
        Admin rejects a scheduled payout; its payments are released.

        Raises:
            InvalidTransitionError: Payout is not scheduled
        """
        with self.atomic():
            payout = self.payouts.get_for_update(payout_id)
            if payout.status != PayoutStatus.SCHEDULED:
                raise InvalidTransitionError(
                    "payout",
                    from_status=payout.status,
                    to_status=PayoutStatus.FAILED,
                    allowed=allowed_targets(PAYOUT_TRANSITIONS, payout.status),
                )
            payout.fail(reason=reason or "Rejected by admin")
            payout.processed_by_id = admin.user_id
            payout.save()
            self._release(payout, admin)

        self.get_logger().info(
            "Payout rejected",
            extra={
                "payout_id": str(payout.id),
                "reason": reason,
                "actor": admin.label,
            },
        )
        return payout

    def process_batch(
        self,
        payout_ids: Iterable[Any],
        action: str,
        admin: Actor,
        reason: str = "",
    ) -> list[PayoutBatchItemResult]:
        """
        Apply ``action`` to each payout independently.

        A failure on one payout is reported in its result and never stops
        the others.
        """
        results = []
        for payout_id in payout_ids:
            try:
                if action == PayoutAction.APPROVE:
                    payout = self.process(payout_id, admin)
                else:
                    payout = self.reject(payout_id, reason, admin)
            except LedgerInconsistencyError as exc:
                self.get_logger().critical(
                    "Ledger inconsistency during payout batch",
                    extra={"payout_id": str(payout_id), "error": exc.message},
                )
                results.append(self._failed_item(payout_id, exc))
            except BaseApplicationError as exc:
                self.get_logger().log(
                    exc.log_level,
                    "Payout batch item failed",
                    extra={
                        "payout_id": str(payout_id),
                        "action": action,
                        "error_code": exc.error_code,
                    },
                )
                results.append(self._failed_item(payout_id, exc))
            else:
                results.append(
                    PayoutBatchItemResult(
                        payout_id=payout_id, success=True, status=payout.status
                    )
                )

        self.get_logger().info(
            "Payout batch processed",
            extra={
                "action": action,
                "total": len(results),
                "succeeded": sum(1 for r in results if r.success),
                "actor": admin.label,
            },
        )
        return results

    def _failed_item(
        self, payout_id: Any, exc: BaseApplicationError
    ) -> PayoutBatchItemResult:
        payout = self.payouts.find(payout_id)
        return PayoutBatchItemResult(
            payout_id=payout_id,
            success=False,
            status=payout.status if payout is not None else None,
            error=exc.message,
            error_code=exc.error_code,
            details=exc.details,
        )

    def _release(self, payout: Payout, actor: Actor) -> None:
        payment_ids = self.payments.release(payout.id)
        self.payments.record_audit_many(
            payment_ids,
            PaymentAuditAction.RELEASED,
            actor,
            details={"payout_id": str(payout.id)},
        )
