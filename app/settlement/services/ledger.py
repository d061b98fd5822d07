"""
Payment ledger: the only writer of Payment records.

PaymentLedger creates the pending payment for an order, moves it through
its states and records refund adjustments. Amounts fixed at creation
(amount, platform cut, seller net) are never rewritten; refunds are
recorded as PaymentAdjustment rows and balances are derived from them.

Every mutation:
- Runs inside a transaction holding a row lock on the payment
- Appends a PaymentAuditEntry in the same transaction
- Mirrors the payment status onto Order.payment_status

Usage:
    from settlement.engine import get_engine

    ledger = get_engine().ledger
    payment = ledger.create_pending(order, split, actor=Actor.system("intake"))
    ledger.mark_completed(payment.id, actor)
    ledger.apply_refund(payment.id, 2_500, actor, refund=refund)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService
from settlement.exceptions import (
    DuplicatePaymentError,
    InvalidPaymentStateError,
    PaymentAllocatedError,
    RefundExceedsPaymentError,
)
from settlement.models import PaymentAuditAction
from settlement.state_machines import PaymentStatus

if TYPE_CHECKING:
    from typing import Any

    from settlement.models import Order, Payment, Refund
    from settlement.repositories import OrderRepository, PaymentRepository
    from settlement.types import Actor, Split


class PaymentLedger(BaseService):
    """
    Owns Payment status, refund adjustments and the payment audit trail.

    Args:
        payments: Payment repository
        orders: Order repository, for the payment status mirror
        currency: Currency stamped on new payments
    """

    def __init__(
        self,
        payments: PaymentRepository,
        orders: OrderRepository,
        currency: str = "ngn",
    ) -> None:
        self.payments = payments
        self.orders = orders
        self.currency = currency

    # =========================================================================
    # Creation
    # =========================================================================

    @staticmethod
    def build_reference(order_id: Any) -> str:
        """Payment reference in the form ORDER_<order id>_<epoch ms>."""
        epoch_ms = int(timezone.now().timestamp() * 1000)
        return f"ORDER_{order_id}_{epoch_ms}"

    def create_pending(
        self,
        order: Order,
        split: Split,
        actor: Actor,
        method: str = "",
        description: str = "",
    ) -> Payment:
        """
        Create the pending payment carrying the order's locked-in split.

        Raises:
            DuplicatePaymentError: The order already has a payment that is
                not cancelled
        """
        with self.atomic():
            existing = self.payments.live_for_order(order.id)
            if existing is not None:
                raise DuplicatePaymentError(
                    f"Order {order.id} already has payment {existing.reference}",
                    details={
                        "order_id": str(order.id),
                        "payment_id": str(existing.id),
                        "status": existing.status,
                    },
                )

            try:
                # Savepoint so a lost race leaves the outer transaction usable
                with transaction.atomic():
                    payment = self.payments.create(
                        order=order,
                        buyer_id=order.buyer_id,
                        seller_id=order.seller_id,
                        scheme_id=split.scheme_id,
                        reference=self.build_reference(order.id),
                        amount_cents=split.amount_cents,
                        platform_cut_cents=split.platform_cut_cents,
                        seller_net_cents=split.seller_net_cents,
                        processing_fee_cents=split.processing_fee_cents,
                        platform_percentage=split.platform_percentage,
                        currency=order.currency or self.currency,
                        method=method,
                        description=description,
                    )
            except IntegrityError:
                raise DuplicatePaymentError(
                    f"Order {order.id} already has a live payment",
                    details={"order_id": str(order.id)},
                )

            self.payments.record_audit(
                payment.id,
                PaymentAuditAction.CREATED,
                actor,
                to_status=PaymentStatus.PENDING,
                amount_cents=payment.amount_cents,
                details={
                    "platform_cut_cents": payment.platform_cut_cents,
                    "seller_net_cents": payment.seller_net_cents,
                    "scheme_id": str(split.scheme_id) if split.scheme_id else None,
                },
            )
            self.orders.set_payment_status(order.id, PaymentStatus.PENDING)

        self.get_logger().info(
            "Pending payment created",
            extra={
                "payment_id": str(payment.id),
                "order_id": str(order.id),
                "reference": payment.reference,
                "amount_cents": payment.amount_cents,
                "platform_cut_cents": payment.platform_cut_cents,
            },
        )
        return payment

    # =========================================================================
    # Status Changes
    # =========================================================================

    def mark_completed(self, payment_id: Any, actor: Actor) -> Payment:
        """
        Pending -> completed; stamps paid_at.

        Raises:
            InvalidPaymentStateError: Payment is not pending
        """
        with self.atomic():
            payment = self.payments.get_for_update(payment_id)
            if payment.status != PaymentStatus.PENDING:
                raise InvalidPaymentStateError(payment.id, payment.status, "complete")

            payment.complete()
            payment.save()
            self._after_status_change(
                payment, PaymentAuditAction.COMPLETED, PaymentStatus.PENDING, actor
            )

        self.get_logger().info(
            "Payment completed",
            extra={"payment_id": str(payment.id), "actor": actor.label},
        )
        return payment

    def mark_cancelled(self, payment_id: Any, reason: str, actor: Actor) -> Payment:
        """
        Pending -> cancelled.

        Raises:
            InvalidPaymentStateError: Payment is not pending
        """
        with self.atomic():
            payment = self.payments.get_for_update(payment_id)
            if payment.status != PaymentStatus.PENDING:
                raise InvalidPaymentStateError(payment.id, payment.status, "cancel")

            payment.cancel()
            payment.save()
            self._after_status_change(
                payment,
                PaymentAuditAction.CANCELLED,
                PaymentStatus.PENDING,
                actor,
                details={"reason": reason or ""},
            )

        self.get_logger().info(
            "Payment cancelled",
            extra={
                "payment_id": str(payment.id),
                "reason": reason,
                "actor": actor.label,
            },
        )
        return payment

    # =========================================================================
    # Refunds
    # =========================================================================

    def apply_refund(
        self,
        payment_id: Any,
        refund_amount_cents: int,
        actor: Actor,
        refund: Refund | None = None,
    ) -> Payment:
        """
        Record a refund against a completed payment.

        A refund bringing the cumulative refunded amount to the full payment
        amount moves the payment to refunded; smaller refunds only add an
        adjustment and the payment stays completed.

        Raises:
            InvalidPaymentStateError: Payment is not completed
            PaymentAllocatedError: Refund would cut into what payouts claimed
            RefundExceedsPaymentError: Amount above what remains refundable
        """
        with self.atomic():
            payment = self.payments.get_for_update(payment_id)
            if payment.status != PaymentStatus.COMPLETED:
                raise InvalidPaymentStateError(payment.id, payment.status, "refund")

            already_refunded = self.payments.refunded_total(payment.id)
            refundable = payment.amount_cents - already_refunded
            if refund_amount_cents <= 0 or refund_amount_cents > refundable:
                raise RefundExceedsPaymentError(refund_amount_cents, refundable)

            if payment.allocated_cents:
                settleable_after = payment.seller_net_cents - min(
                    already_refunded + refund_amount_cents, payment.seller_net_cents
                )
                if settleable_after < payment.allocated_cents:
                    raise PaymentAllocatedError(
                        f"Payment {payment.id} is claimed by payouts for "
                        f"{payment.allocated_cents}",
                        details={
                            "payment_id": str(payment.id),
                            "allocated_cents": payment.allocated_cents,
                            "maximum_cents": max(
                                payment.seller_net_cents
                                - payment.allocated_cents
                                - already_refunded,
                                0,
                            ),
                        },
                    )

            self.payments.add_adjustment(payment, refund_amount_cents, refund=refund)
            self.payments.record_audit(
                payment.id,
                PaymentAuditAction.REFUND_APPLIED,
                actor,
                from_status=payment.status,
                to_status=payment.status,
                amount_cents=refund_amount_cents,
                details={
                    "refund_id": str(refund.id) if refund else None,
                    "refunded_total_cents": already_refunded + refund_amount_cents,
                },
            )

            if already_refunded + refund_amount_cents == payment.amount_cents:
                payment.mark_refunded()
                payment.save()
                self._after_status_change(
                    payment,
                    PaymentAuditAction.REFUNDED,
                    PaymentStatus.COMPLETED,
                    actor,
                )

        self.get_logger().info(
            "Refund applied to payment",
            extra={
                "payment_id": str(payment.id),
                "amount_cents": refund_amount_cents,
                "status": payment.status,
                "actor": actor.label,
            },
        )
        return payment

    # =========================================================================
    # Derived Amounts
    # =========================================================================

    def refunded_amount(self, payment: Payment) -> int:
        return self.payments.refunded_total(payment.id)

    def settleable_amount(self, payment: Payment, refunded_cents: int | None = None) -> int:
        """
        Seller net still owed for a payment after refunds.

        Refunds come out of the seller's share first and never push it
        below zero.
        """
        if refunded_cents is None:
            refunded_cents = self.refunded_amount(payment)
        return payment.seller_net_cents - min(refunded_cents, payment.seller_net_cents)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _after_status_change(
        self,
        payment: Payment,
        action: str,
        from_status: str,
        actor: Actor,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.payments.record_audit(
            payment.id,
            action,
            actor,
            from_status=from_status,
            to_status=payment.status,
            amount_cents=payment.amount_cents,
            details=details,
        )
        self.orders.set_payment_status(payment.order_id, payment.status)
