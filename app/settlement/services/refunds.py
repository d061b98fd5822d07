"""
Refund workflow for delivered orders.

Flow:
    1. Buyer requests a refund (pending)
    2. Admin approves: the ledger adjustment is applied in the same
       transaction, and the provider reversal is dispatched after commit
       (approved). Or admin rejects: nothing changes in the ledger
       (rejected).
    3. Provider confirms the reversal (completed)

The reversal runs in a Celery task with retries; until the provider
confirms, the refund stays approved and the failure count and last error
are recorded on it. The buyer may withdraw a refund while it is pending.

Usage:
    from settlement.engine import get_engine

    refunds = get_engine().refunds
    refund = refunds.request(order_id, buyer_actor, RefundRequestParams(reason="Damaged"))
    refunds.decide(refund.id, RefundDecision.APPROVE, admin_actor)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.exceptions import ForbiddenError
from core.services import BaseService
from settlement.exceptions import (
    IneligibleOrderError,
    InvalidTransitionError,
    PaymentProviderError,
    RefundAlreadyExistsError,
    RefundExceedsPaymentError,
)
from settlement.state_machines import (
    OrderStatus,
    PaymentStatus,
    RefundDecision,
    RefundStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from settlement.models import Payment, Refund
    from settlement.providers import PaymentProvider
    from settlement.repositories import (
        OrderRepository,
        PaymentRepository,
        RefundRepository,
    )
    from settlement.services.ledger import PaymentLedger
    from settlement.types import Actor, RefundRequestParams

    ReversalDispatcher = Callable[[Any], None]


class RefundWorkflow(BaseService):
    """
    Owns Refund records.

    Args:
        refunds: Refund repository
        orders: Order repository
        payments: Payment repository (reads only; writes go through ledger)
        ledger: Payment ledger, applies approved refunds
        provider: Payment provider performing reversals
        reversal_dispatcher: Called after commit with the approved refund id
    """

    def __init__(
        self,
        refunds: RefundRepository,
        orders: OrderRepository,
        payments: PaymentRepository,
        ledger: PaymentLedger,
        provider: PaymentProvider,
        reversal_dispatcher: ReversalDispatcher | None = None,
    ) -> None:
        self.refunds = refunds
        self.orders = orders
        self.payments = payments
        self.ledger = ledger
        self.provider = provider
        self.reversal_dispatcher = reversal_dispatcher

    def _refundable_cents(self, payment: Payment) -> int:
        return payment.amount_cents - self.ledger.refunded_amount(payment)

    # =========================================================================
    # Buyer Operations
    # =========================================================================

    def request(
        self, order_id: Any, requested_by: Actor, params: RefundRequestParams
    ) -> Refund:
        """
        Open a refund request for a delivered order.

        Raises:
            NotFoundError: No such order
            IneligibleOrderError: Order not delivered, or nothing to refund
            RefundAlreadyExistsError: Order has a refund that was not rejected
            RefundExceedsPaymentError: Amount above the refundable amount
        """
        with self.atomic():
            order = self.orders.get_for_update(order_id)
            if order.status != OrderStatus.DELIVERED:
                raise IneligibleOrderError(
                    "Only delivered orders can be refunded",
                    details={"order_id": str(order.id), "status": order.status},
                )

            existing = self.refunds.active_for_order(order.id)
            if existing is not None:
                raise RefundAlreadyExistsError(
                    f"Order {order.id} already has refund {existing.id}",
                    details={
                        "order_id": str(order.id),
                        "refund_id": str(existing.id),
                        "status": existing.status,
                    },
                )

            payment = self.payments.live_for_order(order.id)
            if payment is None or payment.status != PaymentStatus.COMPLETED:
                raise IneligibleOrderError(
                    "Order has no completed payment to refund",
                    details={"order_id": str(order.id)},
                )

            amount_cents = params.amount_cents or payment.amount_cents
            refundable = self._refundable_cents(payment)
            if amount_cents > refundable:
                raise RefundExceedsPaymentError(amount_cents, refundable)

            try:
                with transaction.atomic():
                    refund = self.refunds.create(
                        order=order,
                        payment=payment,
                        requested_by_id=requested_by.user_id,
                        amount_cents=amount_cents,
                        reason=params.reason,
                        description=params.description,
                    )
            except IntegrityError:
                raise RefundAlreadyExistsError(
                    f"Order {order.id} already has an active refund",
                    details={"order_id": str(order.id)},
                )

        self.get_logger().info(
            "Refund requested",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "amount_cents": amount_cents,
                "actor": requested_by.label,
            },
        )
        return refund

    def withdraw(self, refund_id: Any, actor: Actor) -> Refund:
        """
        Requester cancels a pending refund; it ends up rejected.

        Raises:
            ForbiddenError: Actor is neither the requester nor an admin
            InvalidTransitionError: Refund is no longer pending
        """
        with self.atomic():
            refund = self.refunds.get_for_update(refund_id)
            if not actor.is_admin and refund.requested_by_id != actor.user_id:
                raise ForbiddenError(
                    "Only the requester can withdraw a refund",
                    details={"refund_id": str(refund.id)},
                )
            if refund.status != RefundStatus.PENDING:
                raise InvalidTransitionError(
                    "refund",
                    from_status=refund.status,
                    to_status=RefundStatus.REJECTED,
                )

            refund.reject(notes="Withdrawn by requester")
            refund.save()

        self.get_logger().info(
            "Refund withdrawn",
            extra={"refund_id": str(refund.id), "actor": actor.label},
        )
        return refund

    # =========================================================================
    # Admin Decision
    # =========================================================================

    def decide(
        self,
        refund_id: Any,
        decision: str,
        admin: Actor,
        override_amount_cents: int | None = None,
        admin_notes: str = "",
    ) -> Refund:
        """
        Approve or reject a pending refund.

        Approval applies the refund to the payment in the same transaction
        and dispatches the provider reversal once the transaction commits.

        Raises:
            NotFoundError: No such refund
            InvalidTransitionError: Refund is not pending
            RefundExceedsPaymentError: Amount above the refundable amount
            PaymentAllocatedError: Refund would cut into what payouts claimed
        """
        target = (
            RefundStatus.APPROVED
            if decision == RefundDecision.APPROVE
            else RefundStatus.REJECTED
        )

        with self.atomic():
            refund = self.refunds.get_for_update(refund_id)
            if refund.status != RefundStatus.PENDING:
                raise InvalidTransitionError(
                    "refund",
                    from_status=refund.status,
                    to_status=target,
                )

            if target == RefundStatus.REJECTED:
                refund.reject(notes=admin_notes)
                refund.processed_by_id = admin.user_id
                refund.save()
            else:
                amount_cents = override_amount_cents or refund.amount_cents
                payment = self.payments.get(refund.payment_id)
                refundable = self._refundable_cents(payment)
                if amount_cents > refundable:
                    raise RefundExceedsPaymentError(amount_cents, refundable)

                refund.amount_cents = amount_cents
                refund.approve(notes=admin_notes)
                refund.processed_by_id = admin.user_id
                refund.save()

                self.ledger.apply_refund(payment.id, amount_cents, admin, refund=refund)

                if self.reversal_dispatcher is not None:
                    approved_id = refund.id
                    transaction.on_commit(lambda: self.reversal_dispatcher(approved_id))

        self.get_logger().info(
            "Refund decided",
            extra={
                "refund_id": str(refund.id),
                "decision": decision,
                "amount_cents": refund.amount_cents,
                "actor": admin.label,
            },
        )
        return refund

    # =========================================================================
    # Provider Reversal
    # =========================================================================

    def execute_reversal(self, refund_id: Any) -> Refund:
        """
        Ask the provider to return an approved refund to the buyer.

        Raises:
            InvalidTransitionError: Refund is neither approved nor completed
            PaymentProviderError: Provider failed; attempts and error are
                recorded on the refund before re-raising
        """
        refund = self.refunds.get(refund_id)
        if refund.status == RefundStatus.COMPLETED:
            return refund
        if refund.status != RefundStatus.APPROVED:
            raise InvalidTransitionError(
                "refund",
                from_status=refund.status,
                to_status=RefundStatus.COMPLETED,
            )

        payment = self.payments.get(refund.payment_id)
        try:
            result = self.provider.reverse_payment(
                payment,
                refund.amount_cents,
                idempotency_key=f"refund:{refund.id}",
            )
        except PaymentProviderError as exc:
            with self.atomic():
                refund = self.refunds.get_for_update(refund_id)
                refund.provider_attempts += 1
                refund.last_provider_error = exc.message
                refund.save(
                    update_fields=["provider_attempts", "last_provider_error", "updated_at"]
                )

            self.get_logger().warning(
                "Refund reversal failed",
                extra={
                    "refund_id": str(refund.id),
                    "attempts": refund.provider_attempts,
                    "is_retryable": exc.is_retryable,
                    "error": exc.message,
                },
            )
            raise

        return self.confirm_reversal(refund.id, result.reference)

    def confirm_reversal(self, refund_id: Any, provider_reference: str) -> Refund:
        """
        Approved -> completed. Confirming a completed refund is a no-op.

        Raises:
            InvalidTransitionError: Refund was never approved
        """
        with self.atomic():
            refund = self.refunds.get_for_update(refund_id)
            if refund.status == RefundStatus.COMPLETED:
                return refund
            if refund.status != RefundStatus.APPROVED:
                raise InvalidTransitionError(
                    "refund",
                    from_status=refund.status,
                    to_status=RefundStatus.COMPLETED,
                )

            refund.complete(provider_reference=provider_reference)
            refund.save()

        self.get_logger().info(
            "Refund reversal confirmed",
            extra={
                "refund_id": str(refund.id),
                "provider_reference": provider_reference,
            },
        )
        return refund
