"""
Persistence access for the settlement engine.

Each repository wraps the Django ORM for one entity. Settlement components
receive repository instances through their constructors (see
settlement.engine), so unit tests can hand them in-memory fakes and the
components never build querysets themselves.

Repositories:
    RevenueShareSchemeRepository
    ProductRepository
    OrderRepository
    PaymentRepository (payments, adjustments, audit entries)
    ShipmentRepository
    DeliveryAgentRepository
    RefundRepository
    PayoutRepository (payouts and payout items)

Usage:
    from settlement.repositories import OrderRepository

    orders = OrderRepository()
    with transaction.atomic():
        order = orders.get_for_update(order_id)

Note:
    ``get_for_update`` must be called inside transaction.atomic(); the row
    lock lasts until the outermost transaction ends.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import models
from django.db.models import Count, F, Q, Sum

from core.exceptions import NotFoundError
from settlement.locks import check_version
from settlement.models import (
    DeliveryAgent,
    Order,
    Payment,
    PaymentAdjustment,
    PaymentAuditEntry,
    Payout,
    PayoutItem,
    Product,
    Refund,
    RevenueShareScheme,
    Shipment,
)
from settlement.state_machines import (
    PaymentStatus,
    PayoutStatus,
    RefundStatus,
    ShipmentStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime
    from typing import Any

    from settlement.types import Actor

T = TypeVar("T", bound=models.Model)


class ModelRepository(Generic[T]):
    """
    Lookups shared by every repository.

    Subclasses set ``model``; the error code for missing rows is derived
    from the model name (ORDER_NOT_FOUND, PAYOUT_NOT_FOUND, ...).
    """

    model: type[T]

    def _not_found(self, pk: Any) -> NotFoundError:
        name = self.model.__name__
        return NotFoundError(
            f"{name} {pk} not found",
            error_code=f"{name.upper()}_NOT_FOUND",
            details={"id": str(pk)},
        )

    def find(self, pk: Any) -> T | None:
        return self.model.objects.filter(pk=pk).first()

    def get(self, pk: Any) -> T:
        instance = self.find(pk)
        if instance is None:
            raise self._not_found(pk)
        return instance

    def get_for_update(self, pk: Any) -> T:
        instance = self.model.objects.select_for_update().filter(pk=pk).first()
        if instance is None:
            raise self._not_found(pk)
        return instance

    def get_checked(self, pk: Any, expected_version: int | None) -> T:
        """Row-locked fetch, verifying ``expected_version`` when one is given."""
        if expected_version is None:
            return self.get_for_update(pk)
        return check_version(self.model, pk, expected_version)


# =============================================================================
# Catalogue
# =============================================================================


class RevenueShareSchemeRepository(ModelRepository[RevenueShareScheme]):
    model = RevenueShareScheme

    def find_active(self, category: str) -> RevenueShareScheme | None:
        return (
            RevenueShareScheme.objects.filter(category=category, is_active=True)
            .order_by("-created_at")
            .first()
        )


class ProductRepository(ModelRepository[Product]):
    model = Product


# =============================================================================
# Orders & Payments
# =============================================================================


class OrderRepository(ModelRepository[Order]):
    model = Order

    def create(self, **fields: Any) -> Order:
        return Order.objects.create(**fields)

    def set_payment_status(self, order_id: Any, payment_status: str) -> None:
        """Refresh the read-side payment status mirror without touching the FSM."""
        Order.objects.filter(pk=order_id).update(
            payment_status=payment_status,
            version=F("version") + 1,
        )


class PaymentRepository(ModelRepository[Payment]):
    model = Payment

    def create(self, **fields: Any) -> Payment:
        return Payment.objects.create(**fields)

    def live_for_order(self, order_id: Any) -> Payment | None:
        """The order's payment that is not cancelled, if any."""
        return (
            Payment.objects.filter(order_id=order_id)
            .exclude(status=PaymentStatus.CANCELLED)
            .first()
        )

    # -------------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------------

    def add_adjustment(
        self, payment: Payment, amount_cents: int, refund: Refund | None = None
    ) -> PaymentAdjustment:
        return PaymentAdjustment.objects.create(
            payment=payment,
            refund=refund,
            amount_cents=amount_cents,
        )

    def refunded_total(self, payment_id: Any) -> int:
        total = PaymentAdjustment.objects.filter(payment_id=payment_id).aggregate(
            total=Sum("amount_cents")
        )["total"]
        return total or 0

    def refunded_totals(self, payment_ids: Iterable[Any]) -> dict[Any, int]:
        rows = (
            PaymentAdjustment.objects.filter(payment_id__in=list(payment_ids))
            .values("payment_id")
            .annotate(total=Sum("amount_cents"))
        )
        totals: dict[Any, int] = defaultdict(int)
        for row in rows:
            totals[row["payment_id"]] = row["total"] or 0
        return totals

    # -------------------------------------------------------------------------
    # Seller balance
    # -------------------------------------------------------------------------

    def completed_for_seller(self, seller_id: Any) -> list[Payment]:
        return list(
            Payment.objects.filter(seller_id=seller_id, status=PaymentStatus.COMPLETED)
        )

    def lock_allocatable_completed(self, seller_id: Any) -> list[Payment]:
        """
        Row-lock the seller's completed payments with seller net not yet
        claimed by a live payout.

        Ordered oldest first, which is the allocation order.
        """
        return list(
            Payment.objects.select_for_update()
            .filter(
                seller_id=seller_id,
                status=PaymentStatus.COMPLETED,
                allocated_cents__lt=F("seller_net_cents"),
            )
            .order_by("paid_at", "created_at", "id")
        )

    def allocate(self, amounts: Sequence[tuple[Any, int]]) -> int:
        """
        Add each amount to its payment's ``allocated_cents``.

        Returns the number of payments updated; a payment whose seller net
        would be exceeded is left alone.
        """
        updated = 0
        for payment_id, amount in amounts:
            updated += Payment.objects.filter(
                pk=payment_id,
                allocated_cents__lte=F("seller_net_cents") - amount,
            ).update(
                allocated_cents=F("allocated_cents") + amount,
                version=F("version") + 1,
            )
        return updated

    def release(self, payout_id: Any) -> list[Any]:
        """Give back what a payout claimed; returns the released payment ids."""
        items = list(
            PayoutItem.objects.filter(payout_id=payout_id).values_list(
                "payment_id", "amount_cents"
            )
        )
        payment_ids = [payment_id for payment_id, _ in items]
        # Lock in a stable order before the decrements
        list(
            Payment.objects.select_for_update()
            .filter(pk__in=payment_ids)
            .order_by("id")
            .values_list("id", flat=True)
        )
        for payment_id, amount in items:
            Payment.objects.filter(pk=payment_id).update(
                allocated_cents=F("allocated_cents") - amount,
                version=F("version") + 1,
            )
        return payment_ids

    # -------------------------------------------------------------------------
    # Audit trail
    # -------------------------------------------------------------------------

    def record_audit(
        self,
        payment_id: Any,
        action: str,
        actor: Actor,
        from_status: str = "",
        to_status: str = "",
        amount_cents: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> PaymentAuditEntry:
        return PaymentAuditEntry.objects.create(
            payment_id=payment_id,
            action=action,
            from_status=str(from_status),
            to_status=str(to_status),
            amount_cents=amount_cents,
            actor_id=actor.user_id,
            actor_label=actor.label,
            details=details or {},
        )

    def record_audit_many(
        self,
        payment_ids: Iterable[Any],
        action: str,
        actor: Actor,
        details: dict[str, Any] | None = None,
    ) -> None:
        PaymentAuditEntry.objects.bulk_create(
            [
                PaymentAuditEntry(
                    payment_id=payment_id,
                    action=action,
                    actor_id=actor.user_id,
                    actor_label=actor.label,
                    details=details or {},
                )
                for payment_id in payment_ids
            ]
        )


# =============================================================================
# Shipments
# =============================================================================


class ShipmentRepository(ModelRepository[Shipment]):
    model = Shipment

    def for_order(self, order_id: Any) -> Shipment | None:
        return Shipment.objects.filter(order_id=order_id).first()

    def for_order_for_update(self, order_id: Any) -> Shipment | None:
        return Shipment.objects.select_for_update().filter(order_id=order_id).first()

    def create(self, **fields: Any) -> Shipment:
        return Shipment.objects.create(**fields)

    def tracking_number_taken(self, tracking_number: str) -> bool:
        return Shipment.objects.filter(tracking_number=tracking_number).exists()


class DeliveryAgentRepository(ModelRepository[DeliveryAgent]):
    model = DeliveryAgent

    def for_user(self, user_id: Any) -> DeliveryAgent | None:
        return DeliveryAgent.objects.filter(user_id=user_id).first()

    def least_loaded_active(self) -> DeliveryAgent | None:
        """Active agent with the fewest shipments still on the road."""
        open_statuses = [
            ShipmentStatus.ASSIGNED,
            ShipmentStatus.PICKED_UP,
            ShipmentStatus.IN_TRANSIT,
        ]
        return (
            DeliveryAgent.objects.filter(is_active=True)
            .annotate(
                open_shipments=Count(
                    "shipments", filter=Q(shipments__status__in=open_statuses)
                )
            )
            .order_by("open_shipments", "created_at")
            .first()
        )

    def credit_earnings(self, agent_id: Any, amount_cents: int) -> None:
        DeliveryAgent.objects.filter(pk=agent_id).update(
            earnings_cents=F("earnings_cents") + amount_cents
        )

    def update_location(self, agent_id: Any, location: dict[str, Any]) -> None:
        DeliveryAgent.objects.filter(pk=agent_id).update(current_location=location)


# =============================================================================
# Refunds
# =============================================================================


class RefundRepository(ModelRepository[Refund]):
    model = Refund

    def create(self, **fields: Any) -> Refund:
        return Refund.objects.create(**fields)

    def active_for_order(self, order_id: Any) -> Refund | None:
        """The order's refund that was not rejected, if any."""
        return (
            Refund.objects.filter(order_id=order_id)
            .exclude(status=RefundStatus.REJECTED)
            .first()
        )


# =============================================================================
# Payouts
# =============================================================================


class PayoutRepository(ModelRepository[Payout]):
    model = Payout

    COMMITTED_STATUSES = (
        PayoutStatus.SCHEDULED,
        PayoutStatus.PROCESSING,
        PayoutStatus.COMPLETED,
    )

    def create(self, **fields: Any) -> Payout:
        return Payout.objects.create(**fields)

    def add_items(self, payout: Payout, amounts: Sequence[tuple[Any, int]]) -> None:
        PayoutItem.objects.bulk_create(
            [
                PayoutItem(payout=payout, payment_id=payment_id, amount_cents=amount)
                for payment_id, amount in amounts
            ]
        )

    def committed_total(self, seller_id: Any) -> int:
        """Total of the seller's payouts that have not failed."""
        total = Payout.objects.filter(
            seller_id=seller_id, status__in=self.COMMITTED_STATUSES
        ).aggregate(total=Sum("total_amount_cents"))["total"]
        return total or 0

    def due_scheduled_ids(self, now: datetime) -> list[Any]:
        return list(
            Payout.objects.filter(
                status=PayoutStatus.SCHEDULED, scheduled_at__lte=now
            )
            .order_by("scheduled_at")
            .values_list("id", flat=True)
        )

    def stuck_processing_ids(self, before: datetime) -> list[Any]:
        """Processing payouts whose last attempt started before ``before``."""
        return list(
            Payout.objects.filter(
                status=PayoutStatus.PROCESSING, processed_at__lt=before
            ).values_list("id", flat=True)
        )


__all__ = [
    "DeliveryAgentRepository",
    "ModelRepository",
    "OrderRepository",
    "PaymentRepository",
    "PayoutRepository",
    "ProductRepository",
    "RefundRepository",
    "RevenueShareSchemeRepository",
    "ShipmentRepository",
]
