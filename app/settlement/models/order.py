"""
Order model for marketplace purchases.

An Order is one buyer's purchase of a product from a seller. Its status is
owned by OrderStateMachine (settlement.services.orders); the @transition
methods here only stamp the fields that belong to each state.

Usage:
    from settlement.models import Order

    order = Order.objects.select_for_update().get(id=order_id)
    order.confirm()
    order.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import ImmutableFieldsMixin, UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from settlement.state_machines import (
    ORDER_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
    allowed_targets,
    sources_for,
)


class Order(UUIDPrimaryKeyMixin, VersionedMixin, ImmutableFieldsMixin, BaseModel):
    """
    A buyer's purchase, from placement to delivery or cancellation.

    State Flow:
        PENDING -> CONFIRMED -> SHIPPED -> DELIVERED
        PENDING/CONFIRMED/SHIPPED -> CANCELLED

    Fields:
        buyer: User who placed the order
        seller: User who sells the product
        product: Product ordered
        quantity: Units ordered
        total_amount_cents: Order total, fixed at creation
        currency: ISO 4217 currency code
        status: Current FSM state
        payment_status: Read-side mirror of the live payment's status
        payment_method: Method chosen by the buyer
        shipping_address: Delivery address
        expected_delivery_date: Promised delivery date
        delivery_date: When the order was delivered
        cancelled_at: When the order was cancelled
        cancellation_reason: Free-text reason supplied on cancellation
        version: Optimistic locking version
    """

    immutable_fields = ("total_amount_cents",)

    # ==========================================================================
    # Relationships
    # ==========================================================================

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders_placed",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders_received",
    )

    product = models.ForeignKey(
        "settlement.Product",
        on_delete=models.PROTECT,
        related_name="orders",
    )

    # ==========================================================================
    # Amount
    # ==========================================================================

    quantity = models.PositiveIntegerField(default=1)

    total_amount_cents = models.PositiveBigIntegerField(
        help_text="Order total in smallest currency unit (immutable)",
    )

    currency = models.CharField(max_length=3, default="ngn")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the order (managed by FSM)",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        help_text="Mirror of the live payment status, maintained by the ledger",
    )

    payment_method = models.CharField(max_length=50, blank=True, default="")

    # ==========================================================================
    # Delivery
    # ==========================================================================

    shipping_address = models.TextField()

    expected_delivery_date = models.DateTimeField(null=True, blank=True)

    delivery_date = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True, default="")

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["buyer", "status"], name="order_buyer_status_idx"),
            models.Index(fields=["seller", "status"], name="order_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount_cents__gt=0),
                name="order_total_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="order_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.total_amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Order({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(ORDER_TRANSITIONS, OrderStatus.CONFIRMED),
        target=OrderStatus.CONFIRMED,
    )
    def confirm(self):
        """Seller accepted the order."""

    @transition(
        field=status,
        source=sources_for(ORDER_TRANSITIONS, OrderStatus.SHIPPED),
        target=OrderStatus.SHIPPED,
    )
    def ship(self):
        """Order handed over for delivery."""

    @transition(
        field=status,
        source=sources_for(ORDER_TRANSITIONS, OrderStatus.DELIVERED),
        target=OrderStatus.DELIVERED,
    )
    def deliver(self):
        """Buyer received the order."""
        self.delivery_date = timezone.now()

    @transition(
        field=status,
        source=sources_for(ORDER_TRANSITIONS, OrderStatus.CANCELLED),
        target=OrderStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None):
        """Order called off before delivery."""
        self.cancelled_at = timezone.now()
        if reason:
            self.cancellation_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def allowed_targets(self) -> frozenset[str]:
        """States this order may move to next."""
        return allowed_targets(ORDER_TRANSITIONS, self.status)

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_targets
