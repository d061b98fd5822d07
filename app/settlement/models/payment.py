"""
Payment models: the money side of an order.

This module contains:
- Payment: the buyer's payment for an order, with the revenue split locked
  at creation
- PaymentAdjustment: append-only refund amounts applied to a completed payment
- PaymentAuditEntry: append-only trail of every ledger mutation

Only PaymentLedger (settlement.services.ledger) writes these rows. Balances
are derived from payments and adjustments; a stored split is never
rewritten.

Usage:
    from settlement.models import Payment

    payment = Payment.objects.select_for_update().get(id=payment_id)
    payment.complete()
    payment.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import (
    AppendOnlyMixin,
    ImmutableFieldsMixin,
    UUIDPrimaryKeyMixin,
    VersionedMixin,
)
from core.models import BaseModel
from settlement.state_machines import PAYMENT_TRANSITIONS, PaymentStatus, sources_for


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, ImmutableFieldsMixin, BaseModel):
    """
    A buyer's payment for one order.

    State Flow:
        PENDING -> COMPLETED (order delivered)
        PENDING -> CANCELLED (order cancelled before delivery)
        COMPLETED -> REFUNDED (adjustments reached the full amount)

    The split (platform_cut_cents + seller_net_cents == amount_cents) is
    enforced by a database check constraint and cannot change after
    creation. Partial refunds leave the status COMPLETED and add a
    PaymentAdjustment.

    Payouts claim the seller net piece by piece: ``allocated_cents`` is the
    sum of the PayoutItems of live payouts for this payment. It never
    exceeds the settleable net, so a refund may not take the settleable net
    below it.

    Fields:
        order: Order being paid for
        buyer / seller: Parties to the order (denormalized for balance queries)
        reference: Unique payment reference handed to the buyer
        amount_cents: Amount charged
        platform_cut_cents: Platform share of amount_cents
        seller_net_cents: Seller share of amount_cents
        processing_fee_cents: Provider processing fee, reported only
        currency: ISO 4217 currency code
        status: Current FSM state
        provider: Payment provider that collected the money
        method: Payment method chosen by the buyer
        scheme: Revenue share scheme used for the split (None for fallback)
        platform_percentage: Share applied, kept for audit
        allocated_cents: Part of the settleable net claimed by live payouts
        paid_at / cancelled_at / refunded_at: State timestamps
        version: Optimistic locking version
    """

    immutable_fields = (
        "amount_cents",
        "platform_cut_cents",
        "seller_net_cents",
        "processing_fee_cents",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "settlement.Order",
        on_delete=models.PROTECT,
        related_name="payments",
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments_made",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments_received",
    )

    scheme = models.ForeignKey(
        "settlement.RevenueShareScheme",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Scheme used for the split; empty when the fallback share applied",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    reference = models.CharField(max_length=100, unique=True)

    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount charged in smallest currency unit",
    )

    platform_cut_cents = models.PositiveBigIntegerField(
        help_text="Platform share in smallest currency unit",
    )

    seller_net_cents = models.PositiveBigIntegerField(
        help_text="Seller share in smallest currency unit",
    )

    processing_fee_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Provider processing fee; reported to the seller, not deducted",
    )

    allocated_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Seller net claimed by scheduled, processing or completed payouts",
    )

    platform_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        help_text="Platform share applied when the split was computed",
    )

    currency = models.CharField(max_length=3, default="ngn")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    provider = models.CharField(max_length=50, default="pending")

    method = models.CharField(max_length=50, blank=True, default="")

    description = models.TextField(blank=True, default="")

    paid_at = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)

    refunded_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seller", "status"], name="payment_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payment_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    platform_cut_cents__lte=models.F("amount_cents"),
                    seller_net_cents=models.F("amount_cents")
                    - models.F("platform_cut_cents"),
                ),
                name="payment_split_balanced",
            ),
            models.CheckConstraint(
                condition=models.Q(allocated_cents__lte=models.F("seller_net_cents")),
                name="payment_allocation_within_net",
            ),
            models.UniqueConstraint(
                fields=["order"],
                condition=~models.Q(status=PaymentStatus.CANCELLED),
                name="one_live_payment_per_order",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.reference}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.COMPLETED),
        target=PaymentStatus.COMPLETED,
    )
    def complete(self):
        """Money captured; the seller's share becomes settleable."""
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.CANCELLED),
        target=PaymentStatus.CANCELLED,
    )
    def cancel(self):
        """Payment abandoned before any money moved."""
        self.cancelled_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.REFUNDED),
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self):
        """Whole amount returned to the buyer."""
        self.refunded_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING


class PaymentAdjustment(UUIDPrimaryKeyMixin, AppendOnlyMixin, BaseModel):
    """
    A refund amount applied to a completed payment.

    Adjustments are never updated or deleted. The refunded total of a
    payment is the sum of its adjustments.
    """

    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        related_name="adjustments",
    )

    refund = models.ForeignKey(
        "settlement.Refund",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="adjustments",
    )

    amount_cents = models.PositiveBigIntegerField()

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="adjustment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentAdjustment({self.payment_id}, -{self.amount_cents})"


class PaymentAuditAction(models.TextChoices):
    CREATED = "created", "Created"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REFUND_APPLIED = "refund_applied", "Refund Applied"
    REFUNDED = "refunded", "Refunded"
    ALLOCATED = "allocated", "Allocated to Payout"
    RELEASED = "released", "Released from Payout"


class PaymentAuditEntry(UUIDPrimaryKeyMixin, AppendOnlyMixin, BaseModel):
    """
    One ledger mutation of a payment.

    Written in the same transaction as the mutation it records.
    """

    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        related_name="audit_entries",
    )

    action = models.CharField(max_length=20, choices=PaymentAuditAction.choices)

    from_status = models.CharField(max_length=20, blank=True, default="")

    to_status = models.CharField(max_length=20, blank=True, default="")

    amount_cents = models.BigIntegerField(null=True, blank=True)

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    actor_label = models.CharField(
        max_length=100,
        help_text="Role and identifier of whoever caused the change",
    )

    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name_plural = "Payment audit entries"
        indexes = [
            models.Index(fields=["payment", "created_at"], name="payment_audit_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.payment_id} by {self.actor_label}"
