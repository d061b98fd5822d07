"""
Payout models for money sent to sellers.

A Payout moves part or all of a seller's available balance out of the
platform. Its PayoutItems say how much of each payment it claims; a
payment may be split across several payouts. While the payout is live the
claimed amounts count towards ``Payment.allocated_cents``; a failed payout
gives them back.

Usage:
    from settlement.models import Payout

    payout = Payout.objects.select_for_update().get(id=payout_id)
    payout.start_processing()
    payout.save()

    payout.complete(provider_reference="po_123")
    payout.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from settlement.state_machines import PAYOUT_TRANSITIONS, PayoutStatus, sources_for


class Payout(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Transfer of seller earnings out of the platform.

    State Flow:
        SCHEDULED -> PROCESSING -> COMPLETED
        SCHEDULED -> FAILED (admin rejection)
        PROCESSING -> FAILED (provider failures exhausted retries)

    Fields:
        seller: Seller receiving the money
        total_amount_cents: Sum of the payout items
        currency: ISO 4217 currency code
        status: Current FSM state
        provider: Provider used to send the money
        provider_reference: Provider transfer id once sent
        scheduled_at: Earliest time the periodic task sends it
        processed_at / completed_at / failed_at: State timestamps
        failure_reason: Why the payout failed
        retry_count / max_retries: Provider attempt bookkeeping
        processed_by: Admin who approved or rejected it, if any
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payouts",
    )

    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payouts_processed",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    total_amount_cents = models.PositiveBigIntegerField(
        help_text="Payout amount in smallest currency unit",
    )

    currency = models.CharField(max_length=3, default="ngn")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutStatus.SCHEDULED,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    provider = models.CharField(max_length=50, blank=True, default="")

    provider_reference = models.CharField(max_length=255, blank=True, default="")

    # ==========================================================================
    # Scheduling & Timestamps
    # ==========================================================================

    scheduled_at = models.DateTimeField(db_index=True)

    processed_at = models.DateTimeField(null=True, blank=True)

    completed_at = models.DateTimeField(null=True, blank=True)

    failed_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(blank=True, default="")

    retry_count = models.PositiveIntegerField(default=0)

    max_retries = models.PositiveIntegerField(default=3)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seller", "status"], name="payout_seller_status_idx"),
            models.Index(fields=["status", "scheduled_at"], name="payout_status_sched_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount_cents__gt=0),
                name="payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.total_amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payout({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(PAYOUT_TRANSITIONS, PayoutStatus.PROCESSING),
        target=PayoutStatus.PROCESSING,
    )
    def start_processing(self, admin=None):
        """Provider transfer is about to be attempted."""
        self.processed_at = timezone.now()
        if admin is not None:
            self.processed_by = admin

    @transition(
        field=status,
        source=sources_for(PAYOUT_TRANSITIONS, PayoutStatus.COMPLETED),
        target=PayoutStatus.COMPLETED,
    )
    def complete(self, provider_reference: str = ""):
        """Provider confirmed the transfer."""
        self.completed_at = timezone.now()
        self.provider_reference = provider_reference
        self.failure_reason = ""

    @transition(
        field=status,
        source=sources_for(PAYOUT_TRANSITIONS, PayoutStatus.FAILED),
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str = "", admin=None):
        """
        Give up on the payout.

        Its payments must be released by the caller in the same transaction.
        """
        self.failed_at = timezone.now()
        self.failure_reason = reason
        if admin is not None:
            self.processed_by = admin

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == PayoutStatus.COMPLETED

    @property
    def is_finished(self) -> bool:
        """Completed or failed payouts are never processed again."""
        return self.status in (PayoutStatus.COMPLETED, PayoutStatus.FAILED)

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


class PayoutItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    The part of one payment claimed by a payout.

    Items are kept after a payout fails, so the history of what a payout
    covered survives the release of its allocation.
    """

    payout = models.ForeignKey(
        Payout,
        on_delete=models.CASCADE,
        related_name="items",
    )

    payment = models.ForeignKey(
        "settlement.Payment",
        on_delete=models.PROTECT,
        related_name="payout_items",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Part of the payment's settleable net claimed by the payout",
    )

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["payout", "payment"],
                name="payout_item_unique_payment",
            ),
        ]

    def __str__(self) -> str:
        return f"PayoutItem({self.payout_id}, {self.payment_id}, {self.amount_cents})"
