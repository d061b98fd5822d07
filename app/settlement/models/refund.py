"""
Refund model for money returned to buyers.

A Refund is the buyer's request to get money back for a delivered order.
RefundWorkflow (settlement.services.refunds) owns its lifecycle; the money
effect goes through PaymentLedger when an admin approves it.

Usage:
    from settlement.models import Refund

    refund = Refund.objects.select_for_update().get(id=refund_id)
    refund.approve(admin)
    refund.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from settlement.state_machines import REFUND_TRANSITIONS, RefundStatus, sources_for


class Refund(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A refund request against one order's payment.

    State Flow:
        PENDING -> APPROVED -> COMPLETED
        PENDING -> REJECTED

    At most one refund per order is in any state other than REJECTED
    (partial unique constraint ``one_active_refund_per_order``).

    Fields:
        order / payment: What is being refunded
        amount_cents: Requested amount, replaced by the admin override on approval
        reason / description: Buyer's explanation
        status: Current FSM state
        requested_by / processed_by: Requester and deciding admin
        admin_notes: Notes recorded with the decision
        approved_at / rejected_at / completed_at: State timestamps
        provider_reference: Provider id of the reversal once confirmed
        provider_attempts: Number of reversal attempts made
        last_provider_error: Error message of the last failed attempt
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "settlement.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
    )

    payment = models.ForeignKey(
        "settlement.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
    )

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refunds_requested",
    )

    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="refunds_processed",
    )

    # ==========================================================================
    # Request
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit",
    )

    reason = models.CharField(max_length=255)

    description = models.TextField(blank=True, default="")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    admin_notes = models.TextField(blank=True, default="")

    approved_at = models.DateTimeField(null=True, blank=True)

    rejected_at = models.DateTimeField(null=True, blank=True)

    completed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Provider Reversal
    # ==========================================================================

    provider_reference = models.CharField(max_length=255, blank=True, default="")

    provider_attempts = models.PositiveIntegerField(default=0)

    last_provider_error = models.TextField(blank=True, default="")

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="refund_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["order"],
                condition=~models.Q(status=RefundStatus.REJECTED),
                name="one_active_refund_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.id}, {self.status}, {self.amount_cents})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(REFUND_TRANSITIONS, RefundStatus.APPROVED),
        target=RefundStatus.APPROVED,
    )
    def approve(self, admin=None, notes: str = ""):
        self.approved_at = timezone.now()
        self.processed_by = admin
        if notes:
            self.admin_notes = notes

    @transition(
        field=status,
        source=sources_for(REFUND_TRANSITIONS, RefundStatus.REJECTED),
        target=RefundStatus.REJECTED,
    )
    def reject(self, admin=None, notes: str = ""):
        self.rejected_at = timezone.now()
        self.processed_by = admin
        if notes:
            self.admin_notes = notes

    @transition(
        field=status,
        source=sources_for(REFUND_TRANSITIONS, RefundStatus.COMPLETED),
        target=RefundStatus.COMPLETED,
    )
    def complete(self, provider_reference: str = ""):
        self.completed_at = timezone.now()
        self.provider_reference = provider_reference
        self.last_provider_error = ""

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_pending(self) -> bool:
        return self.status == RefundStatus.PENDING

    @property
    def is_active(self) -> bool:
        """Anything but a rejected refund blocks a new request for the order."""
        return self.status != RefundStatus.REJECTED
