"""
Shipment and delivery agent models.

A Shipment is created when its order ships and follows the delivery agent
from pickup to the buyer's door. Its status is owned by
ShipmentStateMachine (settlement.services.shipments).

Usage:
    from settlement.models import Shipment

    shipment = Shipment.objects.select_for_update().get(id=shipment_id)
    shipment.pick_up()
    shipment.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from settlement.state_machines import (
    SHIPMENT_TRANSITIONS,
    ShipmentStatus,
    allowed_targets,
    sources_for,
)


class DeliveryAgent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A courier who can be assigned shipments.

    ``earnings_cents`` is a running counter credited on every delivery with
    an F() update; it is never recomputed from shipments.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="delivery_agent",
    )

    earnings_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Total credited delivery commission in smallest currency unit",
    )

    is_active = models.BooleanField(default=True, db_index=True)

    current_location = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"DeliveryAgent({self.user_id}, active={self.is_active})"


class Shipment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Physical delivery of one order.

    State Flow:
        ASSIGNED -> PICKED_UP -> IN_TRANSIT -> DELIVERED
        ASSIGNED/PICKED_UP/IN_TRANSIT -> CANCELLED

    Fields:
        order: Order being delivered (one shipment per order)
        agent: Delivery agent, if one is assigned
        status: Current FSM state
        tracking_number: Unique public tracking code
        delivery_fee_cents: Fee the agent's commission is computed from
        agent_earnings_cents: Commission actually credited on delivery
        estimated_delivery: Promised arrival
        picked_up_at / delivered_at / actual_delivery / cancelled_at: Stamps
        current_location: Last reported location
        delivery_proof: Proof of delivery (signature, photo reference, ...)
        notes: Free-text notes from the agent
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.OneToOneField(
        "settlement.Order",
        on_delete=models.PROTECT,
        related_name="shipment",
    )

    agent = models.ForeignKey(
        DeliveryAgent,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="shipments",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=ShipmentStatus.ASSIGNED,
        choices=ShipmentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the shipment (managed by FSM)",
    )

    tracking_number = models.CharField(max_length=40, unique=True)

    # ==========================================================================
    # Money
    # ==========================================================================

    delivery_fee_cents = models.PositiveBigIntegerField()

    agent_earnings_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Commission credited to the agent on delivery",
    )

    # ==========================================================================
    # Delivery Tracking
    # ==========================================================================

    estimated_delivery = models.DateTimeField(null=True, blank=True)

    picked_up_at = models.DateTimeField(null=True, blank=True)

    delivered_at = models.DateTimeField(null=True, blank=True)

    actual_delivery = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)

    current_location = models.JSONField(null=True, blank=True)

    delivery_proof = models.JSONField(null=True, blank=True)

    notes = models.TextField(blank=True, default="")

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["agent", "status"], name="shipment_agent_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Shipment({self.tracking_number}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(SHIPMENT_TRANSITIONS, ShipmentStatus.PICKED_UP),
        target=ShipmentStatus.PICKED_UP,
    )
    def pick_up(self):
        self.picked_up_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(SHIPMENT_TRANSITIONS, ShipmentStatus.IN_TRANSIT),
        target=ShipmentStatus.IN_TRANSIT,
    )
    def start_transit(self):
        pass

    @transition(
        field=status,
        source=sources_for(SHIPMENT_TRANSITIONS, ShipmentStatus.DELIVERED),
        target=ShipmentStatus.DELIVERED,
    )
    def deliver(self, proof: dict | None = None):
        now = timezone.now()
        self.delivered_at = now
        self.actual_delivery = now
        if proof is not None:
            self.delivery_proof = proof

    @transition(
        field=status,
        source=sources_for(SHIPMENT_TRANSITIONS, ShipmentStatus.CANCELLED),
        target=ShipmentStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None):
        self.cancelled_at = timezone.now()
        if reason:
            self.notes = f"{self.notes}\n{reason}".strip()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def allowed_targets(self) -> frozenset[str]:
        return allowed_targets(SHIPMENT_TRANSITIONS, self.status)

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_targets
