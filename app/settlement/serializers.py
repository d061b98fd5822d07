"""
DRF serializers for the settlement API.

Request serializers validate bodies and convert them into the value
objects in settlement.types (or plain keyword arguments) before anything
reaches the engine. Response serializers are read-only views of models.

Related files:
    - views.py: Settlement API views
    - types.py: Value objects produced by request serializers

Usage:
    serializer = CreateOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    result = engine.intake.create_order(request.user, serializer.to_params())
"""

from __future__ import annotations

from rest_framework import serializers

from settlement.models import Order, Payment, Payout, Refund, Shipment
from settlement.state_machines import (
    OrderStatus,
    PayoutAction,
    RefundDecision,
    ShipmentStatus,
)
from settlement.types import CreateOrderParams, RefundRequestParams


# =============================================================================
# Request Serializers
# =============================================================================


class CreateOrderSerializer(serializers.Serializer):
    """
    Serializer for placing an order.

    Fields:
        product_id: Product to buy
        quantity: Units (default 1)
        shipping_address: Delivery address
        payment_method: Method chosen by the buyer
    """

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    shipping_address = serializers.CharField(max_length=1000)
    payment_method = serializers.CharField(
        max_length=50, required=False, allow_blank=True, default=""
    )

    def to_params(self) -> CreateOrderParams:
        return CreateOrderParams(**self.validated_data)


class OrderTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(required=False, min_value=1)


class RefundRequestSerializer(serializers.Serializer):
    """
    Serializer for a buyer refund request.

    ``amount_cents`` defaults to the full payment amount when omitted.
    """

    amount_cents = serializers.IntegerField(required=False, min_value=1)
    reason = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")

    def to_params(self) -> RefundRequestParams:
        return RefundRequestParams(
            reason=self.validated_data["reason"],
            amount_cents=self.validated_data.get("amount_cents"),
            description=self.validated_data["description"],
        )


class ShipmentTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[
            choice for choice in ShipmentStatus.choices
            if choice[0] != ShipmentStatus.ASSIGNED
        ]
    )
    location = serializers.DictField(required=False)
    proof = serializers.DictField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    expected_version = serializers.IntegerField(required=False, min_value=1)


class AssignAgentSerializer(serializers.Serializer):
    agent_id = serializers.UUIDField()


class RefundDecisionSerializer(serializers.Serializer):
    """
    Serializer for an admin refund decision.

    Fields:
        decision: approve or reject
        amount_cents: Approved amount, overriding the requested one
        admin_notes: Notes stored on the refund
    """

    decision = serializers.ChoiceField(choices=RefundDecision.choices)
    amount_cents = serializers.IntegerField(required=False, min_value=1)
    admin_notes = serializers.CharField(required=False, allow_blank=True, default="")


class ProviderConfirmationSerializer(serializers.Serializer):
    provider_reference = serializers.CharField(max_length=255)


class PayoutRequestSerializer(serializers.Serializer):
    amount_cents = serializers.IntegerField(required=False, min_value=1)


class PayoutBatchSerializer(serializers.Serializer):
    """
    Serializer for an admin batch action on payouts.

    Fields:
        payout_ids: Payouts to act on (1-100)
        action: approve (send now) or reject
        reason: Failure reason stored on rejected payouts
    """

    payout_ids = serializers.ListField(
        child=serializers.UUIDField(),
        min_length=1,
        max_length=100,
    )
    action = serializers.ChoiceField(choices=PayoutAction.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_payout_ids(self, value):
        # Keep request order, drop repeats
        return list(dict.fromkeys(value))


# =============================================================================
# Response Serializers
# =============================================================================


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "reference",
            "amount_cents",
            "platform_cut_cents",
            "seller_net_cents",
            "platform_percentage",
            "currency",
            "status",
            "method",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """
    Order detail, including the states it may move to next.
    """

    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "buyer",
            "seller",
            "product",
            "quantity",
            "total_amount_cents",
            "currency",
            "status",
            "payment_status",
            "payment_method",
            "shipping_address",
            "expected_delivery_date",
            "delivery_date",
            "cancelled_at",
            "cancellation_reason",
            "allowed_transitions",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_allowed_transitions(self, obj: Order) -> list[str]:
        return sorted(str(target) for target in obj.allowed_targets)


class ShipmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Shipment
        fields = [
            "id",
            "order",
            "agent",
            "status",
            "tracking_number",
            "delivery_fee_cents",
            "agent_earnings_cents",
            "estimated_delivery",
            "picked_up_at",
            "delivered_at",
            "actual_delivery",
            "cancelled_at",
            "current_location",
            "delivery_proof",
            "notes",
            "version",
        ]
        read_only_fields = fields


class RefundSerializer(serializers.ModelSerializer):
    class Meta:
        model = Refund
        fields = [
            "id",
            "order",
            "payment",
            "requested_by",
            "processed_by",
            "amount_cents",
            "reason",
            "description",
            "status",
            "admin_notes",
            "approved_at",
            "rejected_at",
            "completed_at",
            "provider_reference",
            "provider_attempts",
            "version",
            "created_at",
        ]
        read_only_fields = fields


class PayoutSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payout
        fields = [
            "id",
            "seller",
            "total_amount_cents",
            "currency",
            "status",
            "provider",
            "provider_reference",
            "scheduled_at",
            "processed_at",
            "completed_at",
            "failed_at",
            "failure_reason",
            "retry_count",
            "max_retries",
            "created_at",
        ]
        read_only_fields = fields


class BalanceSerializer(serializers.Serializer):
    seller_id = serializers.IntegerField()
    earned_cents = serializers.IntegerField()
    committed_cents = serializers.IntegerField()
    available_cents = serializers.IntegerField()
    processing_fees_cents = serializers.IntegerField()
    currency = serializers.CharField()
