"""
DRF views for the settlement API.

Views authenticate, authorize (settlement.permissions), validate the body
into value objects and call the engine. Business errors propagate as
core.exceptions errors and are rendered by
core.exceptions.api_exception_handler as
{"error", "error_code", "details"}.

Endpoints (prefix /api/v1/settlement/):
    POST orders/ - Place an order
    GET orders/{id}/ - Order detail
    POST orders/{id}/transition/ - Change order status
    POST orders/{id}/refunds/ - Request a refund
    POST shipments/{id}/transition/ - Change shipment status
    POST shipments/{id}/assign/ - Assign a delivery agent (admin)
    POST refunds/{id}/decide/ - Approve or reject a refund (admin)
    POST refunds/{id}/withdraw/ - Withdraw a pending refund
    POST refunds/{id}/provider-confirmation/ - Provider confirmed reversal (admin)
    GET sellers/me/balance/ - Seller balance
    POST payouts/ - Request a payout
    POST payouts/process/ - Approve or reject payouts in bulk (admin)
"""

from __future__ import annotations

from django.conf import settings
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from settlement.engine import get_engine
from settlement.permissions import (
    IsPlatformAdmin,
    authorize_order_transition,
    authorize_order_view,
    authorize_refund_request,
    authorize_shipment_update,
)
from settlement.repositories import OrderRepository, ShipmentRepository
from settlement.serializers import (
    AssignAgentSerializer,
    BalanceSerializer,
    CreateOrderSerializer,
    OrderSerializer,
    OrderTransitionSerializer,
    PaymentSerializer,
    PayoutBatchSerializer,
    PayoutRequestSerializer,
    PayoutSerializer,
    ProviderConfirmationSerializer,
    RefundDecisionSerializer,
    RefundRequestSerializer,
    RefundSerializer,
    ShipmentSerializer,
    ShipmentTransitionSerializer,
)
from settlement.state_machines import ActorRole
from settlement.types import Actor


def _user_actor(user, role: str) -> Actor:
    if user.is_staff:
        return Actor.admin(user.pk)
    return Actor(role=role, user_id=user.pk)


# =============================================================================
# Orders
# =============================================================================


class OrderCreateView(APIView):
    """
    Place an order.

    POST /api/v1/settlement/orders/

    Returns:
        201 with the order and its pending payment
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_order",
        summary="Place an order",
        tags=["Settlement - Orders"],
        request=CreateOrderSerializer,
    )
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().intake.create_order(request.user, serializer.to_params())

        return Response(
            {
                "order": OrderSerializer(result.order).data,
                "payment": PaymentSerializer(result.payment).data,
                "payment_reference": result.payment_reference,
            },
            status=status.HTTP_201_CREATED,
        )


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_order",
        summary="Get order",
        tags=["Settlement - Orders"],
        responses={200: OrderSerializer},
    )
    def get(self, request, order_id):
        order = OrderRepository().get(order_id)
        authorize_order_view(order, request.user)
        return Response(OrderSerializer(order).data)


class OrderTransitionView(APIView):
    """
    Change an order's status.

    POST /api/v1/settlement/orders/{id}/transition/

    Request body:
        {"status": "confirmed", "reason": "", "expected_version": 2}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="transition_order",
        summary="Transition order",
        tags=["Settlement - Orders"],
        request=OrderTransitionSerializer,
        responses={200: OrderSerializer},
    )
    def post(self, request, order_id):
        serializer = OrderTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target = serializer.validated_data["status"]

        order = OrderRepository().get(order_id)
        actor = authorize_order_transition(order, request.user, target)

        order = get_engine().orders.transition(
            order.id,
            target,
            actor,
            expected_version=serializer.validated_data.get("expected_version"),
            reason=serializer.validated_data["reason"] or None,
        )
        return Response(OrderSerializer(order).data)


class RefundRequestView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="request_refund",
        summary="Request a refund",
        tags=["Settlement - Refunds"],
        request=RefundRequestSerializer,
        responses={201: RefundSerializer},
    )
    def post(self, request, order_id):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderRepository().get(order_id)
        actor = authorize_refund_request(order, request.user)

        refund = get_engine().refunds.request(order.id, actor, serializer.to_params())
        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Shipments
# =============================================================================


class ShipmentTransitionView(APIView):
    """
    Change a shipment's status.

    POST /api/v1/settlement/shipments/{id}/transition/

    Request body:
        {"status": "delivered", "location": {...}, "proof": {...}, "notes": ""}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="transition_shipment",
        summary="Transition shipment",
        tags=["Settlement - Shipments"],
        request=ShipmentTransitionSerializer,
        responses={200: ShipmentSerializer},
    )
    def post(self, request, shipment_id):
        serializer = ShipmentTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        shipment = ShipmentRepository().get(shipment_id)
        actor = authorize_shipment_update(shipment, request.user)

        shipment = get_engine().shipments.transition(
            shipment.id,
            data["status"],
            actor,
            location=data.get("location"),
            proof=data.get("proof"),
            notes=data.get("notes"),
            expected_version=data.get("expected_version"),
        )
        return Response(ShipmentSerializer(shipment).data)


class ShipmentAssignView(APIView):
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    @extend_schema(
        operation_id="assign_shipment_agent",
        summary="Assign delivery agent",
        tags=["Settlement - Shipments"],
        request=AssignAgentSerializer,
        responses={200: ShipmentSerializer},
    )
    def post(self, request, shipment_id):
        serializer = AssignAgentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        shipment = get_engine().shipments.assign_agent(
            shipment_id,
            serializer.validated_data["agent_id"],
            Actor.admin(request.user.pk),
        )
        return Response(ShipmentSerializer(shipment).data)


# =============================================================================
# Refunds
# =============================================================================


class RefundDecisionView(APIView):
    """
    Approve or reject a pending refund.

    POST /api/v1/settlement/refunds/{id}/decide/

    Request body:
        {"decision": "approve", "amount_cents": 2500, "admin_notes": "..."}
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    @extend_schema(
        operation_id="decide_refund",
        summary="Decide refund",
        tags=["Settlement - Refunds"],
        request=RefundDecisionSerializer,
        responses={200: RefundSerializer},
    )
    def post(self, request, refund_id):
        serializer = RefundDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        refund = get_engine().refunds.decide(
            refund_id,
            data["decision"],
            Actor.admin(request.user.pk),
            override_amount_cents=data.get("amount_cents"),
            admin_notes=data["admin_notes"],
        )
        return Response(RefundSerializer(refund).data)


class RefundWithdrawView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="withdraw_refund",
        summary="Withdraw refund",
        tags=["Settlement - Refunds"],
        request=None,
        responses={200: RefundSerializer},
    )
    def post(self, request, refund_id):
        actor = _user_actor(request.user, ActorRole.BUYER)
        refund = get_engine().refunds.withdraw(refund_id, actor)
        return Response(RefundSerializer(refund).data)


class RefundProviderConfirmationView(APIView):
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    @extend_schema(
        operation_id="confirm_refund_reversal",
        summary="Confirm provider reversal",
        tags=["Settlement - Refunds"],
        request=ProviderConfirmationSerializer,
        responses={200: RefundSerializer},
    )
    def post(self, request, refund_id):
        serializer = ProviderConfirmationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        refund = get_engine().refunds.confirm_reversal(
            refund_id, serializer.validated_data["provider_reference"]
        )
        return Response(RefundSerializer(refund).data)


# =============================================================================
# Balances & Payouts
# =============================================================================


class SellerBalanceView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_seller_balance",
        summary="Get my balance",
        tags=["Settlement - Payouts"],
        responses={200: BalanceSerializer},
    )
    def get(self, request):
        payouts = get_engine().payouts
        snapshot = payouts.balance_snapshot(request.user.pk)
        available = payouts.compute_available_balance(request.user.pk)
        return Response(
            BalanceSerializer(
                {
                    "seller_id": request.user.pk,
                    "earned_cents": snapshot.earned_cents,
                    "committed_cents": snapshot.committed_cents,
                    "available_cents": available,
                    "processing_fees_cents": snapshot.processing_fees_cents,
                    "currency": settings.SETTLEMENT_CURRENCY,
                }
            ).data
        )


class PayoutRequestView(APIView):
    """
    Request a payout of the caller's balance.

    POST /api/v1/settlement/payouts/

    Request body:
        {"amount_cents": 9000}   # or {} for the whole balance
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="request_payout",
        summary="Request payout",
        tags=["Settlement - Payouts"],
        request=PayoutRequestSerializer,
        responses={201: PayoutSerializer},
    )
    def post(self, request):
        serializer = PayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payout = get_engine().payouts.request_payout(
            request.user.pk,
            amount_cents=serializer.validated_data.get("amount_cents"),
            actor=Actor(role=ActorRole.SELLER, user_id=request.user.pk),
        )
        return Response(PayoutSerializer(payout).data, status=status.HTTP_201_CREATED)


class PayoutBatchView(APIView):
    """
    Approve (send now) or reject payouts in bulk.

    POST /api/v1/settlement/payouts/process/

    Returns:
        {"results": [{"payout_id", "success", "status", ...}, ...]}
        Each payout succeeds or fails on its own.
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    @extend_schema(
        operation_id="process_payouts",
        summary="Process payouts",
        tags=["Settlement - Payouts"],
        request=PayoutBatchSerializer,
    )
    def post(self, request):
        serializer = PayoutBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        results = get_engine().payouts.process_batch(
            data["payout_ids"],
            data["action"],
            Actor.admin(request.user.pk),
            reason=data["reason"],
        )
        return Response({"results": [result.to_dict() for result in results]})
