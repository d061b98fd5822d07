"""
URL configuration for the settlement app.

All routes are prefixed with /api/v1/settlement/ when included in the main
URLconf.
"""

from django.urls import path

from settlement import views

app_name = "settlement"

urlpatterns = [
    # Orders
    path("orders/", views.OrderCreateView.as_view(), name="order-create"),
    path("orders/<uuid:order_id>/", views.OrderDetailView.as_view(), name="order-detail"),
    path(
        "orders/<uuid:order_id>/transition/",
        views.OrderTransitionView.as_view(),
        name="order-transition",
    ),
    path(
        "orders/<uuid:order_id>/refunds/",
        views.RefundRequestView.as_view(),
        name="order-refund-request",
    ),
    # Shipments
    path(
        "shipments/<uuid:shipment_id>/transition/",
        views.ShipmentTransitionView.as_view(),
        name="shipment-transition",
    ),
    path(
        "shipments/<uuid:shipment_id>/assign/",
        views.ShipmentAssignView.as_view(),
        name="shipment-assign",
    ),
    # Refunds
    path(
        "refunds/<uuid:refund_id>/decide/",
        views.RefundDecisionView.as_view(),
        name="refund-decide",
    ),
    path(
        "refunds/<uuid:refund_id>/withdraw/",
        views.RefundWithdrawView.as_view(),
        name="refund-withdraw",
    ),
    path(
        "refunds/<uuid:refund_id>/provider-confirmation/",
        views.RefundProviderConfirmationView.as_view(),
        name="refund-provider-confirmation",
    ),
    # Balances & payouts
    path("sellers/me/balance/", views.SellerBalanceView.as_view(), name="seller-balance"),
    path("payouts/", views.PayoutRequestView.as_view(), name="payout-request"),
    path("payouts/process/", views.PayoutBatchView.as_view(), name="payout-process"),
]
