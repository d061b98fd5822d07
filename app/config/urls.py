"""
Root URL configuration.

    /                     ReDoc
    /schema/              OpenAPI schema
    /admin/               Django admin (schemes, products, ledger, payouts)
    /health/              Database and Redis check
    /api/v1/auth/token/   JWT pair and refresh
    /api/v1/settlement/   Orders, shipments, refunds, balances and payouts
                          (see settlement/urls.py)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

admin.site.site_header = "Marketplace Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Orders, refunds and payouts"

auth_patterns = [
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/auth/", include(auth_patterns)),
    path("api/v1/settlement/", include("settlement.urls")),
]
