"""
URL configuration for the checkout service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check (database, Stripe credentials)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/token/            - Obtain JWT pair (username/password)
    /api/v1/auth/token/refresh/    - Refresh JWT access token
    /api/v1/billing/               - Billing endpoints
        checkout/                  - Open hosted checkout (POST, 303)
        checkout/success/          - Order status for ?session_id= (GET)
        checkout/cancel/           - Checkout abandoned (GET)
        portal/                    - Open billing portal (POST, 303)
        webhooks/stripe/           - Stripe webhook endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# All routes here are prefixed with /api/v1/
api_v1_patterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("billing/", include("billing.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Checkout Admin"
admin.site.site_title = "Checkout Admin"
admin.site.index_title = "Orders and webhooks"
