"""
Infrastructure endpoints that sit outside the billing domain.
"""

from django.conf import settings
from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Liveness/readiness check for containers and load balancers.

    Reports database connectivity and whether the Stripe credentials the
    checkout and webhook endpoints depend on are present. Only the database
    decides the HTTP status; missing Stripe credentials are reported so a
    misconfigured deploy is visible, but the process itself is alive.

    Response:
        200 {"status": "healthy", "database": "connected", "stripe": "configured"}
        503 {"status": "unhealthy", "database": "disconnected", ...}
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "stripe": "configured",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"

    if not (settings.STRIPE_SECRET_KEY and settings.STRIPE_WEBHOOK_SECRET):
        health_status["stripe"] = "unconfigured"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JsonResponse(health_status, status=status_code)
