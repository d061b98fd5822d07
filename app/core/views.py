"""
Infrastructure endpoints.

GET /health/ reports whether the two backends the settlement engine cannot
work without are reachable: the database (ledger) and Redis (payout locks,
Celery broker).
"""

import logging

from django.db import connection
from django.http import JsonResponse
from django_redis import get_redis_connection

logger = logging.getLogger(__name__)


def _ping_database() -> None:
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()


def _ping_redis() -> None:
    get_redis_connection("default").ping()


BACKENDS = (
    ("database", _ping_database),
    ("redis", _ping_redis),
)


def health_check(request):
    """
    Liveness/readiness check.

    Returns:
        200 {"status": "healthy", "database": "connected", "redis": "connected"}
        503 with the failing component marked "disconnected"
    """
    body = {"status": "healthy"}

    for name, ping in BACKENDS:
        try:
            ping()
        except Exception as exc:
            logger.error(
                "Health check failed",
                extra={"component": name, "error": str(exc)},
            )
            body[name] = "disconnected"
            body["status"] = "unhealthy"
        else:
            body[name] = "connected"

    return JsonResponse(body, status=200 if body["status"] == "healthy" else 503)
