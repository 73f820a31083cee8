"""Liveness/readiness endpoint used by the load balancer and compose healthchecks."""

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.integrations.resilience import payments_cb, provider_cb

logger = logging.getLogger(__name__)


def health_view(_request):
    db_ok = True
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        logger.exception("health check: database unavailable")
        db_ok = False

    body = {
        "ok": db_ok,
        "components": {
            "db": {"ok": db_ok},
            "payments": {"circuit": payments_cb.state},
            "provider": {"circuit": provider_cb.state},
        },
        "http_adapters": bool(settings.USE_HTTP_ADAPTERS),
    }
    return JsonResponse(body, status=200 if db_ok else 503)
