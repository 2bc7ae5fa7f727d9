"""Liveness endpoint for the orderflow processes.

``GET /health`` is unauthenticated.  The service is healthy when it can
reach the database (catalog, orders, saga log and outbox) and the cache
(notification de-duplication).  The outbox backlog is reported for
operators but never makes the service unhealthy.
"""

import time
from typing import Any, Dict

import structlog
from django.core.cache import cache
from django.db import DatabaseError, connections
from django.db.models import Count
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)

HEALTH_CACHE_KEY = "orderflow:health"


def health_check(request: HttpRequest) -> JsonResponse:
    services: Dict[str, Dict[str, Any]] = {
        "database": _check_database(),
        "cache": _check_cache(),
    }
    healthy = all(s["status"] == "up" for s in services.values())
    outbox = _outbox_backlog() if services["database"]["status"] == "up" else None

    logger.info(
        "health.checked",
        healthy=healthy,
        database=services["database"]["status"],
        cache=services["cache"]["status"],
        outbox_pending=outbox["pending"] if outbox else None,
    )

    body: Dict[str, Any] = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": timezone.now().isoformat(),
        "services": services,
    }
    if outbox is not None:
        body["outbox"] = outbox
    return JsonResponse(body, status=200 if healthy else 503)


def _check_database() -> Dict[str, Any]:
    start = time.monotonic()
    try:
        conn = connections["default"]
        conn.ensure_connection()
        with conn.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError as exc:
        logger.error("health.database_unreachable", error=str(exc))
        return {"status": "down"}
    return {"status": "up", "response_time_ms": _elapsed_ms(start)}


def _check_cache() -> Dict[str, Any]:
    start = time.monotonic()
    try:
        cache.set(HEALTH_CACHE_KEY, "ok", 10)
        if cache.get(HEALTH_CACHE_KEY) != "ok":
            raise ConnectionError("Cache read-back mismatch")
    except Exception as exc:
        # Any backend error counts as the cache being down.
        logger.error("health.cache_unreachable", error=str(exc))
        return {"status": "down"}
    return {"status": "up", "response_time_ms": _elapsed_ms(start)}


def _outbox_backlog() -> Dict[str, int]:
    counts = dict(
        OutboxEvent.objects.filter(
            status__in=[EventStatus.PENDING, EventStatus.FAILED]
        )
        .values_list("status")
        .annotate(n=Count("id"))
        .order_by()
    )
    return {
        "pending": counts.get(EventStatus.PENDING.value, 0),
        "failed": counts.get(EventStatus.FAILED.value, 0),
    }


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)
