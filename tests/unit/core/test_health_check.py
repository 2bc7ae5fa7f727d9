"""Unit tests for the health check endpoint."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from django.test import Client

from modules.core.models import EventStatus, OutboxEvent

pytestmark = pytest.mark.unit


def test_healthy():
    response = Client().get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["services"]["database"]["status"] == "up"
    assert body["services"]["cache"]["status"] == "up"
    assert body["outbox"] == {"pending": 0, "failed": 0}


def test_cache_down_reports_unhealthy():
    with patch(
        "django.core.cache.backends.locmem.LocMemCache.set",
        side_effect=ConnectionError("down"),
    ):
        response = Client().get("/health")

    assert response.status_code == 503
    assert response.json()["services"]["cache"] == {"status": "down"}


def test_outbox_backlog_does_not_affect_health():
    statuses = [
        EventStatus.PENDING,
        EventStatus.PENDING,
        EventStatus.FAILED,
        EventStatus.PUBLISHED,
    ]
    for status in statuses:
        OutboxEvent.objects.create(
            event_type="OrderCreated",
            aggregate_id="order-1",
            payload={},
            topic="orders",
            status=status,
        )

    response = Client().get("/health")

    assert response.status_code == 200
    assert response.json()["outbox"] == {"pending": 2, "failed": 1}


def test_no_authentication_required():
    response = Client().get("/health", HTTP_AUTHORIZATION="Bearer garbage")
    assert response.status_code == 200
