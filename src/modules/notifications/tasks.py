"""Consumers of the order lifecycle events.

Each task is registered under the bus name ``events.<EventName>`` so the
outbox relay reaches it through ``CeleryEventBus``.  Delivery is
at-least-once: every ``event_id`` is remembered in the cache and a
redelivered event is acknowledged without being processed again.

E-mail delivery is not part of this service; consumers log the
notification they would send.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from celery import shared_task
from django.conf import settings
from django.core.cache import cache
from pydantic import ValidationError

from shared.contracts.orders import OrderLifecyclePayload

logger = structlog.get_logger(__name__)

PROCESSED_KEY = "notifications:processed:{event_id}"


def parse_event(payload: Dict[str, Any], expected_name: str) -> Optional[OrderLifecyclePayload]:
    """Validate *payload* against the contract; ``None`` for a poison message."""
    try:
        event = OrderLifecyclePayload.model_validate(payload)
    except ValidationError as exc:
        logger.error(
            "notification.invalid_payload",
            expected_event=expected_name,
            error_count=exc.error_count(),
        )
        return None

    if event.event_name != expected_name:
        logger.error(
            "notification.unexpected_event",
            expected_event=expected_name,
            event_name=event.event_name,
        )
        return None
    return event


def claim_event(event: OrderLifecyclePayload) -> bool:
    """``True`` the first time an ``event_id`` is seen, ``False`` afterwards."""
    return cache.add(
        PROCESSED_KEY.format(event_id=event.event_id),
        event.event_name,
        timeout=settings.EVENT_DEDUP_TTL_SECONDS,
    )


def handle_order_event(payload: Dict[str, Any], expected_name: str) -> bool:
    """Process one lifecycle event; returns whether it was acted upon."""
    event = parse_event(payload, expected_name)
    if event is None:
        return False

    log = logger.bind(
        event_id=str(event.event_id),
        event_name=event.event_name,
        order_id=str(event.order_id),
        user_id=event.user_id,
    )
    if not claim_event(event):
        log.info("notification.duplicate_skipped")
        return False

    log.info(
        "notification.processed",
        item_count=len(event.items),
        products=[item.product_name for item in event.items],
    )
    return True


@shared_task(name="events.OrderCreated")
def on_order_created(payload: Dict[str, Any]) -> bool:
    return handle_order_event(payload, "OrderCreated")


@shared_task(name="events.OrderCancelled")
def on_order_cancelled(payload: Dict[str, Any]) -> bool:
    return handle_order_event(payload, "OrderCancelled")
