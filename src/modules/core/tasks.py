"""Asynchronous tasks of the core module: outbox relay."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.conf import settings
from django.db import transaction
from kombu.exceptions import KombuError

from modules.core.models import EventStatus, OutboxEvent
from shared.domain.bus import IEventBus
from shared.infrastructure.bus import CeleryEventBus

logger = structlog.get_logger(__name__)


def relay_outbox_events(bus: IEventBus, batch_size: int, max_retries: int) -> dict:
    """Hand pending outbox events to *bus*, oldest first.

    Rows are locked with ``SKIP LOCKED`` so several workers can relay in
    parallel without publishing the same row twice in one pass.  A failed
    publish is recorded and retried on a later run until ``max_retries``.
    """
    published = 0
    failed = 0
    with transaction.atomic():
        events = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(
                status__in=[EventStatus.PENDING, EventStatus.FAILED],
                retry_count__lt=max_retries,
            )
            .order_by("created_at")[:batch_size]
        )
        for event in events:
            log = logger.bind(
                outbox_event_id=str(event.id),
                event_type=event.event_type,
                aggregate_id=event.aggregate_id,
            )
            try:
                bus.publish(event.event_type, event.payload)
            except KombuError as exc:
                event.mark_as_failed(str(exc))
                failed += 1
                log.warning("outbox.publish_failed", error=str(exc))
                continue
            event.mark_as_published()
            published += 1
            log.info("outbox.published")

    return {"published": published, "failed": failed}


@shared_task(name="core.dispatch_outbox_events")
def dispatch_outbox_events() -> dict:
    """Publish pending outbox events to the message bus."""
    result = relay_outbox_events(
        CeleryEventBus(),
        batch_size=settings.OUTBOX_BATCH_SIZE,
        max_retries=settings.OUTBOX_MAX_RETRIES,
    )
    logger.info("outbox.dispatch_completed", **result)
    return result
