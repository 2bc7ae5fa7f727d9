"""Celery-backed message bus.

Integration events are sent as Celery messages named ``events.<EventName>``
and routed to the ``events`` queue (see ``CELERY_TASK_ROUTES``).  Any
service that registers a task with that name consumes the event.
"""

from __future__ import annotations

from typing import Any, Dict

import structlog
from celery import current_app

from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)

EVENT_TASK_PREFIX = "events."


class CeleryEventBus(IEventBus):
    """Publishes events through the configured Celery broker."""

    def __init__(self, app=None) -> None:
        self._app = app or current_app

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        self._app.send_task(f"{EVENT_TASK_PREFIX}{event_name}", args=[payload])
        logger.info(
            "event_bus.published",
            event_name=event_name,
            event_id=payload.get("event_id"),
        )
