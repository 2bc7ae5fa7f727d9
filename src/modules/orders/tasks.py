"""Asynchronous tasks of the orders module."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.conf import settings

from modules.orders.clients import CatalogClient
from modules.orders.repositories import SagaLogDjangoRepository
from modules.orders.saga import SagaRecovery

logger = structlog.get_logger(__name__)


@shared_task(name="orders.recover_abandoned_sagas")
def recover_abandoned_sagas() -> int:
    """Release stock held by sagas whose worker died mid-flight.

    Runs with the service token: there is no end-user request to borrow
    credentials from.
    """
    with CatalogClient.from_settings(token=settings.CATALOG_SERVICE_TOKEN) as client:
        recovered = SagaRecovery(
            saga_repository=SagaLogDjangoRepository(),
            catalog_client=client,
            timeout_seconds=settings.ORDER_SAGA_TIMEOUT_SECONDS,
        ).run()
    logger.info("saga.recovery_completed", recovered_count=recovered)
    return recovered
