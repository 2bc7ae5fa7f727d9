"""Django ORM implementation of the Order repositories.

Satisfies ``IOrderRepository`` and ``ISagaLogRepository`` using Django's
QuerySet API.  Writes that must not be lost together (order + items,
status + outbox event) are wrapped in ``transaction.atomic()``.

Concurrency control on status updates uses the ``version`` column:
``UPDATE ... WHERE id = ? AND version = ?`` in a single statement.
Saga state changes use the same conditional-update idiom on ``status``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from kombu.exceptions import KombuError

from modules.core.models import OutboxEvent
from modules.orders.constants import OUTBOX_TOPIC, SagaStatus
from modules.orders.models import (
    Order,
    OrderItem,
    OrderSaga,
    OrderStatusHistory,
    SagaReservation,
)
from modules.orders.repositories.interfaces import (
    IOrderRepository,
    ISagaLogRepository,
)

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``total_amount`` is computed here from the item subtotals, so the
        stored total can never disagree with the stored items.
        """
        order = Order(
            user_id=str(data["user_id"]),
            shipping_address=data.get("shipping_address", ""),
            notes=data.get("notes", ""),
        )
        order.save()

        total = Decimal("0.00")
        items = data.get("items", [])
        for item_data in items:
            item = OrderItem(
                order=order,
                product_id=item_data["product_id"],
                product_name=item_data["product_name"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            )
            item.save()
            total += item.subtotal

        order.total_amount = total
        order.save(update_fields=["total_amount", "updated_at"])

        logger.info("order.created", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded items and status history.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.prefetch_related("items", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """List orders with optional filters.

        Supported filter keys:
        - ``status``
        - ``user_id``
        """
        queryset = Order.objects.prefetch_related("items")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    # ------------------------------------------------------------------
    # Save (IRepository contract) + outbox
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and move its pending domain events to the outbox."""
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=event.to_payload(),
                topic=OUTBOX_TOPIC,
            )
        entity.clear_domain_events()

        if events:
            transaction.on_commit(_schedule_outbox_dispatch)

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def transition_status(self, order: Order, new_status: str) -> bool:
        now = timezone.now()
        rows = Order.objects.filter(id=order.id, version=order.version).update(
            status=new_status,
            version=F("version") + 1,
            updated_at=now,
        )
        if rows != 1:
            logger.warning(
                "order.stale_write_rejected",
                order_id=str(order.id),
                expected_version=order.version,
            )
            return False

        order.status = new_status
        order.version += 1
        order.updated_at = now
        return True

    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        changed_by: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            changed_by=changed_by,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history


class SagaLogDjangoRepository(ISagaLogRepository):
    """Concrete saga log backed by Django ORM."""

    def start(self, user_id: str) -> OrderSaga:
        saga = OrderSaga.objects.create(user_id=str(user_id))
        logger.info("saga.started", saga_id=str(saga.id))
        return saga

    def record_reservation(self, saga_id: UUID, product_id: UUID, quantity: int) -> bool:
        with transaction.atomic():
            # Touching the saga row first locks it against a concurrent
            # claim and keeps ``updated_at`` fresh while the saga is active.
            rows = OrderSaga.objects.filter(
                id=saga_id, status=SagaStatus.STARTED
            ).update(updated_at=timezone.now())
            if rows != 1:
                return False
            SagaReservation.objects.create(
                saga_id=saga_id, product_id=product_id, quantity=quantity
            )
        return True

    def complete(self, saga_id: UUID, order_id: UUID) -> bool:
        return self._leave_started(saga_id, SagaStatus.COMPLETED, order_id=order_id)

    def mark_compensated(self, saga_id: UUID, error: str) -> bool:
        return self._leave_started(saga_id, SagaStatus.COMPENSATED, error=error)

    def claim_for_recovery(self, saga_id: UUID) -> bool:
        return self._leave_started(
            saga_id, SagaStatus.RECOVERED, error="Abandoned saga recovered"
        )

    def list_abandoned(self, older_than: datetime) -> List[OrderSaga]:
        return list(
            OrderSaga.objects.filter(
                status=SagaStatus.STARTED, updated_at__lt=older_than
            )
        )

    def reservations(self, saga_id: UUID) -> List[Tuple[UUID, int]]:
        return list(
            SagaReservation.objects.filter(saga_id=saga_id).values_list(
                "product_id", "quantity"
            )
        )

    @staticmethod
    def _leave_started(saga_id: UUID, status: str, **fields: Any) -> bool:
        rows = OrderSaga.objects.filter(id=saga_id, status=SagaStatus.STARTED).update(
            status=status, updated_at=timezone.now(), **fields
        )
        return rows == 1


def _schedule_outbox_dispatch() -> None:
    """Kick the outbox relay right after commit.

    If the broker is down the events stay ``PENDING`` and the periodic
    relay picks them up later.
    """
    from modules.core.tasks import dispatch_outbox_events

    try:
        dispatch_outbox_events.delay()
    except KombuError as exc:
        logger.warning("outbox.dispatch_schedule_failed", error=str(exc))
