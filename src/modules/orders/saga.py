"""Order creation saga and recovery of abandoned sagas.

``OrderCreationSaga`` reserves stock for each requested item through the
Catalog Client, strictly in request order, and only then writes the
order.  Whatever goes wrong after the first reservation, the stock taken
so far is handed back (compensation) before the error propagates.

Every reservation is also written to the saga log (``OrderSaga`` /
``SagaReservation``).  If the process dies mid-saga the log survives, and
``SagaRecovery`` releases the recorded stock once the saga has been idle
for longer than ``ORDER_SAGA_TIMEOUT_SECONDS``.

Ownership of the compensation is decided by a conditional update on the
saga status: exactly one of ``COMPLETED``, ``COMPENSATED`` or
``RECOVERED`` wins, so stock is never released twice.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, List, Tuple
from uuid import UUID

import structlog
from django.db import DatabaseError, transaction
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, ReservedItem
from modules.orders.events import OrderCreated
from modules.orders.exceptions import (
    CatalogError,
    CatalogRequestFailed,
    CatalogUnavailable,
    InsufficientStock,
    OrderPersistenceFailed,
    ProductInactive,
)

if TYPE_CHECKING:
    from modules.orders.clients import CatalogClient
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import (
        IOrderRepository,
        ISagaLogRepository,
    )

logger = structlog.get_logger(__name__)

Ledger = List[Tuple[UUID, int]]


class _SagaAbandoned(Exception):
    """The recovery task claimed the saga before the order was committed."""


class OrderCreationSaga:
    """Reserve-then-persist workflow for a single order."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        saga_repository: ISagaLogRepository,
        catalog_client: CatalogClient,
    ) -> None:
        self._orders = order_repository
        self._sagas = saga_repository
        self._catalog = catalog_client

    def execute(self, user_id: str, dto: CreateOrderDTO) -> Order:
        """Run the saga and return the persisted ``PENDING`` order.

        Raises:
            ProductNotFound: an item references an unknown product.
            ProductInactive: an item references a product not for sale.
            InsufficientStock: the catalog rejected a reservation.
            CatalogRequestFailed: the catalog answered unexpectedly.
            CatalogUnavailable: the catalog could not be reached.
            OrderPersistenceFailed: stock was reserved but the order
                could not be stored.
        """
        saga = self._sagas.start(user_id)
        log = logger.bind(saga_id=str(saga.id), user_id=user_id)
        ledger: Ledger = []

        try:
            reserved = [self._reserve(saga.id, item, ledger, log) for item in dto.items]
        except _SagaAbandoned:
            log.error("saga.abandoned_during_reservation", reserved_count=len(ledger))
            raise OrderPersistenceFailed("Failed to create order")
        except DatabaseError as exc:
            log.error(
                "saga.log_write_failed",
                error=str(exc),
                reserved_count=len(ledger),
            )
            self._compensate(saga.id, ledger, str(exc))
            raise OrderPersistenceFailed("Failed to create order") from exc
        except Exception as exc:
            log.warning(
                "saga.reservation_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                reserved_count=len(ledger),
            )
            self._compensate(saga.id, ledger, str(exc))
            raise

        try:
            order = self._persist(saga.id, user_id, dto, reserved)
        except _SagaAbandoned:
            log.error("saga.abandoned_before_commit")
            raise OrderPersistenceFailed("Failed to create order")
        except DatabaseError as exc:
            log.error("saga.persistence_failed", error=str(exc))
            self._compensate(saga.id, ledger, str(exc))
            raise OrderPersistenceFailed("Failed to create order") from exc

        log.info(
            "saga.completed",
            order_id=str(order.id),
            total_amount=str(order.total_amount),
        )
        return order

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _reserve(
        self,
        saga_id: UUID,
        item: CreateOrderItemDTO,
        ledger: Ledger,
        log: structlog.stdlib.BoundLogger,
    ) -> ReservedItem:
        product = self._catalog.fetch_product(item.product_id)
        if not product.is_active:
            raise ProductInactive(f"Product {product.name} is not available")

        try:
            self._catalog.reserve_stock(item.product_id, item.quantity)
        except InsufficientStock as exc:
            raise InsufficientStock(f"Insufficient stock for {product.name}") from exc
        except CatalogUnavailable:
            raise
        except CatalogError as exc:
            raise CatalogRequestFailed(
                f"Failed to reserve stock for {product.name}: {exc}"
            ) from exc

        ledger.append((item.product_id, item.quantity))
        if not self._sagas.record_reservation(saga_id, item.product_id, item.quantity):
            # Recovery owns everything recorded so far, but not this one.
            release_all(self._catalog, [ledger[-1]], log)
            raise _SagaAbandoned()

        return ReservedItem(
            product_id=item.product_id,
            product_name=product.name,
            unit_price=product.price,
            quantity=item.quantity,
        )

    def _persist(
        self,
        saga_id: UUID,
        user_id: str,
        dto: CreateOrderDTO,
        reserved: List[ReservedItem],
    ) -> Order:
        with transaction.atomic():
            order = self._orders.create(
                {
                    "user_id": user_id,
                    "shipping_address": dto.shipping_address,
                    "notes": dto.notes,
                    "items": [item.model_dump() for item in reserved],
                }
            )
            self._orders.add_history(
                order_id=order.id,
                status=OrderStatus.PENDING,
                notes="Order created",
                changed_by=user_id,
            )
            order.add_domain_event(OrderCreated.for_order(order))
            self._orders.save(order)

            if not self._sagas.complete(saga_id, order.id):
                raise _SagaAbandoned()
        return order

    def _compensate(self, saga_id: UUID, ledger: Ledger, error: str) -> None:
        """Release every reservation in *ledger*; failures are logged only."""
        log = logger.bind(saga_id=str(saga_id))
        try:
            claimed = self._sagas.mark_compensated(saga_id, error)
        except DatabaseError as exc:
            # Saga log unreachable: releasing inline is still the best we can do.
            log.error("saga.compensation_claim_failed", error=str(exc))
            claimed = True

        if not claimed:
            log.warning("saga.compensation_skipped", reason="claimed_by_recovery")
            return

        released = release_all(self._catalog, ledger, log)
        log.info(
            "saga.compensated",
            released_count=released,
            reservation_count=len(ledger),
        )


class SagaRecovery:
    """Compensates sagas left in ``STARTED`` by a crashed worker."""

    def __init__(
        self,
        saga_repository: ISagaLogRepository,
        catalog_client: CatalogClient,
        timeout_seconds: int,
    ) -> None:
        self._sagas = saga_repository
        self._catalog = catalog_client
        self._timeout = timedelta(seconds=timeout_seconds)

    def run(self) -> int:
        """Release stock of every abandoned saga; returns how many were recovered."""
        cutoff = timezone.now() - self._timeout
        recovered = 0

        for saga in self._sagas.list_abandoned(cutoff):
            if not self._sagas.claim_for_recovery(saga.id):
                continue
            log = logger.bind(saga_id=str(saga.id), user_id=saga.user_id)
            reservations = self._sagas.reservations(saga.id)
            released = release_all(self._catalog, reservations, log)
            log.warning(
                "saga.recovered",
                released_count=released,
                reservation_count=len(reservations),
            )
            recovered += 1

        return recovered


def release_all(
    catalog_client: CatalogClient,
    reservations: Ledger,
    log: structlog.stdlib.BoundLogger,
) -> int:
    """Best-effort release of each reservation; never raises ``CatalogError``."""
    released = 0
    for product_id, quantity in reservations:
        try:
            catalog_client.release_stock(product_id, quantity)
        except CatalogError as exc:
            log.error(
                "saga.compensation_failed",
                product_id=str(product_id),
                quantity=quantity,
                error=str(exc),
            )
            continue
        released += 1
    return released
