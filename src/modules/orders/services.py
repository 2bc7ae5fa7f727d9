"""Order service layer (Use Cases).

Orchestrates order creation, cancellation and status management.
Every status write goes through the versioned conditional update of the
repository, so a stale writer can never overwrite a newer status.

Business rules enforced:
- Orders are created only through ``OrderCreationSaga``.
- Only the owner may read or cancel an order.
- Only ``PENDING`` / ``CONFIRMED`` orders can be cancelled; the status
  is claimed before stock is released, so stock is released at most once.
- Status transitions are validated against ``VALID_TRANSITIONS``.
- History is recorded on every status change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.orders.constants import CANCELLABLE_STATES, OrderStatus
from modules.orders.events import OrderCancelled
from modules.orders.exceptions import (
    AccessDenied,
    InvalidOrderStatus,
    OrderNotFound,
    StaleOrder,
)
from modules.orders.saga import OrderCreationSaga, release_all

if TYPE_CHECKING:
    from modules.orders.clients import CatalogClient
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import (
        IOrderRepository,
        ISagaLogRepository,
    )

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and the catalog client via constructor
    injection (DIP).  The catalog client is only needed by the commands
    that touch stock (create, cancel).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        saga_repository: Optional[ISagaLogRepository] = None,
        catalog_client: Optional[CatalogClient] = None,
    ) -> None:
        self._order_repo = order_repository
        self._saga_repo = saga_repository
        self._catalog = catalog_client

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, user_id: str, dto: CreateOrderDTO) -> Order:
        """Reserve stock for every item and persist a ``PENDING`` order.

        See ``OrderCreationSaga.execute`` for the raised exceptions.
        """
        logger.info(
            "order.creation_started",
            user_id=user_id,
            item_count=len(dto.items),
        )
        saga = OrderCreationSaga(
            order_repository=self._order_repo,
            saga_repository=self._require(self._saga_repo, "saga_repository"),
            catalog_client=self._require(self._catalog, "catalog_client"),
        )
        order = saga.execute(user_id, dto)
        return self._order_repo.get_by_id(str(order.id)) or order

    def cancel_order(self, order_id: UUID, user_id: str, notes: str = "") -> Order:
        """Cancel the caller's order and hand its stock back to the catalog.

        The ``CANCELLED`` status, its history row and the
        ``OrderCancelled`` outbox event are committed together.  Stock
        release happens afterwards and is best-effort: failures are
        logged, never raised.

        Raises:
            OrderNotFound: order does not exist.
            AccessDenied: order belongs to another user.
            InvalidOrderStatus: order is past the cancellable states.
            StaleOrder: the order changed while it was being cancelled.
        """
        catalog = self._require(self._catalog, "catalog_client")
        order = self._get(order_id)
        log = logger.bind(order_id=str(order_id), user_id=user_id)

        if not order.is_owned_by(user_id):
            log.warning("order.access_denied")
            raise AccessDenied("You do not have access to this order")

        self._check_cancellable(order)

        old_status = order.status
        with transaction.atomic():
            if not self._order_repo.transition_status(order, OrderStatus.CANCELLED):
                # Lost the race: report the status the winner left behind.
                current = self._get(order_id)
                self._check_cancellable(current)
                raise StaleOrder(f"Order {order_id} was modified concurrently")

            self._order_repo.add_history(
                order_id=order.id,
                status=OrderStatus.CANCELLED,
                notes=notes or "Order cancelled",
                old_status=old_status,
                changed_by=user_id,
            )
            order.add_domain_event(OrderCancelled.for_order(order))
            self._order_repo.save(order)

        log.info("order.cancelled", old_status=old_status)

        reservations = [(item.product_id, item.quantity) for item in order.items.all()]
        released = release_all(catalog, reservations, log)
        if released != len(reservations):
            log.error(
                "order.stock_release_incomplete",
                released_count=released,
                reservation_count=len(reservations),
            )

        return self._order_repo.get_by_id(str(order_id)) or order

    def update_status(
        self,
        order_id: UUID,
        new_status: str,
        changed_by: str = "",
        notes: str = "",
    ) -> Order:
        """Transition an order to a new status.

        Uses ``Order.can_transition_to`` for FSM validation and a version
        check on write.  On any error the stored status is left as is.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: transition is not allowed.
            StaleOrder: another writer changed the order first.
        """
        order = self._get(order_id)
        log = logger.bind(
            order_id=str(order_id),
            current_status=order.status,
            new_status=new_status,
        )

        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {order.status} to {new_status}"
            )

        old_status = order.status
        with transaction.atomic():
            if not self._order_repo.transition_status(order, new_status):
                raise StaleOrder(f"Order {order_id} was modified concurrently")
            self._order_repo.add_history(
                order_id=order.id,
                status=new_status,
                notes=notes,
                old_status=old_status,
                changed_by=changed_by,
            )

        log.info("order.status_updated", version=order.version)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID (admin view).

        Raises:
            OrderNotFound: if the order does not exist.
        """
        return self._get(order_id)

    def get_order_for_user(self, order_id: str, user_id: str) -> Order:
        """Retrieve one of the caller's orders.

        Raises:
            OrderNotFound: if the order does not exist.
            AccessDenied: if the order belongs to another user.
        """
        order = self._get(order_id)
        if not order.is_owned_by(user_id):
            raise AccessDenied("You do not have access to this order")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """Return a list of orders, optionally filtered."""
        return self._order_repo.list(filters)

    def list_user_orders(self, user_id: str) -> List[Order]:
        return self._order_repo.list({"user_id": str(user_id)})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, order_id: Any) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    @staticmethod
    def _check_cancellable(order: Order) -> None:
        if order.status not in CANCELLABLE_STATES:
            raise InvalidOrderStatus(
                f"Order cannot be cancelled. Current status is {order.status}"
            )

    @staticmethod
    def _require(dependency: Any, name: str) -> Any:
        if dependency is None:
            raise RuntimeError(f"OrderService was built without a {name}")
        return dependency
