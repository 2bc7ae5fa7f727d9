"""Order repository interfaces.

``IOrderRepository`` extends ``IRepository[Order]`` with methods required
by the Order aggregate: atomic creation with items, versioned status
writes and status history tracking.  ``ISagaLogRepository`` persists the
progress of order-creation sagas.

The Service Layer depends exclusively on these contracts (DIP).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderSaga, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``user_id`` and ``items`` (list of dicts with
        ``product_id``, ``product_name``, ``unit_price``, ``quantity``), and
        optionally ``shipping_address`` and ``notes``.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and status history."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """List orders with optional filters."""

    @abstractmethod
    def transition_status(self, order: Order, new_status: str) -> bool:
        """Write *new_status* only if the stored version still matches.

        Returns ``False`` when another writer got there first; on success
        *order* is updated in place (status, version, updated_at).
        """

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        changed_by: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""


class ISagaLogRepository(ABC):
    """Durable progress log of order-creation sagas."""

    @abstractmethod
    def start(self, user_id: str) -> OrderSaga:
        """Open a new saga run in ``STARTED`` state."""

    @abstractmethod
    def record_reservation(self, saga_id: UUID, product_id: UUID, quantity: int) -> bool:
        """Persist one stock reservation taken by the saga.

        Returns ``False`` (and records nothing) when the saga has already
        left ``STARTED``: whoever claimed it will not see this reservation.
        """

    @abstractmethod
    def complete(self, saga_id: UUID, order_id: UUID) -> bool:
        """``STARTED → COMPLETED``; ``False`` if the saga was already claimed."""

    @abstractmethod
    def mark_compensated(self, saga_id: UUID, error: str) -> bool:
        """``STARTED → COMPENSATED``; ``False`` if the saga was already claimed."""

    @abstractmethod
    def list_abandoned(self, older_than: datetime) -> List[OrderSaga]:
        """Sagas still ``STARTED`` whose last progress is before *older_than*."""

    @abstractmethod
    def claim_for_recovery(self, saga_id: UUID) -> bool:
        """``STARTED → RECOVERED``; ``False`` if someone else claimed it."""

    @abstractmethod
    def reservations(self, saga_id: UUID) -> List[Tuple[UUID, int]]:
        """Reservations recorded for the saga, in the order they were taken."""
