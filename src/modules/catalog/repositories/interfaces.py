"""Product repository interface.

Extends ``IRepository[Product]`` with the two atomic stock statements
the ``StockLedger`` is built on, plus the single-column writes used by
the back-office endpoints.
"""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.catalog.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def exists(self, id: UUID) -> bool:
        """Return ``True`` if a product row with this id exists."""

    @abstractmethod
    def decrement_stock_if_available(self, id: UUID, units: int) -> bool:
        """Atomically subtract *units* when ``stock >= units``.

        Must be a single conditional write (compare-and-swap); returns
        ``True`` when a row was updated.
        """

    @abstractmethod
    def increment_stock(self, id: UUID, units: int) -> bool:
        """Atomically add *units* unless the result would exceed ``MAX_STOCK_UNITS``.

        Returns ``True`` when a row was updated.
        """

    @abstractmethod
    def update_price(self, id: UUID, price: Decimal) -> bool:
        """Set the list price; returns ``True`` when a row was updated."""

    @abstractmethod
    def set_active(self, id: UUID, is_active: bool) -> bool:
        """Toggle availability; returns ``True`` when a row was updated."""
