"""Catalog service layer: the stock ledger and back-office commands.

After creation, ``StockLedger`` is the only writer of ``Product.stock``.
Each of its operations is a single conditional statement at the storage
layer, so two concurrent reservations for the last unit can never both
succeed.
The database enforces it, not this process.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog

from modules.catalog.exceptions import (
    InsufficientStock,
    InvalidStockQuantity,
    ProductNotFound,
)
from modules.catalog.models import Product
from shared.contracts.catalog import MAX_STOCK_UNITS

if TYPE_CHECKING:
    from modules.catalog.dtos import CreateProductDTO
    from modules.catalog.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class StockLedger:
    """Atomic reserve/release of product stock.

    Receives an ``IProductRepository`` via constructor injection (DIP).
    """

    def __init__(self, repository: IProductRepository) -> None:
        self._repo = repository

    def reserve(self, product_id: UUID, units: int) -> None:
        """Take *units* out of stock in one compare-and-swap statement.

        Raises:
            InvalidStockQuantity: ``units`` is not positive.
            ProductNotFound: no product row with this id.
            InsufficientStock: fewer than ``units`` available at the moment
                of the update.
        """
        _check_units(units)
        log = logger.bind(product_id=str(product_id), units=units)

        if self._repo.decrement_stock_if_available(product_id, units):
            log.info("stock.reserved")
            return

        # Only reached on failure: tells "missing" apart from "depleted".
        if not self._repo.exists(product_id):
            log.warning("stock.reservation_rejected", reason="not_found")
            raise ProductNotFound(f"Product {product_id} not found")

        log.warning("stock.reservation_rejected", reason="insufficient_stock")
        raise InsufficientStock(f"Insufficient stock for product {product_id}")

    def release(self, product_id: UUID, units: int) -> None:
        """Put *units* back into stock.

        No business upper bound is checked: reserve and release form a
        symmetric counter and the catalog keeps no per-order ledger.  Only
        the capacity of the stock column (``MAX_STOCK_UNITS``) is enforced.

        Raises:
            InvalidStockQuantity: ``units`` is not positive, or the result
                would overflow the stock column.
            ProductNotFound: no product row with this id.
        """
        _check_units(units)
        self._add(product_id, units, "stock.released")

    def adjust(self, product_id: UUID, delta: int) -> None:
        """Apply a signed back-office correction to the stock counter.

        A negative *delta* goes through the same compare-and-swap as
        ``reserve`` and can never drive stock below zero.
        """
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise InvalidStockQuantity(f"Delta must be a non-zero integer, got {delta!r}.")

        if delta < 0:
            _check_units(-delta)
            if self._repo.decrement_stock_if_available(product_id, -delta):
                logger.info("stock.adjusted", product_id=str(product_id), delta=delta)
                return
            if not self._repo.exists(product_id):
                raise ProductNotFound(f"Product {product_id} not found")
            raise InsufficientStock(
                f"Cannot remove {-delta} units from product {product_id}"
            )

        _check_units(delta)
        self._add(product_id, delta, "stock.adjusted")

    def _add(self, product_id: UUID, units: int, event: str) -> None:
        log = logger.bind(product_id=str(product_id), units=units)

        if self._repo.increment_stock(product_id, units):
            log.info(event)
            return

        if not self._repo.exists(product_id):
            log.warning("stock.release_rejected", reason="not_found")
            raise ProductNotFound(f"Product {product_id} not found")

        log.warning("stock.release_rejected", reason="column_capacity")
        raise InvalidStockQuantity(
            f"Stock of product {product_id} cannot exceed {MAX_STOCK_UNITS} units."
        )


class ProductQueryService:
    """Read side of the catalog used by the product endpoints."""

    def __init__(self, repository: IProductRepository) -> None:
        self._repo = repository

    def get_product(self, id: str) -> Product:
        """Raises ``ProductNotFound`` if the product does not exist."""
        product = self._repo.get_by_id(id)
        if not product:
            raise ProductNotFound(f"Product {id} not found")
        return product

    def list_products(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        return self._repo.list(filters)


class ProductAdminService:
    """Back-office commands on the catalog.

    Stock corrections are delegated to ``StockLedger`` so that every stock
    write stays a single conditional statement.  Products are never
    deleted: order items keep referring to them, so removal deactivates.
    """

    def __init__(self, repository: IProductRepository, ledger: StockLedger) -> None:
        self._repo = repository
        self._ledger = ledger

    def create_product(self, dto: CreateProductDTO) -> Product:
        product = Product(
            name=dto.name,
            description=dto.description,
            price=dto.price,
            stock=dto.stock,
            is_active=dto.is_active,
        )
        product = self._repo.save(product)
        logger.info("product.created", product_id=str(product.id), stock=product.stock)
        return product

    def update_price(self, id: UUID, price: Decimal) -> Product:
        """Raises ``ProductNotFound`` if the product does not exist."""
        if not self._repo.update_price(id, price):
            raise ProductNotFound(f"Product {id} not found")
        logger.info("product.price_updated", product_id=str(id), price=str(price))
        return self._refetch(id)

    def adjust_stock(self, id: UUID, delta: int) -> Product:
        """Apply *delta* through the ledger and return the fresh product.

        Raises:
            ProductNotFound: no product row with this id.
            InsufficientStock: a negative *delta* exceeds the current stock.
            InvalidStockQuantity: the result would overflow the stock column.
        """
        self._ledger.adjust(id, delta)
        return self._refetch(id)

    def deactivate(self, id: UUID) -> None:
        """Raises ``ProductNotFound`` if the product does not exist."""
        if not self._repo.set_active(id, False):
            raise ProductNotFound(f"Product {id} not found")
        logger.info("product.deactivated", product_id=str(id))

    def _refetch(self, id: UUID) -> Product:
        product = self._repo.get_by_id(id)
        if not product:
            raise ProductNotFound(f"Product {id} not found")
        return product


def _check_units(units: int) -> None:
    if (
        isinstance(units, bool)
        or not isinstance(units, int)
        or not 1 <= units <= MAX_STOCK_UNITS
    ):
        raise InvalidStockQuantity(f"Units must be a positive integer, got {units!r}.")
