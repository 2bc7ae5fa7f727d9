"""Django ORM implementation of the Product repository.

Error handling follows the Null Object pattern: look-ups return ``None``
and stock statements return ``False`` instead of raising.  The Service
Layer decides how to translate a missing entity.

Stock statements are ``QuerySet.update()`` calls with ``F()`` expressions,
which Django compiles to one ``UPDATE ... WHERE`` statement.  The
database evaluates the predicate and the write together, so concurrent
callers are serialized by the row itself, not by the application.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from modules.catalog.models import Product
from modules.catalog.repositories.interfaces import IProductRepository
from shared.contracts.catalog import MAX_STOCK_UNITS

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a product by primary key.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id))
        return entity

    # ------------------------------------------------------------------
    # Stock statements
    # ------------------------------------------------------------------

    def exists(self, id: UUID) -> bool:
        return Product.objects.filter(id=id).exists()

    def decrement_stock_if_available(self, id: UUID, units: int) -> bool:
        rows = Product.objects.filter(id=id, stock__gte=units).update(
            stock=F("stock") - units,
            updated_at=timezone.now(),
        )
        return rows == 1

    def increment_stock(self, id: UUID, units: int) -> bool:
        rows = Product.objects.filter(
            id=id, stock__lte=MAX_STOCK_UNITS - units
        ).update(
            stock=F("stock") + units,
            updated_at=timezone.now(),
        )
        return rows == 1

    # ------------------------------------------------------------------
    # Back-office writes
    # ------------------------------------------------------------------

    def update_price(self, id: UUID, price: Decimal) -> bool:
        rows = Product.objects.filter(id=id).update(
            price=price,
            updated_at=timezone.now(),
        )
        return rows == 1

    def set_active(self, id: UUID, is_active: bool) -> bool:
        rows = Product.objects.filter(id=id).update(
            is_active=is_active,
            updated_at=timezone.now(),
        )
        return rows == 1
