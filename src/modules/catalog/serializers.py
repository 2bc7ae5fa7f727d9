"""Catalog DRF serializers.

The detail payload is produced from the shared ``ProductInfo`` contract
so the catalog and its clients can never drift apart.
"""

from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from modules.catalog.models import Product
from shared.contracts.catalog import ProductInfo


class ProductListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ["id", "name", "price", "stock", "is_active"]
        read_only_fields = fields


def product_info(product: Product) -> Dict[str, Any]:
    """Render *product* as a ``ProductInfo`` JSON document."""
    return ProductInfo(
        id=product.id,
        name=product.name,
        price=product.price,
        stock=product.stock,
        is_active=product.is_active,
        updated_at=product.updated_at,
    ).model_dump(mode="json")
