"""Catalog service wire contracts (schema version 1)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

CATALOG_SCHEMA_VERSION = 1

# Capacity of the stock column (32-bit signed integer).
MAX_STOCK_UNITS = 2**31 - 1


class ProductInfo(BaseModel):
    """Product as exposed by ``GET /api/v1/products/{id}/``.

    ``extra="ignore"`` lets a newer catalog add fields without breaking
    older order services.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    schema_version: Literal[1] = CATALOG_SCHEMA_VERSION
    id: UUID
    name: str
    price: Decimal
    stock: int
    is_active: bool
    updated_at: Optional[datetime] = None


class StockChangeRequest(BaseModel):
    """Body of the ``reserve`` and ``release`` stock endpoints."""

    model_config = ConfigDict(frozen=True)

    units: int = Field(gt=0, le=MAX_STOCK_UNITS)
