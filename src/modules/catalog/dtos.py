"""Catalog DTOs for the back-office product endpoints.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``CreateProductDTO``: input for product creation.
- ``UpdatePriceDTO``: new list price of a product.
- ``AdjustStockDTO``: signed stock correction (goods received, shrinkage).
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.contracts.catalog import MAX_STOCK_UNITS


class CreateProductDTO(BaseModel):
    """Immutable DTO for product creation requests.

    Validates:
    - ``name`` is a non-empty string (surrounding blanks stripped).
    - ``price`` is greater than zero with at most two decimal places.
    - ``stock`` fits the stock column and is not negative.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(max_length=255)
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    description: str = ""
    stock: int = Field(default=0, ge=0, le=MAX_STOCK_UNITS)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def name_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Name must not be empty.")
        return v.strip()


class UpdatePriceDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)


class AdjustStockDTO(BaseModel):
    """Signed correction applied on top of the current stock.

    Applied relative to the current stock in one statement; there is no
    absolute "set stock to N" operation.
    """

    model_config = ConfigDict(frozen=True)

    delta: int = Field(ge=-MAX_STOCK_UNITS, le=MAX_STOCK_UNITS)

    @field_validator("delta")
    @classmethod
    def delta_must_not_be_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Delta must not be zero.")
        return v
