"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``CreateOrderItemDTO``: input for a single order line item.
- ``CreateOrderDTO``: input for order creation (nested items).
- ``ReservedItem``: a line whose stock has been reserved, with the
  catalog snapshot taken at reservation time.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from shared.contracts.catalog import MAX_STOCK_UNITS


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single order item in a creation request.

    The client sends ``product_id`` and ``quantity``; name and price are
    resolved from the catalog by the saga.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_in_range(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        if v > MAX_STOCK_UNITS:
            raise ValueError(f"Quantity must be at most {MAX_STOCK_UNITS}.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Items are kept in request order: the saga reserves them one by one
    in exactly this order.
    """

    model_config = ConfigDict(frozen=True)

    items: List[CreateOrderItemDTO]
    shipping_address: str = ""
    notes: str = ""

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item")
        return v


class ReservedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    product_name: str
    unit_price: Decimal
    quantity: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity
