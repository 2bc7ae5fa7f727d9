"""Order lifecycle event contract (schema version 1).

Published on the message bus for ``OrderCreated`` and ``OrderCancelled``.
Delivery is at-least-once: consumers must deduplicate on ``event_id``.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ORDERS_SCHEMA_VERSION = 1


class OrderItemPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    product_name: str
    quantity: int = Field(gt=0)


class OrderLifecyclePayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    schema_version: Literal[1] = ORDERS_SCHEMA_VERSION
    event_id: UUID
    event_name: Literal["OrderCreated", "OrderCancelled"]
    occurred_on: datetime
    order_id: UUID
    user_id: str
    items: List[OrderItemPayload]
