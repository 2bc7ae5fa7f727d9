"""Versioned wire contracts shared between services.

Every payload that crosses a service boundary (HTTP or message bus) is
described here once and imported by both the producer and the consumer.
"""

from shared.contracts.catalog import ProductInfo, StockChangeRequest
from shared.contracts.orders import OrderItemPayload, OrderLifecyclePayload

__all__ = [
    "OrderItemPayload",
    "OrderLifecyclePayload",
    "ProductInfo",
    "StockChangeRequest",
]
