"""Domain events for the Orders bounded context.

Both events are published to the message bus through the outbox and
serialize to the shared ``OrderLifecyclePayload`` contract.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Tuple
from uuid import UUID

from shared.contracts.orders import OrderItemPayload, OrderLifecyclePayload
from shared.domain.events import DomainEvent

if TYPE_CHECKING:
    from modules.orders.models import Order


@dataclass(frozen=True)
class OrderItemSnapshot:
    product_id: UUID
    product_name: str
    quantity: int


@dataclass(frozen=True)
class OrderLifecycleEvent(DomainEvent):
    """Common shape of ``OrderCreated`` and ``OrderCancelled``."""

    user_id: str = ""
    items: Tuple[OrderItemSnapshot, ...] = ()

    @classmethod
    def for_order(cls, order: Order) -> OrderLifecycleEvent:
        return cls(
            aggregate_id=order.id,
            user_id=order.user_id,
            items=tuple(
                OrderItemSnapshot(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                )
                for item in order.items.all()
            ),
        )

    def to_payload(self) -> Dict[str, Any]:
        return OrderLifecyclePayload(
            event_id=self.event_id,
            event_name=self.event_name,
            occurred_on=self.occurred_on,
            order_id=self.aggregate_id,
            user_id=self.user_id,
            items=[
                OrderItemPayload(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                )
                for item in self.items
            ],
        ).model_dump(mode="json")


@dataclass(frozen=True)
class OrderCreated(OrderLifecycleEvent):
    """Raised when an order is created."""


@dataclass(frozen=True)
class OrderCancelled(OrderLifecycleEvent):
    """Raised when an order is cancelled."""
