"""Order repositories package."""

from modules.orders.repositories.django_repository import (
    OrderDjangoRepository,
    SagaLogDjangoRepository,
)
from modules.orders.repositories.interfaces import (
    IOrderRepository,
    ISagaLogRepository,
)

__all__ = [
    "IOrderRepository",
    "ISagaLogRepository",
    "OrderDjangoRepository",
    "SagaLogDjangoRepository",
]
