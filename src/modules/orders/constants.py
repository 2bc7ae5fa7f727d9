"""Order domain constants.

Defines status choices and valid status transitions for the order
state machine.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

CANCELLABLE_STATES: set[str] = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


class SagaStatus(models.TextChoices):
    STARTED = "STARTED", "Started"
    COMPLETED = "COMPLETED", "Completed"
    COMPENSATED = "COMPENSATED", "Compensated"
    RECOVERED = "RECOVERED", "Recovered"


OUTBOX_TOPIC = "orders"
