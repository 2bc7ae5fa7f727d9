"""Order, OrderItem, OrderStatusHistory and saga log models.

Business rules implemented:
- Orders are never deleted; ``CANCELLED`` is a terminal status.
- Status transitions are validated against ``VALID_TRANSITIONS``
  (enforced at service layer) and written with an optimistic ``version``
  check so a stale writer can never overwrite a newer status.
- Each status change generates a history record.
- OrderItem snapshots product name and price at reservation time.
- OrderItem subtotal is always ``quantity * unit_price`` (calculated on save).
- ``OrderSaga`` / ``SagaReservation`` persist saga progress after every
  remote reservation so abandoned sagas can be compensated later.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    SagaStatus,
)
from shared.domain.events import DomainEventMixin


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``user_id`` is the subject claim of the token that placed the order;
    it is never taken from the request body.
    """

    user_id: models.CharField = models.CharField(max_length=255, db_index=True)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    total_amount: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    shipping_address: models.TextField = models.TextField(blank=True, default="")
    notes: models.TextField = models.TextField(blank=True, default="")
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == str(user_id)

    def __str__(self) -> str:
        return f"{self.id} ({self.status})"


class OrderItem(BaseModel):
    """Line item of an Order.

    ``product_name`` and ``unit_price`` are **snapshots** taken when the
    stock was reserved and never change even if the catalog renames or
    reprices the product later.  ``subtotal`` is always
    ``quantity * unit_price``, recalculated on every save.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id: models.UUIDField = models.UUIDField()
    product_name: models.CharField = models.CharField(max_length=255)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_name} x{self.quantity} (${self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``changed_by`` is the token subject of the caller; empty means the
    change was made by the system.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    changed_by: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"


class OrderSaga(BaseModel):
    """Durable log of one order-creation saga run.

    Moves out of ``STARTED`` exactly once, always through a conditional
    update, so the saga itself and the recovery task can never both
    compensate the same reservations.
    """

    user_id: models.CharField = models.CharField(max_length=255)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=SagaStatus.choices,
        default=SagaStatus.STARTED,
    )
    order_id: models.UUIDField = models.UUIDField(null=True, blank=True)
    error: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_sagas"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["status", "updated_at"],
                name="order_sagas_status_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"saga {self.id} [{self.status}]"


class SagaReservation(BaseModel):
    """One stock reservation taken by a saga run."""

    saga: models.ForeignKey = models.ForeignKey(
        "orders.OrderSaga",
        on_delete=models.CASCADE,
        related_name="reservations",
    )
    product_id: models.UUIDField = models.UUIDField()
    quantity: models.PositiveIntegerField = models.PositiveIntegerField()

    class Meta:
        db_table = "order_saga_reservations"
        ordering = ["created_at", "id"]
