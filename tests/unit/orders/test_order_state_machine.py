"""Unit tests for the Order status state machine.

Covers:
- Every (current, target) pair: allowed pairs succeed, every other pair
  fails with ``Cannot transition from X to Y`` and leaves the order as is.
- History recorded with the acting user on every transition.
- Full lifecycle through the state machine.
- Version check rejects a stale writer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from itertools import product as cartesian
from unittest.mock import patch
from uuid import uuid4

import pytest
from freezegun import freeze_time

from modules.orders.constants import TERMINAL_STATES, VALID_TRANSITIONS, OrderStatus
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound, StaleOrder
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import OrderService

pytestmark = pytest.mark.unit

ALL_STATUSES = list(OrderStatus)


@pytest.fixture()
def repo():
    return OrderDjangoRepository()


@pytest.fixture()
def service(repo):
    return OrderService(order_repository=repo)


@pytest.fixture()
def make_order(repo):
    def _make(status=OrderStatus.PENDING):
        order = repo.create(
            {
                "user_id": "user-1",
                "items": [
                    {
                        "product_id": uuid4(),
                        "product_name": "Widget",
                        "unit_price": Decimal("10.00"),
                        "quantity": 1,
                    }
                ],
            }
        )
        Order.objects.filter(id=order.id).update(status=status)
        return order

    return _make


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATES:
            assert VALID_TRANSITIONS[status] == set()

    def test_every_status_is_in_the_table(self):
        assert set(VALID_TRANSITIONS) == set(ALL_STATUSES)

    @pytest.mark.parametrize("current,target", list(cartesian(ALL_STATUSES, ALL_STATUSES)))
    def test_transition_closure(self, service, make_order, current, target):
        order = make_order(current)
        allowed = target in VALID_TRANSITIONS[current]

        if allowed:
            updated = service.update_status(order.id, target, changed_by="admin-1")
            assert updated.status == target
            assert Order.objects.get(id=order.id).status == target
        else:
            with pytest.raises(
                InvalidOrderStatus,
                match=f"Cannot transition from {current} to {target}",
            ):
                service.update_status(order.id, target)
            stored = Order.objects.get(id=order.id)
            assert stored.status == current
            assert stored.version == 1


class TestUpdateStatus:
    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.update_status(uuid4(), OrderStatus.CONFIRMED)

    def test_unknown_status_is_invalid(self, service, make_order):
        order = make_order()
        with pytest.raises(InvalidOrderStatus):
            service.update_status(order.id, "LOST")

    def test_history_records_actor_and_notes(self, service, make_order):
        order = make_order()

        service.update_status(
            order.id, OrderStatus.CONFIRMED, changed_by="admin-1", notes="Paid"
        )

        history = OrderStatusHistory.objects.get(
            order_id=order.id, new_status=OrderStatus.CONFIRMED
        )
        assert history.old_status == OrderStatus.PENDING
        assert history.changed_by == "admin-1"
        assert history.notes == "Paid"

    def test_updated_at_is_stamped(self, service, make_order):
        with freeze_time("2026-01-01T00:00:00Z"):
            order = make_order()

        with freeze_time("2026-01-05T08:30:00Z"):
            service.update_status(order.id, OrderStatus.CONFIRMED)

        stored = Order.objects.get(id=order.id)
        assert stored.updated_at == datetime(2026, 1, 5, 8, 30, tzinfo=timezone.utc)

    def test_full_lifecycle(self, service, make_order):
        order = make_order()
        path = [
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]
        for status in path:
            service.update_status(order.id, status)

        stored = Order.objects.get(id=order.id)
        assert stored.status == OrderStatus.DELIVERED
        assert stored.version == 1 + len(path)
        assert list(
            OrderStatusHistory.objects.filter(order_id=order.id)
            .order_by("created_at", "id")
            .values_list("new_status", flat=True)
        ) == path

    def test_stale_writer_is_rejected(self, service, make_order):
        order = make_order()
        with patch.object(
            OrderDjangoRepository, "transition_status", return_value=False
        ):
            with pytest.raises(StaleOrder):
                service.update_status(order.id, OrderStatus.CONFIRMED)

        assert not OrderStatusHistory.objects.filter(order_id=order.id).exists()
