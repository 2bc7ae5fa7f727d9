"""Unit tests for order cancellation.

Covers:
- Cancel from PENDING / CONFIRMED: status, history, outbox event and
  stock released for every item.
- Cancel from a non-cancellable state names the current status.
- Second cancellation fails with the status error and never releases
  stock twice.
- Ownership is enforced.
- Release failures are logged, the cancellation still stands.
- A concurrent writer surfaces as ``StaleOrder`` or the status error.
"""

from __future__ import annotations

from unittest.mock import patch
from uuid import uuid4

import pytest

from modules.core.models import OutboxEvent
from modules.orders.constants import OrderStatus
from modules.orders.dtos import CreateOrderDTO
from modules.orders.exceptions import (
    AccessDenied,
    CatalogUnavailable,
    InvalidOrderStatus,
    OrderNotFound,
    StaleOrder,
)
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories import OrderDjangoRepository, SagaLogDjangoRepository
from modules.orders.services import OrderService

pytestmark = pytest.mark.unit

USER = "user-1"


@pytest.fixture()
def service(fake_catalog):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        saga_repository=SagaLogDjangoRepository(),
        catalog_client=fake_catalog,
    )


@pytest.fixture()
def products(fake_catalog):
    return (
        fake_catalog.add_product("Alpha", "10.00", stock=10),
        fake_catalog.add_product("Beta", "25.50", stock=10),
    )


@pytest.fixture()
def order(service, products):
    a, b = products
    return service.create_order(
        USER,
        CreateOrderDTO(
            items=[{"product_id": a, "quantity": 2}, {"product_id": b, "quantity": 3}]
        ),
    )


def _force_status(order, status):
    Order.objects.filter(id=order.id).update(status=status)


class TestCancelSuccess:
    def test_cancel_pending_order_releases_stock(self, service, order, products, fake_catalog):
        a, b = products
        assert fake_catalog.stock(a) == 8

        cancelled = service.cancel_order(order.id, USER)

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.version == 2
        assert fake_catalog.stock(a) == 10
        assert fake_catalog.stock(b) == 10

    def test_cancel_confirmed_order(self, service, order, products, fake_catalog):
        service.update_status(order.id, OrderStatus.CONFIRMED)

        cancelled = service.cancel_order(order.id, USER)

        assert cancelled.status == OrderStatus.CANCELLED
        assert fake_catalog.stock(products[0]) == 10

    def test_history_and_outbox(self, service, order):
        service.cancel_order(order.id, USER, notes="Changed my mind")

        history = OrderStatusHistory.objects.filter(
            order_id=order.id, new_status=OrderStatus.CANCELLED
        ).get()
        assert history.old_status == OrderStatus.PENDING
        assert history.notes == "Changed my mind"
        assert history.changed_by == USER

        event = OutboxEvent.objects.get(
            aggregate_id=str(order.id), event_type="OrderCancelled"
        )
        assert event.payload["user_id"] == USER
        assert len(event.payload["items"]) == 2


class TestCancelRejected:
    @pytest.mark.parametrize(
        "status",
        [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED],
    )
    def test_non_cancellable_status(self, service, order, fake_catalog, status):
        _force_status(order, status)

        with pytest.raises(
            InvalidOrderStatus,
            match=f"Order cannot be cancelled. Current status is {status}",
        ):
            service.cancel_order(order.id, USER)

        assert fake_catalog.calls_for("release") == []
        assert Order.objects.get(id=order.id).status == status

    def test_second_cancellation_never_double_releases(
        self, service, order, products, fake_catalog
    ):
        service.cancel_order(order.id, USER)

        with pytest.raises(InvalidOrderStatus, match="CANCELLED"):
            service.cancel_order(order.id, USER)

        assert len(fake_catalog.calls_for("release")) == 2
        assert fake_catalog.stock(products[0]) == 10

    def test_other_user_cannot_cancel(self, service, order, fake_catalog):
        with pytest.raises(AccessDenied):
            service.cancel_order(order.id, "user-2")

        assert Order.objects.get(id=order.id).status == OrderStatus.PENDING
        assert fake_catalog.calls_for("release") == []

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.cancel_order(uuid4(), USER)


class TestCancelRaces:
    @staticmethod
    def _stale_read(winning_status):
        """First read returns a copy that another writer then overtakes."""
        repo = OrderDjangoRepository()
        original = repo.get_by_id
        reads = []

        def read(order_id):
            found = original(order_id)
            if not reads:
                reads.append(order_id)
                repo.transition_status(Order.objects.get(id=found.id), winning_status)
            return found

        return patch.object(OrderDjangoRepository, "get_by_id", side_effect=read)

    def test_concurrent_cancel_reports_status_error(self, service, order, fake_catalog):
        with self._stale_read(OrderStatus.CANCELLED):
            with pytest.raises(InvalidOrderStatus, match="CANCELLED"):
                service.cancel_order(order.id, USER)

        assert fake_catalog.calls_for("release") == []

    def test_concurrent_confirm_reports_stale(self, service, order, fake_catalog):
        with self._stale_read(OrderStatus.CONFIRMED):
            with pytest.raises(StaleOrder):
                service.cancel_order(order.id, USER)

        assert Order.objects.get(id=order.id).status == OrderStatus.CONFIRMED
        assert fake_catalog.calls_for("release") == []


class TestReleaseFailures:
    def test_release_failure_is_logged_not_raised(
        self, service, order, products, fake_catalog
    ):
        a, b = products
        fake_catalog.fail("release", a, CatalogUnavailable("Catalog service unavailable"))

        cancelled = service.cancel_order(order.id, USER)

        assert cancelled.status == OrderStatus.CANCELLED
        assert fake_catalog.stock(a) == 8
        assert fake_catalog.stock(b) == 10
