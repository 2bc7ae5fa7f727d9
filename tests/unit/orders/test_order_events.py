"""Unit tests for the order lifecycle events and their wire contract."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from modules.orders.events import OrderCancelled, OrderCreated
from modules.orders.repositories import OrderDjangoRepository
from shared.contracts.orders import OrderLifecyclePayload
from shared.domain.events import DomainEvent

pytestmark = pytest.mark.unit


@pytest.fixture()
def order():
    return OrderDjangoRepository().create(
        {
            "user_id": "user-1",
            "items": [
                {
                    "product_id": uuid4(),
                    "product_name": "Widget",
                    "unit_price": Decimal("10.00"),
                    "quantity": 2,
                }
            ],
        }
    )


def test_event_name_follows_class():
    assert OrderCreated(aggregate_id=uuid4()).event_name == "OrderCreated"
    assert OrderCancelled(aggregate_id=uuid4()).event_name == "OrderCancelled"


def test_each_event_gets_its_own_id():
    aggregate_id = uuid4()
    assert OrderCreated(aggregate_id=aggregate_id).event_id != OrderCreated(
        aggregate_id=aggregate_id
    ).event_id


def test_payload_matches_contract(order):
    event = OrderCreated.for_order(order)

    payload = event.to_payload()

    assert payload["schema_version"] == 1
    assert payload["event_name"] == "OrderCreated"
    assert payload["order_id"] == str(order.id)
    assert payload["user_id"] == "user-1"
    assert payload["items"][0]["product_name"] == "Widget"
    assert payload["items"][0]["quantity"] == 2
    parsed = OrderLifecyclePayload.model_validate(payload)
    assert parsed.event_id == event.event_id


def test_payload_is_json_safe(order):
    payload = OrderCancelled.for_order(order).to_payload()

    assert isinstance(payload["event_id"], str)
    assert isinstance(payload["occurred_on"], str)
    UUID(payload["items"][0]["product_id"])


def test_events_are_collected_and_cleared(order):
    order.add_domain_event(OrderCreated.for_order(order))
    assert [e.event_name for e in order.domain_events] == ["OrderCreated"]

    order.clear_domain_events()
    assert order.domain_events == []


def test_event_without_contract_has_no_payload():
    with pytest.raises(NotImplementedError, match="DomainEvent"):
        DomainEvent(aggregate_id=uuid4()).to_payload()
