from __future__ import annotations

import time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

import httpx
import jwt as pyjwt
import pytest
import uuid6
from django.conf import settings
from django.core.cache import cache
from django.test import Client
from rest_framework.test import APIClient

from modules.catalog.models import Product
from modules.orders.clients import CatalogClient
from modules.orders.exceptions import InsufficientStock, ProductNotFound
from shared.contracts.catalog import ProductInfo

USER_SUB = "user-1"
OTHER_USER_SUB = "user-2"
ADMIN_SUB = "admin-1"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


# ---------------------------------------------------------------------------
# Tokens & API clients
# ---------------------------------------------------------------------------


def make_token(sub: str = USER_SUB, roles: Iterable[str] = ("User",), **claims: Any) -> str:
    payload = {
        "sub": sub,
        settings.JWT_ROLES_CLAIM: list(roles),
        "iat": int(time.time()),
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    return pyjwt.encode(payload, settings.JWT_SIGNING_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def token_factory():
    return make_token


@pytest.fixture()
def user_token():
    return make_token(USER_SUB, ["User"])


@pytest.fixture()
def admin_token():
    return make_token(ADMIN_SUB, ["Admin"])


@pytest.fixture()
def user_client(user_token):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {user_token}")
    return client


@pytest.fixture()
def other_user_client():
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {make_token(OTHER_USER_SUB)}")
    return client


@pytest.fixture()
def admin_client(admin_token):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {admin_token}")
    return client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def product_factory():
    def _create(
        name: str = "Widget",
        price: str = "10.00",
        stock: int = 5,
        is_active: bool = True,
    ) -> Product:
        return Product.objects.create(
            name=name,
            price=Decimal(price),
            stock=stock,
            is_active=is_active,
        )

    return _create


def _route_to_django(request: httpx.Request) -> httpx.Response:
    """Serve catalog calls with the in-process Django catalog views."""
    response = Client().generic(
        request.method,
        request.url.path,
        data=request.content,
        content_type=request.headers.get("content-type", "application/json"),
        HTTP_AUTHORIZATION=request.headers.get("authorization", ""),
        HTTP_X_REQUEST_ID=request.headers.get("x-request-id", ""),
    )
    return httpx.Response(
        response.status_code,
        content=response.content,
        headers={"content-type": response.get("Content-Type", "application/json")},
    )


@pytest.fixture()
def catalog_transport():
    return httpx.MockTransport(_route_to_django)


@pytest.fixture()
def catalog_client(user_token, catalog_transport):
    with CatalogClient(
        base_url=settings.CATALOG_SERVICE_URL,
        token=user_token,
        transport=catalog_transport,
    ) as client:
        yield client


@pytest.fixture()
def http_catalog(monkeypatch, catalog_transport):
    """Route the orders views' catalog calls to the in-process catalog."""
    monkeypatch.setattr(
        "modules.orders.views.build_catalog_client",
        lambda request: CatalogClient.from_settings(
            token=request.auth, transport=catalog_transport
        ),
    )


class FakeCatalogClient:
    """In-memory stand-in for ``CatalogClient`` with failure injection."""

    def __init__(self) -> None:
        self.products: Dict[UUID, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, UUID, Optional[int]]] = []
        self._failures: Dict[Tuple[str, UUID], Exception] = {}

    def add_product(
        self,
        name: str = "Widget",
        price: str = "10.00",
        stock: int = 5,
        is_active: bool = True,
    ) -> UUID:
        product_id = uuid6.uuid7()
        self.products[product_id] = {
            "name": name,
            "price": Decimal(price),
            "stock": stock,
            "is_active": is_active,
        }
        return product_id

    def fail(self, operation: str, product_id: UUID, exc: Exception) -> None:
        self._failures[(operation, product_id)] = exc

    def stock(self, product_id: UUID) -> int:
        return self.products[product_id]["stock"]

    def calls_for(self, operation: str) -> List[Tuple[UUID, Optional[int]]]:
        return [(pid, units) for op, pid, units in self.calls if op == operation]

    # CatalogClient surface -------------------------------------------------

    def fetch_product(self, product_id: UUID) -> ProductInfo:
        self._enter("fetch", product_id, None)
        data = self.products[product_id]
        return ProductInfo(id=product_id, **data)

    def reserve_stock(self, product_id: UUID, units: int) -> None:
        self._enter("reserve", product_id, units)
        data = self.products[product_id]
        if data["stock"] < units:
            raise InsufficientStock(f"Insufficient stock for product {product_id}")
        data["stock"] -= units

    def release_stock(self, product_id: UUID, units: int) -> None:
        self._enter("release", product_id, units)
        self.products[product_id]["stock"] += units

    def close(self) -> None:
        pass

    def __enter__(self) -> FakeCatalogClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _enter(self, operation: str, product_id: UUID, units: Optional[int]) -> None:
        self.calls.append((operation, product_id, units))
        failure = self._failures.get((operation, product_id))
        if failure is not None:
            raise failure
        if product_id not in self.products:
            raise ProductNotFound(f"Product {product_id} not found")


@pytest.fixture()
def fake_catalog():
    return FakeCatalogClient()
