"""HTTP client for the Catalog service.

The Orders app never touches catalog tables: every product lookup and
stock change goes through this client, exactly as it would when the two
apps are deployed as separate services.

Failures are mapped onto the ``CatalogError`` hierarchy:

- 404 → ``ProductNotFound``
- 409 on reserve → ``InsufficientStock``
- transport errors, timeouts, 502/503/504 → ``CatalogUnavailable``
- anything else (unexpected status, malformed or undecodable body) →
  ``CatalogRequestFailed``
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import httpx
import structlog
from django.conf import settings
from pydantic import ValidationError

from modules.core.middleware import correlation_id_var
from modules.orders.exceptions import (
    CatalogRequestFailed,
    CatalogUnavailable,
    InsufficientStock,
    ProductNotFound,
)
from shared.contracts.catalog import ProductInfo, StockChangeRequest

logger = structlog.get_logger(__name__)

UNAVAILABLE_STATUSES = frozenset({502, 503, 504})


class CatalogClient:
    """Synchronous catalog client built on ``httpx.Client``."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        correlation_id = correlation_id_var.get()
        if correlation_id:
            headers["X-Request-ID"] = correlation_id

        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, token: Optional[str] = None, **kwargs: Any) -> CatalogClient:
        return cls(
            base_url=settings.CATALOG_SERVICE_URL,
            token=token,
            timeout=settings.CATALOG_TIMEOUT_SECONDS,
            **kwargs,
        )

    def __enter__(self) -> CatalogClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def fetch_product(self, product_id: UUID) -> ProductInfo:
        response = self._request("GET", f"products/{product_id}/")
        if response.status_code == 404:
            raise ProductNotFound(f"Product {product_id} not found")
        self._raise_for_status(response, "Could not fetch product")

        try:
            return ProductInfo.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CatalogRequestFailed(f"Could not fetch product: {exc}") from exc

    def reserve_stock(self, product_id: UUID, units: int) -> None:
        response = self._request(
            "POST", f"products/{product_id}/reserve/", json=self._units(units)
        )
        if response.status_code == 409:
            raise InsufficientStock(f"Insufficient stock for product {product_id}")
        if response.status_code == 404:
            raise ProductNotFound(f"Product {product_id} not found")
        self._raise_for_status(response, "Could not reserve stock")

    def release_stock(self, product_id: UUID, units: int) -> None:
        response = self._request(
            "POST", f"products/{product_id}/release/", json=self._units(units)
        )
        if response.status_code == 404:
            raise ProductNotFound(f"Product {product_id} not found")
        self._raise_for_status(response, "Could not release stock")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _units(units: int) -> Dict[str, Any]:
        return StockChangeRequest(units=units).model_dump()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.warning(
                "catalog.transport_error",
                method=method,
                url=url,
                error=str(exc),
            )
            raise CatalogUnavailable("Catalog service unavailable") from exc
        except httpx.HTTPError as exc:
            # Undecodable body, bad redirect and the like: the catalog answered.
            logger.warning(
                "catalog.response_error",
                method=method,
                url=url,
                error=str(exc),
            )
            raise CatalogRequestFailed(f"Unreadable catalog response: {exc}") from exc

        logger.debug(
            "catalog.response",
            method=method,
            url=url,
            status_code=response.status_code,
        )
        if response.status_code in UNAVAILABLE_STATUSES:
            raise CatalogUnavailable("Catalog service unavailable")
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, message: str) -> None:
        if response.is_success:
            return
        detail = response.text[:200]
        raise CatalogRequestFailed(f"{message} ({response.status_code}): {detail}")
