"""Order domain exceptions.

Raised by the Service Layer and the Catalog Client when business rules
are violated or a remote call fails.  The API layer (Views) catches
these and translates them into appropriate HTTP responses.
"""

from __future__ import annotations


class OrderNotFound(Exception):
    """The requested order does not exist."""


class AccessDenied(Exception):
    """The order belongs to another user."""


class InvalidOrderStatus(Exception):
    """An invalid status transition was attempted."""


class StaleOrder(Exception):
    """The order changed between read and write (version mismatch)."""


class ProductInactive(Exception):
    """A product referenced by an order item is not available for sale."""


class OrderPersistenceFailed(Exception):
    """Stock was reserved but the order could not be stored."""


# ---------------------------------------------------------------------------
# Catalog client failures
# ---------------------------------------------------------------------------


class CatalogError(Exception):
    """Base class for every failure reported by the catalog client."""


class ProductNotFound(CatalogError):
    """The catalog has no product with the requested id."""


class InsufficientStock(CatalogError):
    """The catalog rejected a reservation (409 Conflict)."""


class CatalogUnavailable(CatalogError):
    """The catalog could not be reached (timeout, connection, 502/503/504)."""


class CatalogRequestFailed(CatalogError):
    """The catalog answered with an unexpected status or payload."""
