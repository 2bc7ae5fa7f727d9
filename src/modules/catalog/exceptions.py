"""Catalog domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class ProductNotFound(Exception):
    """The requested product does not exist."""


class InsufficientStock(Exception):
    """The product exists but has fewer units than requested."""


class InvalidStockQuantity(Exception):
    """Units out of range, or the change would overflow the stock column."""
