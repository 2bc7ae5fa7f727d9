"""Catalog API views.

Exposes the product read model and the ``StockLedger`` over HTTP, plus
the admin-only back-office commands of ``ProductAdminService``.
Domain exceptions are caught and translated into appropriate HTTP
status codes. The view never swallows generic exceptions.
"""

from __future__ import annotations

from uuid import UUID

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.mixins import ListModelMixin
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.catalog.dtos import AdjustStockDTO, CreateProductDTO, UpdatePriceDTO
from modules.catalog.exceptions import (
    InsufficientStock,
    InvalidStockQuantity,
    ProductNotFound,
)
from modules.catalog.filters import ProductFilter
from modules.catalog.models import Product
from modules.catalog.repositories import ProductDjangoRepository
from modules.catalog.serializers import ProductListSerializer, product_info
from modules.catalog.services import (
    ProductAdminService,
    ProductQueryService,
    StockLedger,
)
from modules.core.pagination import StandardResultsSetPagination
from modules.core.permissions import HasPermissions, Permission
from shared.contracts.catalog import StockChangeRequest


class ProductViewSet(ListModelMixin, GenericViewSet):
    """Product look-ups, the ``reserve`` / ``release`` stock actions and the
    back-office commands (create, price, stock correction, deactivate).
    """

    queryset = Product.objects.all()
    serializer_class = ProductListSerializer
    pagination_class = StandardResultsSetPagination
    filterset_class = ProductFilter
    ordering_fields = ["name", "price", "stock"]
    ordering = ["name"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    permission_classes = [HasPermissions]
    required_permissions = {
        "list": frozenset({Permission.READ_CATALOG}),
        "retrieve": frozenset({Permission.READ_CATALOG}),
        "reserve": frozenset({Permission.RESERVE_STOCK}),
        "release": frozenset({Permission.RESERVE_STOCK}),
        "create": frozenset({Permission.MANAGE_CATALOG}),
        "destroy": frozenset({Permission.MANAGE_CATALOG}),
        "price": frozenset({Permission.MANAGE_CATALOG}),
        "stock": frozenset({Permission.MANAGE_CATALOG}),
    }

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        repository = ProductDjangoRepository()
        self._queries = ProductQueryService(repository)
        self._ledger = StockLedger(repository)
        self._admin = ProductAdminService(repository, self._ledger)

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/"""
        try:
            product = self._queries.get_product(pk)
        except ProductNotFound:
            return Response(
                {"detail": "Product not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(product_info(product))

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def reserve(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/products/{pk}/reserve/  body: ``{"units": n}``"""
        return self._change_stock(request, pk, self._ledger.reserve)

    @action(detail=True, methods=["post"])
    def release(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/products/{pk}/release/  body: ``{"units": n}``"""
        return self._change_stock(request, pk, self._ledger.release)

    def _change_stock(self, request: Request, pk, operation) -> Response:
        try:
            body = StockChangeRequest.model_validate(request.data)
        except PydanticValidationError as exc:
            return _invalid(exc)

        product_id = _parse_id(pk)
        if product_id is None:
            return _not_found(pk)

        try:
            operation(product_id, body.units)
        except ProductNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientStock as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except InvalidStockQuantity as exc:
            return Response(
                {"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST
            )

        return Response({"product_id": str(product_id), "units": body.units})

    # ------------------------------------------------------------------
    # Back office
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/products/"""
        try:
            dto = CreateProductDTO.model_validate(request.data)
        except PydanticValidationError as exc:
            return _invalid(exc)

        product = self._admin.create_product(dto)
        return Response(product_info(product), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["patch"], url_path="price")
    def price(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/products/{pk}/price/  body: ``{"price": "12.50"}``"""
        try:
            dto = UpdatePriceDTO.model_validate(request.data)
        except PydanticValidationError as exc:
            return _invalid(exc)

        product_id = _parse_id(pk)
        if product_id is None:
            return _not_found(pk)
        try:
            product = self._admin.update_price(product_id, dto.price)
        except ProductNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        return Response(product_info(product))

    @action(detail=True, methods=["post"], url_path="stock")
    def stock(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/products/{pk}/stock/  body: ``{"delta": n}``

        Relative correction; a negative delta never takes stock below zero.
        """
        try:
            dto = AdjustStockDTO.model_validate(request.data)
        except PydanticValidationError as exc:
            return _invalid(exc)

        product_id = _parse_id(pk)
        if product_id is None:
            return _not_found(pk)
        try:
            product = self._admin.adjust_stock(product_id, dto.delta)
        except ProductNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientStock as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except InvalidStockQuantity as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(product_info(product))

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/products/{pk}/

        Deactivates the product; existing orders keep their snapshot.
        """
        product_id = _parse_id(pk)
        if product_id is None:
            return _not_found(pk)
        try:
            self._admin.deactivate(product_id)
        except ProductNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


def _parse_id(pk) -> UUID | None:
    try:
        return UUID(str(pk))
    except ValueError:
        return None


def _not_found(pk) -> Response:
    return Response(
        {"detail": f"Product {pk} not found"},
        status=status.HTTP_404_NOT_FOUND,
    )


def _invalid(exc: PydanticValidationError) -> Response:
    return Response(
        {"detail": exc.errors(include_url=False, include_context=False)},
        status=status.HTTP_400_BAD_REQUEST,
    )
