"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes. The view never swallows generic exceptions.

The owner of an order is always ``request.user.sub``; the caller's raw
token (``request.auth``) is forwarded to the catalog service.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.core.permissions import HasPermissions, Permission
from modules.orders.clients import CatalogClient
from modules.orders.dtos import CreateOrderDTO
from modules.orders.exceptions import (
    AccessDenied,
    CatalogError,
    CatalogRequestFailed,
    CatalogUnavailable,
    InsufficientStock,
    InvalidOrderStatus,
    OrderNotFound,
    OrderPersistenceFailed,
    ProductInactive,
    ProductNotFound,
    StaleOrder,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories import OrderDjangoRepository, SagaLogDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    UpdateOrderStatusSerializer,
)
from modules.orders.services import OrderService

CREATE_ERROR_STATUS = {
    ProductNotFound: status.HTTP_404_NOT_FOUND,
    ProductInactive: status.HTTP_400_BAD_REQUEST,
    InsufficientStock: status.HTTP_409_CONFLICT,
    CatalogRequestFailed: status.HTTP_400_BAD_REQUEST,
    CatalogUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    OrderPersistenceFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def build_catalog_client(request: Request) -> CatalogClient:
    """Catalog client acting with the caller's own credentials."""
    return CatalogClient.from_settings(token=request.auth)


def _not_found() -> Response:
    return Response(
        {"detail": "Order not found."},
        status=status.HTTP_404_NOT_FOUND,
    )


def _forbidden(exc: Exception) -> Response:
    return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)


class OrderViewSet(GenericViewSet):
    """Customer-facing order endpoints.

    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.all()
    permission_classes = [HasPermissions]
    required_permissions = {
        "create": frozenset({Permission.PLACE_ORDERS}),
        "list": frozenset({Permission.VIEW_OWN_ORDERS}),
        "retrieve": frozenset({Permission.VIEW_OWN_ORDERS}),
        "cancel": frozenset({Permission.CANCEL_OWN_ORDERS}),
    }

    def _service(self, catalog_client: CatalogClient | None = None) -> OrderService:
        return OrderService(
            order_repository=OrderDjangoRepository(),
            saga_repository=SagaLogDjangoRepository(),
            catalog_client=catalog_client,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/"""
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        try:
            dto = CreateOrderDTO.model_validate(create_serializer.validated_data)
        except PydanticValidationError as exc:
            return Response(
                {"detail": exc.errors(include_url=False, include_context=False)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            with build_catalog_client(request) as client:
                order = self._service(client).create_order(request.user.sub, dto)
        except (CatalogError, ProductInactive, OrderPersistenceFailed) as exc:
            return Response(
                {"detail": str(exc)},
                status=CREATE_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
            )

        out = OrderSerializer(order)
        return Response(out.data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/  (the caller's own orders, newest first)"""
        orders = self._service().list_user_orders(request.user.sub)

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(orders, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service().get_order_for_user(pk, request.user.sub)
        except OrderNotFound:
            return _not_found()
        except AccessDenied as exc:
            return _forbidden(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels the order and hands its stock back to the catalog.
        """
        cancel_serializer = CancelOrderSerializer(data=request.data)
        cancel_serializer.is_valid(raise_exception=True)
        notes = cancel_serializer.validated_data["notes"]

        try:
            with build_catalog_client(request) as client:
                order = self._service(client).cancel_order(
                    order_id=pk,
                    user_id=request.user.sub,
                    notes=notes,
                )
        except OrderNotFound:
            return _not_found()
        except AccessDenied as exc:
            return _forbidden(exc)
        except InvalidOrderStatus as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except StaleOrder as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return Response(OrderSerializer(order).data)


class AdminOrderViewSet(GenericViewSet):
    """Back-office endpoints: every order, any owner."""

    serializer_class = OrderListSerializer
    pagination_class = StandardResultsSetPagination
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    permission_classes = [HasPermissions]
    required_permissions = frozenset({Permission.MANAGE_ORDERS})

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(order_repository=OrderDjangoRepository())

    def get_queryset(self):
        return Order.objects.prefetch_related("items")

    def list(self, request: Request) -> Response:
        """GET /api/v1/admin/orders/?status=&user_id="""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/admin/orders/{pk}/"""
        try:
            order = self._service.get_order(pk)
        except OrderNotFound:
            return _not_found()
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["put", "patch"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """PUT|PATCH /api/v1/admin/orders/{pk}/status/  body: ``{"status": ...}``"""
        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self._service.update_status(
                order_id=pk,
                new_status=serializer.validated_data["status"],
                changed_by=request.user.sub,
                notes=serializer.validated_data["notes"],
            )
        except OrderNotFound:
            return _not_found()
        except InvalidOrderStatus as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except StaleOrder as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return Response(status=status.HTTP_204_NO_CONTENT)
