"""Order API views.

Read side of the order record for the apps, plus the seller's live
location feed. Status-changing commands live in the fulfillment module,
which composes assignment, payment and proof capture.

Domain exceptions propagate to ``standard_exception_handler``; the view
never swallows them.
"""

from __future__ import annotations

from django.core.exceptions import ValidationError
from django.utils.dateparse import parse_datetime
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.models import OutboxEvent
from modules.core.pagination import StandardResultsSetPagination
from modules.drivers.dtos import Coordinates
from modules.orders.exceptions import OrderNotFound
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    LocationSerializer,
    OrderEventSerializer,
    OrderListSerializer,
    OrderSerializer,
)
from modules.orders.services import OrderTransitionService


class OrderViewSet(GenericViewSet):
    """ViewSet for Order reads.

    Does **not** extend ``ModelViewSet``: orders are created by the
    checkout and only change through conditioned writes.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["order_number", "customer_name"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    pagination_class = StandardResultsSetPagination

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderTransitionService(order_repository=OrderDjangoRepository())

    def get_queryset(self):
        return Order.objects.prefetch_related("items", "status_history")

    def _get_order(self, pk: str | None) -> Order:
        try:
            order = self.get_queryset().filter(id=pk).first()
        except (ValueError, ValidationError):
            order = None
        if order is None:
            raise OrderNotFound(f"Order {pk} not found.")
        return order

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, delivery method, seller, driver, date range)
        is handled by ``OrderFilter``. Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        return Response(OrderSerializer(self._get_order(pk)).data)

    # ------------------------------------------------------------------
    # Event feed
    # ------------------------------------------------------------------

    @action(detail=True, methods=["get"])
    def events(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/events/?since=<iso datetime>

        Everything emitted for the order, oldest first: status steps,
        provisional projections, payment progress and errors.
        """
        order = self._get_order(pk)
        rows = OutboxEvent.objects.filter(aggregate_id=str(order.id)).order_by(
            "created_at"
        )
        since = parse_datetime(request.query_params.get("since", "") or "")
        if since is not None:
            rows = rows.filter(created_at__gt=since)
        return Response(OrderEventSerializer(rows, many=True).data)

    # ------------------------------------------------------------------
    # Seller live location
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="seller-location")
    def seller_location(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/seller-location/"""
        serializer = LocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        snapshot = self._service.update_seller_location(
            self._get_order(pk).id, Coordinates(**serializer.validated_data)
        )
        return Response(
            {"id": str(snapshot.id), "version": snapshot.version, "status": snapshot.status}
        )
