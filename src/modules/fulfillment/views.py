"""Fulfillment command API.

Every command is a POST on ``/fulfillment/orders/{pk}/<action>/`` and
answers with the resulting order (or deposit) state. Domain errors
propagate to ``standard_exception_handler``.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ViewSet

from modules.drivers.dtos import Coordinates
from modules.fulfillment.factories import build_controller
from modules.fulfillment.serializers import (
    AssignSerializer,
    CancelSerializer,
    CandidateQuerySerializer,
    DepositSerializer,
    ProofSerializer,
    ResumeSerializer,
)


def _validated(serializer_class, data) -> dict:
    serializer = serializer_class(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


def _actor(request: Request, default: str) -> str:
    return request.META.get("HTTP_X_CLIENT_APP", "").lower() or default


class FulfillmentViewSet(ViewSet):
    """Commands of the seller and driver apps on one order."""

    parser_classes = [JSONParser, FormParser, MultiPartParser]
    throttle_scope: str | None = None

    @action(detail=True, methods=["get"])
    def candidates(self, request: Request, pk: str | None = None) -> Response:
        """GET ...?latitude=&longitude=&radius_km= (seller position)."""
        data = _validated(CandidateQuerySerializer, request.query_params)
        radius = data.pop("radius_km", None)
        result = build_controller().find_candidates(pk, Coordinates(**data), radius)
        return Response(result.model_dump(mode="json"))

    @action(detail=True, methods=["post"], url_path="self-delivery")
    def self_delivery(self, request: Request, pk: str | None = None) -> Response:
        order = build_controller().choose_self_delivery(pk, actor=_actor(request, "seller"))
        return Response(order.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def assign(self, request: Request, pk: str | None = None) -> Response:
        data = _validated(AssignSerializer, request.data)
        result = build_controller().assign(
            pk,
            data["driver_id"],
            Coordinates(**data["seller_location"]),
            data["requires_prepayment"],
            actor=_actor(request, "seller"),
        )
        return Response(result.model_dump(mode="json"), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], throttle_scope="deposit_initiation")
    def deposit(self, request: Request, pk: str | None = None) -> Response:
        """Start the courier-fee deposit; confirmation arrives as events."""
        data = _validated(DepositSerializer, request.data)
        started = build_controller().start_deposit(
            pk,
            data["payer_phone"],
            data["recipient_phone"],
            window=data["window"],
            sms_capable=data["sms_capable"],
            actor=_actor(request, "seller"),
        )
        return Response(started.model_dump(mode="json"), status=status.HTTP_202_ACCEPTED)

    @action(detail=True, methods=["post"], url_path="deposit/resume")
    def resume(self, request: Request, pk: str | None = None) -> Response:
        data = _validated(ResumeSerializer, request.data)
        started = build_controller().resume_confirmation(pk, sms_capable=data["sms_capable"])
        return Response(started.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def proof(self, request: Request, pk: str | None = None) -> Response:
        """Multipart ``image`` + ``signature``."""
        data = _validated(ProofSerializer, request.data)
        result = build_controller().capture_proof(
            pk, data["image"], data["signature"], actor=_actor(request, "driver")
        )
        return Response(result.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        data = _validated(CancelSerializer, request.data)
        order = build_controller().cancel(
            pk, actor=_actor(request, "seller"), reason=data["reason"]
        )
        return Response(order.model_dump(mode="json"))

    @action(detail=True, methods=["post"], url_path="close-session")
    def close_session(self, request: Request, pk: str | None = None) -> Response:
        """The confirmation screen was closed: stop every timer of the order."""
        stopped = build_controller().close_session(pk)
        return Response({"stopped": stopped})


class SubscriptionDepositView(APIView):
    """POST /fulfillment/sellers/{seller_id}/subscription/"""

    throttle_scope = "deposit_initiation"

    def post(self, request: Request, seller_id) -> Response:
        data = _validated(DepositSerializer, request.data)
        started = build_controller().start_subscription(
            seller_id,
            data["payer_phone"],
            data["recipient_phone"],
            window=data["window"],
            sms_capable=data["sms_capable"],
        )
        return Response(started.model_dump(mode="json"), status=status.HTTP_202_ACCEPTED)
