"""Payment API views.

- ``POST /payments/sms/``: SMS ingress from the payer's device.
- ``GET /payments/attempts/{deposit_id}/``: status and progress.
- ``POST /payments/attempts/{deposit_id}/manual-confirmation/``.
- ``GET /payments/manual-confirmations/`` and
  ``POST /payments/manual-confirmations/{id}/review/`` for staff.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.payments.constants import ConfirmationStatus
from modules.payments.factories import build_reconciler
from modules.payments.models import ManualConfirmation, PaymentAttempt
from modules.payments.serializers import (
    ManualConfirmationInputSerializer,
    ManualConfirmationSerializer,
    PaymentAttemptSerializer,
    ReviewInputSerializer,
    SmsIngressSerializer,
)
from modules.payments.sms import SmsMessage


class SmsIngressView(APIView):
    throttle_scope = "sms_ingress"

    def post(self, request: Request) -> Response:
        serializer = SmsIngressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        message = SmsMessage.from_payload(
            data["originatingAddress"], data["body"], data["timestampMs"]
        )
        outcome = build_reconciler().handle_sms(message, data.get("depositId") or None)
        return Response(outcome.model_dump(mode="json"))


class PaymentAttemptViewSet(GenericViewSet):
    queryset = PaymentAttempt.objects.all()
    lookup_field = "deposit_id"
    lookup_value_regex = "[^/]+"

    def retrieve(self, request: Request, deposit_id: str | None = None) -> Response:
        attempt = build_reconciler().get_attempt(deposit_id)
        return Response(PaymentAttemptSerializer(attempt).data)

    @action(detail=True, methods=["post"], url_path="manual-confirmation")
    def manual_confirmation(self, request: Request, deposit_id: str | None = None) -> Response:
        """Record a pasted confirmation; answers 202, the review decides."""
        serializer = ManualConfirmationInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        pending = build_reconciler().submit_manual_confirmation(
            deposit_id, **serializer.validated_data
        )
        return Response(pending.model_dump(mode="json"), status=status.HTTP_202_ACCEPTED)


class ManualConfirmationViewSet(GenericViewSet):
    """Staff queue of manual claims."""

    permission_classes = [IsAdminUser]
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        queryset = ManualConfirmation.objects.select_related("attempt")
        wanted = self.request.query_params.get("status", ConfirmationStatus.PENDING_REVIEW)
        return queryset.filter(status=wanted)

    def list(self, request: Request) -> Response:
        page = self.paginate_queryset(self.get_queryset())
        return self.get_paginated_response(ManualConfirmationSerializer(page, many=True).data)

    @action(detail=True, methods=["post"])
    def review(self, request: Request, pk: str | None = None) -> Response:
        serializer = ReviewInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        confirmation = build_reconciler().review_manual_confirmation(
            pk,
            approve=serializer.validated_data["approve"],
            notes=serializer.validated_data["notes"],
            reviewer=request.user.get_username(),
        )
        return Response(ManualConfirmationSerializer(confirmation).data)
