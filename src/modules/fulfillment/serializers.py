"""Fulfillment command serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.serializers import LocationSerializer
from modules.payments.constants import PaymentWindow


class CandidateQuerySerializer(LocationSerializer):
    radius_km = serializers.FloatField(min_value=0.1, max_value=50, required=False)


class AssignSerializer(serializers.Serializer):
    driver_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    seller_location = LocationSerializer()
    requires_prepayment = serializers.BooleanField(required=False, allow_null=True, default=None)


class DepositSerializer(serializers.Serializer):
    payer_phone = serializers.RegexField(r"^\+?\d{9,15}$")
    recipient_phone = serializers.RegexField(
        r"^\+?\d{9,15}$", required=False, allow_blank=True, default=""
    )
    window = serializers.ChoiceField(
        choices=PaymentWindow.choices, required=False, default=PaymentWindow.STANDARD
    )
    sms_capable = serializers.BooleanField(required=False, default=True)


class ResumeSerializer(serializers.Serializer):
    sms_capable = serializers.BooleanField(required=False, default=True)


class ProofSerializer(serializers.Serializer):
    image = serializers.FileField()
    signature = serializers.FileField()


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
