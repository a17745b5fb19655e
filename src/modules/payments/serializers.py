"""Payment API serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.payments.models import ManualConfirmation, PaymentAttempt


class SmsIngressSerializer(serializers.Serializer):
    """A message forwarded by the payer's device (timestamp in epoch ms)."""

    originatingAddress = serializers.CharField(max_length=64)
    body = serializers.CharField(max_length=2000)
    timestampMs = serializers.IntegerField(min_value=0)
    depositId = serializers.CharField(max_length=64, required=False, allow_blank=True)


class ManualConfirmationInputSerializer(serializers.Serializer):
    raw_sms_text = serializers.CharField(max_length=2000)
    transaction_id = serializers.CharField(max_length=64)


class ReviewInputSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, default="")


class PaymentAttemptSerializer(serializers.ModelSerializer):
    progress = serializers.CharField(read_only=True)

    class Meta:
        model = PaymentAttempt
        fields = [
            "deposit_id",
            "purpose",
            "order_id",
            "seller_id",
            "amount",
            "currency",
            "window",
            "status",
            "progress",
            "resolved_by",
            "failure_reason",
            "requires_review",
            "poll_count",
            "sms_listener_enabled",
            "sms_listener_expires_at",
            "started_at",
            "resolved_at",
        ]
        read_only_fields = fields


class ManualConfirmationSerializer(serializers.ModelSerializer):
    deposit_id = serializers.CharField(source="attempt.deposit_id", read_only=True)

    class Meta:
        model = ManualConfirmation
        fields = [
            "id",
            "deposit_id",
            "raw_sms_text",
            "transaction_id",
            "status",
            "reviewer_notes",
            "reviewed_by",
            "reviewed_at",
            "created_at",
        ]
        read_only_fields = fields
