"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views). Writes go
through ``OrderTransitionService``; these classes only validate input
and shape responses.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.core.models import OutboxEvent
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class LocationSerializer(serializers.Serializer):
    """Validates a WGS84 point sent by one of the apps."""

    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "name", "quantity", "unit_price", "subtotal"]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = ["id", "old_status", "new_status", "actor", "notes", "created_at"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "seller_id",
            "driver_id",
            "status",
            "delivery_method",
            "version",
            "customer_name",
            "delivery_address",
            "delivery_latitude",
            "delivery_longitude",
            "total_amount",
            "currency",
            "deposit_id",
            "courier_fee_paid",
            "proof_image_url",
            "proof_signature_url",
            "delivered_at",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "seller_id",
            "status",
            "delivery_method",
            "total_amount",
            "currency",
            "created_at",
        ]
        read_only_fields = fields


class OrderEventSerializer(serializers.ModelSerializer):
    """Outbox rows as the apps read them (status, payment progress, errors)."""

    class Meta:
        model = OutboxEvent
        fields = ["id", "event_type", "topic", "payload", "created_at"]
        read_only_fields = fields
