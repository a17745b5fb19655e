"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- Orders are created by the external checkout in
  ``pending_delivery_choice`` and only move through state-machine
  validated, version-conditioned writes (see ``services.py``).
- Each status change generates a history record (old/new, actor, notes).
- A driver can only be attached to a platform delivery; a deposit id
  only exists for a platform delivery; a proof image only exists on a
  delivered order. These are also enforced as database constraints.
- Amounts are integer currency units (CDF has no minor unit in use).
- Orders are never deleted.
"""

from __future__ import annotations

import secrets
from typing import Any

import structlog
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from modules.core.models import BaseModel, VersionedModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DeliveryMethod,
    OrderStatus,
)

logger = structlog.get_logger(__name__)


class Order(VersionedModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on
    first save (format: ``ORD-YYYYMMDD-XXXXXX``). ``version`` is bumped by
    every conditioned write, including seller location updates, so a
    writer holding a stale read always loses the compare-and-swap.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer_name: models.CharField = models.CharField(max_length=120)
    customer_phone: models.CharField = models.CharField(max_length=32)
    delivery_address: models.CharField = models.CharField(max_length=255)
    delivery_latitude: models.FloatField = models.FloatField(null=True, blank=True)
    delivery_longitude: models.FloatField = models.FloatField(null=True, blank=True)
    total_amount: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    currency: models.CharField = models.CharField(max_length=3, default="CDF")
    status: models.CharField = models.CharField(
        max_length=32,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_DELIVERY_CHOICE,
    )
    delivery_method: models.CharField = models.CharField(
        max_length=32,
        choices=DeliveryMethod.choices,
        default=DeliveryMethod.UNSET,
    )
    seller: models.ForeignKey = models.ForeignKey(
        "sellers.Seller",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    driver: models.ForeignKey = models.ForeignKey(
        "drivers.Driver",
        on_delete=models.PROTECT,
        related_name="orders",
        null=True,
        blank=True,
    )
    deposit_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True
    )
    courier_fee_paid: models.BooleanField = models.BooleanField(default=False)
    proof_image_url: models.CharField = models.CharField(  # noqa: DJ01
        max_length=500, null=True, blank=True
    )
    proof_signature_url: models.CharField = models.CharField(  # noqa: DJ01
        max_length=500, null=True, blank=True
    )
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    seller_live_latitude: models.FloatField = models.FloatField(null=True, blank=True)
    seller_live_longitude: models.FloatField = models.FloatField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["seller", "status"], name="orders_seller_status_idx"),
            models.Index(fields=["deposit_id"], name="orders_deposit_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(driver__isnull=True)
                | Q(delivery_method=DeliveryMethod.PLATFORM_DELIVERY),
                name="orders_driver_requires_platform_delivery",
            ),
            models.CheckConstraint(
                condition=Q(deposit_id__isnull=True)
                | Q(delivery_method=DeliveryMethod.PLATFORM_DELIVERY),
                name="orders_deposit_requires_platform_delivery",
            ),
            models.CheckConstraint(
                condition=Q(proof_image_url__isnull=True)
                | Q(status=OrderStatus.DELIVERED),
                name="orders_proof_requires_delivered",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item snapshot taken by the checkout (name, quantity, price)."""

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    name: models.CharField = models.CharField(max_length=200)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.PositiveIntegerField = models.PositiveIntegerField()

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity}"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``actor`` names the writer (``seller``, ``driver``, ``system``...) so
    races between the apps and the reconciliation timers can be traced.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=32,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=32,
        choices=OrderStatus.choices,
    )
    actor: models.CharField = models.CharField(max_length=32, default="system")
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
