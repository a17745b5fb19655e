"""Delivery record for platform deliveries.

Created once, atomically with the order transition that chose the
platform courier, and never deleted. Seller-delivered orders have none.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.deliveries.constants import DeliveryStatus


class Delivery(BaseModel):
    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="delivery",
    )
    seller: models.ForeignKey = models.ForeignKey(
        "sellers.Seller",
        on_delete=models.PROTECT,
        related_name="deliveries",
    )
    seller_latitude: models.FloatField = models.FloatField()
    seller_longitude: models.FloatField = models.FloatField()
    driver: models.ForeignKey = models.ForeignKey(
        "drivers.Driver",
        on_delete=models.PROTECT,
        related_name="deliveries",
        null=True,
        blank=True,
    )
    buyer_latitude: models.FloatField = models.FloatField()
    buyer_longitude: models.FloatField = models.FloatField()
    amount_owed: models.PositiveIntegerField = models.PositiveIntegerField()
    deposit_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
    )
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "deliveries"
        ordering = ["-created_at"]
        verbose_name_plural = "deliveries"
        indexes = [
            models.Index(fields=["driver", "status"], name="deliveries_driver_idx"),
        ]

    def __str__(self) -> str:
        return f"Delivery {self.order_id} ({self.status})"
