"""Driver reference entity.

The driver's own app is the sole writer of the live coordinates and
the availability flag; the fulfillment core only reads them.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class Driver(BaseModel):
    name: models.CharField = models.CharField(max_length=120)
    phone: models.CharField = models.CharField(max_length=32)
    live_latitude: models.FloatField = models.FloatField(null=True, blank=True)
    live_longitude: models.FloatField = models.FloatField(null=True, blank=True)
    is_available: models.BooleanField = models.BooleanField(default=False)
    location_updated_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )

    class Meta:
        db_table = "drivers"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_available"], name="drivers_available_idx"),
        ]

    @property
    def has_location(self) -> bool:
        return self.live_latitude is not None and self.live_longitude is not None

    def __str__(self) -> str:
        state = "available" if self.is_available else "busy"
        return f"{self.name} ({state})"
