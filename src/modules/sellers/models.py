"""Seller reference entity.

Sellers are owned by the identity/onboarding flow. The fulfillment core
reads them and performs exactly one write: granting the verified-seller
flag after a successful subscription deposit.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from modules.core.models import VersionedModel


class Seller(VersionedModel):
    name: models.CharField = models.CharField(max_length=120)
    phone: models.CharField = models.CharField(max_length=32)
    is_verified: models.BooleanField = models.BooleanField(default=False)
    verified_until: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "sellers"
        ordering = ["name"]

    @property
    def verification_active(self) -> bool:
        return bool(
            self.is_verified
            and self.verified_until
            and self.verified_until > timezone.now()
        )

    def __str__(self) -> str:
        return self.name
