"""Delivery domain constants."""

from django.db import models


class DeliveryStatus(models.TextChoices):
    PENDING = "pending", "En attente"
    IN_TRANSIT = "in_transit", "En route"
    DELIVERED = "delivered", "Livrée"


# Outcome reported (not raised) when nobody is close enough.
NO_DRIVERS_IN_RANGE = "NO_DRIVERS_IN_RANGE"
CANDIDATES_FOUND = "CANDIDATES_FOUND"
