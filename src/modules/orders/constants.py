"""Order domain constants.

Defines the order statuses, delivery methods and the transition table
of the fulfillment state machine.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING_DELIVERY_CHOICE = "pending_delivery_choice", "En attente du choix de livraison"
    SELLER_DELIVERING = "seller_delivering", "Livraison par le vendeur"
    APP_DELIVERING = "app_delivering", "Livraison par l'application"
    PAYMENT_OK = "payment_ok", "Course payée"
    DELIVERED = "delivered", "Livrée"
    CANCELLED = "cancelled", "Annulée"


class DeliveryMethod(models.TextChoices):
    UNSET = "unset", "Non choisi"
    SELLER_DELIVERY = "seller_delivery", "Vendeur"
    PLATFORM_DELIVERY = "platform_delivery", "Livreur de la plateforme"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING_DELIVERY_CHOICE: {
        OrderStatus.SELLER_DELIVERING,
        OrderStatus.APP_DELIVERING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.SELLER_DELIVERING: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.APP_DELIVERING: {
        OrderStatus.PAYMENT_OK,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAYMENT_OK: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Statuses in which a delivery proof may be captured.
PROOF_ELIGIBLE_STATES: set[str] = {
    OrderStatus.SELLER_DELIVERING,
    OrderStatus.APP_DELIVERING,
    OrderStatus.PAYMENT_OK,
}

ORDER_NUMBER_MAX_RETRIES = 5
