"""Order domain exceptions.

Raised by the state machine and the transition service. The DRF
exception handler renders them with their ``code`` and ``retryable``
flag so the apps can decide whether to offer a retry.
"""

from __future__ import annotations

from shared.domain.errors import FulfillmentError


class OrderNotFound(FulfillmentError):
    code = "ORDER_NOT_FOUND"
    status_code = 404
    retryable = False
    user_message = "Commande introuvable."


class InvalidTransition(FulfillmentError):
    """The requested status is not reachable from the current one."""

    code = "INVALID_TRANSITION"
    status_code = 409
    retryable = False
    user_message = "Cette action n'est plus possible pour cette commande."

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Cannot transition from {from_status} to {to_status}.",
            from_status=from_status,
            to_status=to_status,
        )
        self.from_status = from_status
        self.to_status = to_status


class ConcurrentModification(FulfillmentError):
    """A conditioned write lost against another writer."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409
    retryable = True
    user_message = "La commande a été modifiée entre-temps. Rechargez et réessayez."


class MissingDeliveryCoordinates(FulfillmentError):
    code = "MISSING_COORDINATES"
    status_code = 422
    retryable = False
    user_message = "Coordonnées de livraison manquantes."
