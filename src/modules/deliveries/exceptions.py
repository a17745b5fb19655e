"""Delivery domain exceptions."""

from __future__ import annotations

from shared.domain.errors import FulfillmentError


class OrderAlreadyClaimed(FulfillmentError):
    """Another writer assigned or changed the order first."""

    code = "ORDER_ALREADY_CLAIMED"
    status_code = 409
    retryable = False
    user_message = "Cette commande a déjà été prise en charge."


class DriverNoLongerAvailable(FulfillmentError):
    """The chosen driver went offline or left the radius since the list was shown."""

    code = "DRIVER_UNAVAILABLE"
    status_code = 409
    retryable = True
    user_message = "Ce livreur n'est plus disponible. Choisissez-en un autre."


class ProofUploadFailed(FulfillmentError):
    code = "PROOF_UPLOAD_FAILED"
    status_code = 503
    retryable = True
    user_message = "L'envoi de la preuve de livraison a échoué. Réessayez."
