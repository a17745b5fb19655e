"""Driver domain exceptions."""

from __future__ import annotations

from shared.domain.errors import FulfillmentError


class DriverNotFound(FulfillmentError):
    code = "DRIVER_NOT_FOUND"
    status_code = 404
    retryable = False
    user_message = "Livreur introuvable."
