"""Seller domain exceptions."""

from __future__ import annotations

from shared.domain.errors import FulfillmentError


class SellerNotFound(FulfillmentError):
    code = "SELLER_NOT_FOUND"
    status_code = 404
    retryable = False
    user_message = "Vendeur introuvable."
