"""Base class for the fulfillment error taxonomy.

Every domain error carries a stable ``code`` for the mobile clients, a
human readable ``user_message``, whether the client should offer a
retry, and the HTTP status the API layer answers with.
"""

from __future__ import annotations

from typing import Any


class FulfillmentError(Exception):
    code = "FULFILLMENT_ERROR"
    status_code = 400
    retryable = True
    user_message = "Une erreur est survenue. Veuillez réessayer."

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.user_message)
        self.context = context

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "detail": str(self),
            "message": self.user_message,
            "retryable": self.retryable,
        }
