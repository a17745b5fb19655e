"""Payment reconciliation exceptions.

``PaymentTimeout`` and ``PaymentAmountMismatch`` are not raised to a
caller: timer ticks never raise. They describe how an attempt ended and
are rendered into the error event the apps read.
"""

from __future__ import annotations

from shared.domain.errors import FulfillmentError


class DepositInitiationFailed(FulfillmentError):
    """The gateway could not be reached or refused the deposit."""

    code = "DEPOSIT_INITIATION_FAILED"
    status_code = 502
    retryable = True
    user_message = "Le paiement n'a pas pu être lancé. Vérifiez votre connexion et réessayez."


class PaymentTimeout(FulfillmentError):
    code = "PAYMENT_TIMEOUT"
    status_code = 408
    retryable = True
    user_message = "Le paiement n'a pas été confirmé à temps. Réessayez."


class PaymentAmountMismatch(FulfillmentError):
    """Never retryable: the attempt needs a human review."""

    code = "PAYMENT_AMOUNT_MISMATCH"
    status_code = 422
    retryable = False
    user_message = "Le montant reçu ne correspond pas. Le paiement sera vérifié."


class PaymentFailed(FulfillmentError):
    code = "PAYMENT_FAILED"
    status_code = 402
    retryable = True
    user_message = "Le paiement a échoué. Réessayez."


class PaymentAttemptNotFound(FulfillmentError):
    code = "PAYMENT_ATTEMPT_NOT_FOUND"
    status_code = 404
    retryable = False
    user_message = "Paiement introuvable."


class AttemptAlreadyResolved(FulfillmentError):
    code = "PAYMENT_ALREADY_RESOLVED"
    status_code = 409
    retryable = False
    user_message = "Ce paiement est déjà clôturé."


class ManualConfirmationNotFound(FulfillmentError):
    code = "MANUAL_CONFIRMATION_NOT_FOUND"
    status_code = 404
    retryable = False
    user_message = "Confirmation introuvable."


class ConfirmationAlreadyReviewed(FulfillmentError):
    code = "CONFIRMATION_ALREADY_REVIEWED"
    status_code = 409
    retryable = False
    user_message = "Cette confirmation a déjà été traitée."
