"""Payment reconciliation constants."""

from django.db import models


class AttemptStatus(models.TextChoices):
    PENDING = "PENDING", "En attente"
    SUCCESS = "SUCCESS", "Réussi"
    FAILURE = "FAILURE", "Échoué"
    TIMEOUT = "TIMEOUT", "Délai dépassé"
    CANCELLED = "CANCELLED", "Annulé"


class PaymentPurpose(models.TextChoices):
    COURIER_LEG = "courier_leg", "Frais de course"
    SELLER_SUBSCRIPTION = "seller_subscription", "Abonnement vendeur"


class PaymentWindow(models.TextChoices):
    STANDARD = "standard", "Standard"
    PERSON_TO_PERSON = "person_to_person", "Personne à personne"


class ResolutionChannel(models.TextChoices):
    POLL = "poll", "Passerelle"
    SMS = "sms", "SMS"
    MANUAL = "manual", "Manuel"


class ConfirmationStatus(models.TextChoices):
    PENDING_REVIEW = "PENDING_REVIEW", "En cours de vérification"
    APPROVED = "APPROVED", "Approuvée"
    REJECTED = "REJECTED", "Rejetée"


class PaymentProgress(models.TextChoices):
    INITIATING = "initiating", "Initialisation"
    PENDING_CONFIRMATION = "pending_confirmation", "En attente de confirmation"
    SUCCESS = "success", "Payé"
    FAILED = "failed", "Échec"


class ChannelKind(models.TextChoices):
    POLL = "poll", "Passerelle"
    SMS = "sms", "SMS"


# Gateway status aliases, normalized to PENDING / SUCCESS / FAILURE.
GATEWAY_SUCCESS_ALIASES = frozenset({"SUCCESS", "SUCCESSFUL"})
GATEWAY_FAILURE_ALIASES = frozenset(
    {"FAILED", "FAILURE", "CANCELLED", "REJECTED", "EXPIRED", "ERROR"}
)

# Currency spellings used in provider messages.
CURRENCY_ALIASES = {"FC": "CDF", "CDF": "CDF", "USD": "USD"}

MANUAL_CONFIRMATION_PENDING = "MANUAL_CONFIRMATION_PENDING"

POLL_TASK = "payments.poll_deposit_status"
SMS_EXPIRY_TASK = "payments.expire_sms_listener"
