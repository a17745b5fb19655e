"""Payment repositories package."""

from modules.payments.repositories.django_repository import PaymentAttemptDjangoRepository
from modules.payments.repositories.interfaces import IPaymentAttemptRepository

__all__ = ["IPaymentAttemptRepository", "PaymentAttemptDjangoRepository"]
