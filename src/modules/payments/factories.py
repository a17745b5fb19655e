"""Wiring of the payment reconciler with its Django-backed collaborators."""

from __future__ import annotations

from typing import Optional

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderTransitionService
from modules.payments.gateway import PaymentGatewayClient
from modules.payments.reconciler import PaymentReconciler
from modules.payments.repositories import PaymentAttemptDjangoRepository
from modules.sellers.services import SellerVerificationService


def build_reconciler(gateway: Optional[PaymentGatewayClient] = None) -> PaymentReconciler:
    return PaymentReconciler(
        gateway=gateway or PaymentGatewayClient(),
        attempt_repository=PaymentAttemptDjangoRepository(),
        order_service=OrderTransitionService(order_repository=OrderDjangoRepository()),
        seller_service=SellerVerificationService(),
    )
