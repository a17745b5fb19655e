"""Wiring of the lifecycle controller with its Django-backed collaborators."""

from __future__ import annotations

from typing import Optional

from modules.deliveries.proof import DeliveryProofService
from modules.deliveries.repositories.django_repository import DeliveryDjangoRepository
from modules.deliveries.services import DeliveryAssignmentService
from modules.drivers.repositories import DriverDjangoRepository
from modules.fulfillment.controller import OrderLifecycleController
from modules.fulfillment.registry import ChannelRegistry
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderTransitionService
from modules.payments.factories import build_reconciler
from modules.payments.reconciler import PaymentReconciler


def build_controller(reconciler: Optional[PaymentReconciler] = None) -> OrderLifecycleController:
    order_repository = OrderDjangoRepository()
    order_service = OrderTransitionService(order_repository=order_repository)
    delivery_repository = DeliveryDjangoRepository()
    return OrderLifecycleController(
        order_service=order_service,
        order_repository=order_repository,
        delivery_repository=delivery_repository,
        assignment=DeliveryAssignmentService(
            order_service=order_service,
            driver_repository=DriverDjangoRepository(),
            delivery_repository=delivery_repository,
        ),
        reconciler=reconciler or build_reconciler(),
        proof=DeliveryProofService(
            order_service=order_service, delivery_repository=delivery_repository
        ),
        registry=ChannelRegistry(),
    )
