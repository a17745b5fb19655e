"""Django ORM implementation of the Delivery repository."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.utils import timezone

from modules.deliveries.constants import DeliveryStatus
from modules.deliveries.models import Delivery
from modules.deliveries.repositories.interfaces import IDeliveryRepository

logger = structlog.get_logger(__name__)


class DeliveryDjangoRepository(IDeliveryRepository):
    """Concrete Delivery repository backed by Django ORM."""

    def get_by_id(self, id: UUID | str) -> Optional[Delivery]:
        try:
            return Delivery.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_order(self, order_id: UUID | str) -> Optional[Delivery]:
        try:
            return Delivery.objects.filter(order_id=order_id).first()
        except (ValueError, ValidationError):
            return None

    def create(self, data: Dict[str, Any]) -> Delivery:
        delivery = Delivery.objects.create(**data)
        logger.info(
            "delivery.created",
            delivery_id=str(delivery.id),
            order_id=str(delivery.order_id),
            driver_id=str(delivery.driver_id) if delivery.driver_id else None,
        )
        return delivery

    def mark_delivered(self, order_id: UUID | str) -> bool:
        now = timezone.now()
        updated = (
            Delivery.objects.filter(order_id=order_id)
            .exclude(status=DeliveryStatus.DELIVERED)
            .update(status=DeliveryStatus.DELIVERED, delivered_at=now, updated_at=now)
        )
        return updated == 1

    def update_deposit_id(self, order_id: UUID | str, deposit_id: str) -> bool:
        updated = Delivery.objects.filter(order_id=order_id).update(
            deposit_id=deposit_id, updated_at=timezone.now()
        )
        return updated == 1
