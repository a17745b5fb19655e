"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API. Concurrency
control is optimistic: ``update_if_current`` issues a single
``UPDATE ... WHERE id = %s AND version = %s AND status = %s`` and the
affected row count tells the caller whether it won.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.dtos import OrderSnapshot
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "orders"


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: UUID | str) -> Optional[OrderSnapshot]:
        """Return a validated snapshot, ``None`` for unknown or invalid IDs."""
        try:
            order = Order.objects.prefetch_related("items").filter(id=id).first()
        except (ValueError, ValidationError):
            return None
        return OrderSnapshot.from_entity(order) if order else None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[OrderSnapshot]:
        queryset = Order.objects.prefetch_related("items")
        if filters:
            queryset = queryset.filter(**filters)
        return [OrderSnapshot.from_entity(order) for order in queryset]

    # ------------------------------------------------------------------
    # Conditioned write
    # ------------------------------------------------------------------

    def update_if_current(
        self,
        order_id: UUID,
        expected_version: int,
        expected_status: str,
        fields: Dict[str, Any],
    ) -> bool:
        updated = Order.objects.filter(
            id=order_id, version=expected_version, status=expected_status
        ).update(
            **fields,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.info(
                "order.conditioned_write_lost",
                order_id=str(order_id),
                expected_version=expected_version,
                expected_status=expected_status,
            )
        return updated == 1

    # ------------------------------------------------------------------
    # Audit trail + outbox
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: UUID,
        old_status: Optional[str],
        new_status: str,
        actor: str = "system",
        notes: str = "",
    ) -> None:
        OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=new_status,
            actor=actor,
        )

    def record_events(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            OutboxEvent.record(event, topic=OUTBOX_TOPIC)
