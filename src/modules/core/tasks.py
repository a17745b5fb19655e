"""Background tasks of the core module."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict
from uuid import UUID

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import EventStatus, OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

RELAY_BATCH_SIZE = 100


@dataclass(frozen=True)
class IntegrationEvent(DomainEvent):
    """An outbox row handed to out-of-process consumers (push layer)."""

    event_type: str = ""
    topic: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events(batch_size: int = RELAY_BATCH_SIZE) -> Dict[str, int]:
    """Publish pending outbox rows in creation order.

    Rows are locked with ``skip_locked`` so two workers never relay the
    same event. A handler failure marks only that row as failed.
    """
    published = 0
    failed = 0
    with transaction.atomic():
        rows = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(status=EventStatus.PENDING)
            .order_by("created_at")[:batch_size]
        )
        for row in rows:
            event = IntegrationEvent(
                aggregate_id=UUID(row.aggregate_id),
                event_type=row.event_type,
                topic=row.topic,
                data=row.payload,
            )
            try:
                event_bus.publish(event)
            except Exception as exc:
                logger.exception(
                    "outbox.relay_failed", event_id=str(row.id), event_type=row.event_type
                )
                row.mark_as_failed(str(exc))
                failed += 1
                continue
            row.mark_as_published()
            published += 1

    logger.info("outbox.relayed", published=published, failed=failed)
    return {"published": published, "failed": failed}
