"""Event handlers for relayed Orders events.

The outbox relay republishes persisted rows as ``IntegrationEvent``s;
these handlers are the hand-off point to the push layer, which is an
external collaborator. Here they only leave a structured trace.
"""

from __future__ import annotations

import structlog

from modules.core.tasks import IntegrationEvent
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)

ORDER_TOPIC = "orders"


class OrderEventRelayedHandler(IEventHandler[IntegrationEvent]):
    def handle(self, event: IntegrationEvent) -> None:
        if event.topic != ORDER_TOPIC:
            return
        logger.info(
            "order.event_relayed",
            order_id=str(event.aggregate_id),
            event_type=event.event_type,
            new_status=event.data.get("new_status"),
            version=event.data.get("version"),
        )


order_event_relayed_handler = OrderEventRelayedHandler()
