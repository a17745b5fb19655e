"""Receivers of the fulfillment module.

``order_changed`` stops the channels of an order that no longer waits for
payment; ``payment_resolved`` drops the resolved deposit from the channel
registry, which covers seller subscriptions that have no order.
"""

from __future__ import annotations

import structlog

from modules.fulfillment.registry import ChannelRegistry
from modules.orders.constants import TERMINAL_STATES, OrderStatus
from modules.orders.dtos import OrderSnapshot

logger = structlog.get_logger(__name__)

CHANNEL_CLOSING_STATES = TERMINAL_STATES | {OrderStatus.PAYMENT_OK}


def stop_channels_on_order_change(sender, order: OrderSnapshot, **kwargs) -> None:
    if order.status not in CHANNEL_CLOSING_STATES:
        return
    from modules.fulfillment.factories import build_controller

    build_controller().on_order_changed(order)


def release_channels_on_payment_resolved(
    sender, deposit_id: str, subject_id, status: str, **kwargs
) -> None:
    dropped = ChannelRegistry().discard(subject_id, deposit_id)
    if dropped:
        logger.info(
            "fulfillment.channels_released",
            subject_id=str(subject_id),
            deposit_id=deposit_id,
            status=status,
            handles=len(dropped),
        )
