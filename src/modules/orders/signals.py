"""Order change notifications.

``order_changed`` is the record-store subscription the lifecycle
controller listens to. It fires after every conditioned write made by
``OrderTransitionService`` and, through ``post_save``, after writes made
with ``Order.save()`` by external collaborators (checkout, admin).
Receivers get ``order`` as a validated ``OrderSnapshot``.
"""

from __future__ import annotations

import structlog
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from modules.orders.dtos import OrderSnapshot
from modules.orders.models import Order, OrderStatusHistory

logger = structlog.get_logger(__name__)

order_changed = Signal()


@receiver(post_save, sender=Order)
def _on_order_saved(sender, instance: Order, created: bool, **kwargs) -> None:
    if kwargs.get("raw"):
        return
    if created:
        OrderStatusHistory.objects.create(
            order=instance,
            old_status=None,
            new_status=instance.status,
            actor="checkout",
            notes="Order created",
        )
        logger.info(
            "order.created",
            order_id=str(instance.id),
            order_number=instance.order_number,
            seller_id=str(instance.seller_id),
        )
    order_changed.send(sender=Order, order=OrderSnapshot.from_entity(instance))
