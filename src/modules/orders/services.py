"""Order service layer (Use Cases).

Every status change goes through ``OrderTransitionService``:

1. Validate the requested path with the pure state machine.
2. Write with ``update_if_current`` conditioned on the version and the
   status the caller observed.
3. On a lost race, re-read once. If the status is still the observed
   one (the other writer only touched e.g. the seller location), retry
   against the new version; otherwise, or on a second conflict, raise
   ``ConcurrentModification``.
4. Record one history row and one outbox event per step, in the same
   transaction as the write.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence
from uuid import UUID, uuid4

import structlog
from django.db import transaction

from modules.orders import state_machine
from modules.orders.constants import OrderStatus
from modules.orders.events import (
    OrderCancelled,
    DepositIdRotated,
    OrderDelivered,
    OrderStatusChanged,
    SellerLocationUpdated,
)
from modules.orders.exceptions import ConcurrentModification, OrderNotFound
from modules.orders.signals import order_changed

if TYPE_CHECKING:
    from modules.drivers.dtos import Coordinates
    from modules.orders.dtos import OrderSnapshot
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

CONFLICT_RETRIES = 1


class OrderTransitionService:
    """Application service for conditioned order writes.

    Receives the repository via constructor injection (DIP).
    """

    def __init__(self, order_repository: IOrderRepository) -> None:
        self._order_repo = order_repository

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID | str) -> OrderSnapshot:
        """Raises ``OrderNotFound`` if the order does not exist."""
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[OrderSnapshot]:
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def transition(
        self,
        order: OrderSnapshot,
        to_status: str,
        *,
        fields: Optional[Dict[str, Any]] = None,
        actor: str = "system",
        notes: str = "",
    ) -> OrderSnapshot:
        """Move *order* to *to_status*, writing *fields* in the same update."""
        return self.transition_path(
            order, [to_status], fields=fields, actor=actor, notes=notes
        )

    def transition_path(
        self,
        order: OrderSnapshot,
        path: Sequence[str],
        *,
        fields: Optional[Dict[str, Any]] = None,
        actor: str = "system",
        notes: str = "",
    ) -> OrderSnapshot:
        """Apply a multi-step path as one conditioned write.

        Raises:
            InvalidTransition: a step is not reachable.
            ConcurrentModification: another writer changed the order.
        """
        target = state_machine.transition_path(order, path)
        log = logger.bind(
            order_id=str(order.id),
            from_status=str(order.status),
            to_status=str(target.status),
            actor=actor,
        )

        observed = order
        for attempt in range(CONFLICT_RETRIES + 1):
            if self._write_path(observed, path, fields or {}, actor, notes):
                log.info("order.transitioned", version=observed.version + 1)
                updated = self.get_order(order.id)
                order_changed.send(sender=type(self), order=updated)
                return updated

            fresh = self._order_repo.get_by_id(order.id)
            if fresh is None:
                raise OrderNotFound(f"Order {order.id} not found.")
            if fresh.status != order.status or attempt == CONFLICT_RETRIES:
                log.warning(
                    "order.concurrent_modification",
                    observed_version=observed.version,
                    current_version=fresh.version,
                    current_status=str(fresh.status),
                )
                raise ConcurrentModification(
                    f"Order {order.id} changed from {order.status} to {fresh.status}."
                )
            log.info("order.transition_retry", current_version=fresh.version)
            observed = fresh

        raise ConcurrentModification(f"Order {order.id} changed concurrently.")

    def update_seller_location(
        self, order_id: UUID | str, location: Coordinates
    ) -> OrderSnapshot:
        """Store the seller's live position and bump the version.

        Terminal orders are left untouched. A conflict is retried once
        regardless of status since the write carries no transition.
        """
        order = self.get_order(order_id)
        fields = {
            "seller_live_latitude": location.latitude,
            "seller_live_longitude": location.longitude,
        }
        for _ in range(CONFLICT_RETRIES + 1):
            if order.is_terminal:
                logger.info(
                    "order.location_ignored", order_id=str(order.id), status=str(order.status)
                )
                return order
            with transaction.atomic():
                written = self._order_repo.update_if_current(
                    order.id, order.version, order.status, fields
                )
                if written:
                    self._order_repo.record_events(
                        [
                            SellerLocationUpdated(
                                aggregate_id=order.id,
                                latitude=location.latitude,
                                longitude=location.longitude,
                                version=order.version + 1,
                            )
                        ]
                    )
            if written:
                return self.get_order(order.id)
            order = self.get_order(order.id)

        raise ConcurrentModification(f"Order {order.id} changed concurrently.")

    def rotate_deposit_id(self, order: OrderSnapshot, *, actor: str = "system") -> OrderSnapshot:
        """Give a prepaying order a fresh deposit id for a payment retry.

        The status is kept; the write is conditioned on it like a
        transition, so a conflict that changed the status is not retried.
        """
        observed = order
        for attempt in range(CONFLICT_RETRIES + 1):
            new_deposit_id = str(uuid4())
            with transaction.atomic():
                written = self._order_repo.update_if_current(
                    observed.id, observed.version, observed.status, {"deposit_id": new_deposit_id}
                )
                if written:
                    self._order_repo.record_events(
                        [
                            DepositIdRotated(
                                aggregate_id=observed.id,
                                previous_deposit_id=observed.deposit_id,
                                deposit_id=new_deposit_id,
                                version=observed.version + 1,
                            )
                        ]
                    )
            if written:
                logger.info(
                    "order.deposit_rotated",
                    order_id=str(order.id),
                    deposit_id=new_deposit_id,
                    actor=actor,
                )
                return self.get_order(order.id)

            fresh = self.get_order(order.id)
            if fresh.status != order.status or attempt == CONFLICT_RETRIES:
                raise ConcurrentModification(
                    f"Order {order.id} changed from {order.status} to {fresh.status}."
                )
            observed = fresh

        raise ConcurrentModification(f"Order {order.id} changed concurrently.")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write_path(
        self,
        observed: OrderSnapshot,
        path: Sequence[str],
        fields: Dict[str, Any],
        actor: str,
        notes: str,
    ) -> bool:
        with transaction.atomic():
            written = self._order_repo.update_if_current(
                observed.id,
                observed.version,
                observed.status,
                {**fields, "status": path[-1]},
            )
            if not written:
                return False

            events = []
            previous: Optional[str] = str(observed.status)
            for step in path:
                self._order_repo.add_history(
                    observed.id, previous, step, actor=actor, notes=notes
                )
                events.append(
                    _status_event(step)(
                        aggregate_id=observed.id,
                        old_status=previous,
                        new_status=str(step),
                        version=observed.version + 1,
                        actor=actor,
                    )
                )
                previous = str(step)
            self._order_repo.record_events(events)
        return True


def _status_event(status: str) -> type[OrderStatusChanged]:
    if status == OrderStatus.CANCELLED:
        return OrderCancelled
    if status == OrderStatus.DELIVERED:
        return OrderDelivered
    return OrderStatusChanged
