"""Delivery assignment use cases.

- ``find_candidates``: rank available drivers around the seller.
- ``assign``: hand the order to the platform courier (optionally a
  specific driver) in one transaction: lock and re-check the driver,
  conditioned order write, Delivery creation.
- ``choose_self_delivery``: the seller delivers the order themselves.

The driver list shown to the seller is advisory. Eligibility is checked
again under a row lock at assignment time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

import structlog
from django.conf import settings
from django.db import transaction

from modules.deliveries.dtos import AssignmentResult, CandidateSearchResult
from modules.deliveries.exceptions import DriverNoLongerAvailable, OrderAlreadyClaimed
from modules.drivers import geo
from modules.drivers.exceptions import DriverNotFound
from modules.orders.constants import DeliveryMethod, OrderStatus
from modules.orders.exceptions import ConcurrentModification, MissingDeliveryCoordinates

if TYPE_CHECKING:
    from modules.deliveries.repositories.interfaces import IDeliveryRepository
    from modules.drivers.dtos import Coordinates
    from modules.drivers.repositories.interfaces import IDriverRepository
    from modules.orders.dtos import OrderSnapshot
    from modules.orders.services import OrderTransitionService

logger = structlog.get_logger(__name__)


class DeliveryAssignmentService:
    def __init__(
        self,
        order_service: OrderTransitionService,
        driver_repository: IDriverRepository,
        delivery_repository: IDeliveryRepository,
    ) -> None:
        self._orders = order_service
        self._drivers = driver_repository
        self._deliveries = delivery_repository

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_candidates(
        self,
        order: OrderSnapshot,
        seller_location: Coordinates,
        radius_km: Optional[float] = None,
    ) -> CandidateSearchResult:
        """Available drivers within *radius_km* of the seller, nearest first."""
        radius = radius_km if radius_km is not None else _default_radius()
        candidates = geo.rank_candidates(
            seller_location, self._drivers.list_available(), radius
        )
        result = CandidateSearchResult.of(candidates, radius)
        logger.info(
            "delivery.candidates_found",
            order_id=str(order.id),
            outcome=result.outcome,
            count=len(candidates),
            radius_km=radius,
        )
        return result

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def assign(
        self,
        order: OrderSnapshot,
        driver_id: Optional[UUID],
        seller_location: Coordinates,
        requires_prepayment: Optional[bool] = None,
        *,
        radius_km: Optional[float] = None,
        actor: str = "seller",
    ) -> AssignmentResult:
        """Assign the order to the platform courier.

        ``requires_prepayment`` defaults to ``not order.courier_fee_paid``.
        When prepayment is required the order goes to ``app_delivering``
        with a fresh deposit id; otherwise straight through to
        ``payment_ok``. Without ``driver_id`` the delivery is open to any
        driver.

        Raises:
            DriverNotFound: ``driver_id`` does not exist.
            DriverNoLongerAvailable: the driver is offline or out of range.
            OrderAlreadyClaimed: another writer changed the order first.
            InvalidTransition: the order is not waiting for a delivery choice.
        """
        if requires_prepayment is None:
            requires_prepayment = not order.courier_fee_paid
        if order.delivery_location is None:
            raise MissingDeliveryCoordinates(f"Order {order.id} has no delivery coordinates.")

        radius = radius_km if radius_km is not None else _default_radius()
        log = logger.bind(
            order_id=str(order.id),
            driver_id=str(driver_id) if driver_id else None,
            requires_prepayment=requires_prepayment,
        )

        with transaction.atomic():
            if driver_id is not None:
                self._check_driver(driver_id, seller_location, radius)

            deposit_id = str(uuid4()) if requires_prepayment else None
            path = (
                [OrderStatus.APP_DELIVERING]
                if requires_prepayment
                else [OrderStatus.APP_DELIVERING, OrderStatus.PAYMENT_OK]
            )
            try:
                updated = self._orders.transition_path(
                    order,
                    path,
                    fields={
                        "delivery_method": DeliveryMethod.PLATFORM_DELIVERY,
                        "driver_id": driver_id,
                        "deposit_id": deposit_id,
                    },
                    actor=actor,
                    notes="Platform delivery assigned",
                )
            except ConcurrentModification as exc:
                log.warning("delivery.order_already_claimed")
                raise OrderAlreadyClaimed(f"Order {order.id} was claimed first.") from exc

            amount_owed = settings.FULFILLMENT["COURIER_FEE"]
            delivery = self._deliveries.create(
                {
                    "order_id": order.id,
                    "seller_id": order.seller_id,
                    "seller_latitude": seller_location.latitude,
                    "seller_longitude": seller_location.longitude,
                    "driver_id": driver_id,
                    "buyer_latitude": order.delivery_location.latitude,
                    "buyer_longitude": order.delivery_location.longitude,
                    "amount_owed": amount_owed,
                    "deposit_id": deposit_id,
                }
            )

        log.info("delivery.assigned", delivery_id=str(delivery.id), status=str(updated.status))
        return AssignmentResult(
            order=updated,
            delivery_id=delivery.id,
            driver_id=driver_id,
            deposit_id=deposit_id,
            requires_prepayment=requires_prepayment,
            amount_owed=amount_owed,
        )

    def choose_self_delivery(
        self, order: OrderSnapshot, *, actor: str = "seller"
    ) -> OrderSnapshot:
        """The seller delivers; no Delivery record is created."""
        updated = self._orders.transition(
            order,
            OrderStatus.SELLER_DELIVERING,
            fields={"delivery_method": DeliveryMethod.SELLER_DELIVERY},
            actor=actor,
            notes="Seller delivers",
        )
        logger.info("delivery.self_delivery_chosen", order_id=str(order.id))
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_driver(
        self, driver_id: UUID, seller_location: Coordinates, radius_km: float
    ) -> None:
        driver = self._drivers.get_for_update(driver_id)
        if driver is None:
            raise DriverNotFound(f"Driver {driver_id} not found.")
        if (
            not driver.is_available
            or driver.location is None
            or not geo.is_within_radius(seller_location, driver.location, radius_km)
        ):
            logger.info(
                "delivery.driver_unavailable",
                driver_id=str(driver_id),
                is_available=driver.is_available,
                has_location=driver.location is not None,
            )
            raise DriverNoLongerAvailable(f"Driver {driver_id} is no longer available.")


def _default_radius() -> float:
    return settings.FULFILLMENT["DEFAULT_RADIUS_KM"]
