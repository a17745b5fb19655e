"""Django ORM implementation of the Driver repository."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError

from modules.drivers.dtos import Coordinates, DriverSnapshot
from modules.drivers.models import Driver
from modules.drivers.repositories.interfaces import IDriverRepository

logger = structlog.get_logger(__name__)


class DriverDjangoRepository(IDriverRepository):
    """Concrete Driver repository backed by Django ORM."""

    def get_by_id(self, id: UUID | str) -> Optional[DriverSnapshot]:
        try:
            driver = Driver.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None
        return to_snapshot(driver) if driver else None

    def list_available(self) -> List[DriverSnapshot]:
        drivers = Driver.objects.filter(is_available=True).order_by("id")
        snapshots = [to_snapshot(driver) for driver in drivers]
        logger.debug("drivers.available_listed", count=len(snapshots))
        return snapshots

    def get_for_update(self, id: UUID | str) -> Optional[DriverSnapshot]:
        """Must run inside ``transaction.atomic``."""
        try:
            driver = Driver.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None
        return to_snapshot(driver) if driver else None


def to_snapshot(driver: Driver) -> DriverSnapshot:
    location = None
    if driver.has_location:
        location = Coordinates(
            latitude=driver.live_latitude, longitude=driver.live_longitude
        )
    return DriverSnapshot(
        id=driver.id,
        name=driver.name,
        phone=driver.phone,
        location=location,
        is_available=driver.is_available,
        location_updated_at=driver.location_updated_at,
    )
