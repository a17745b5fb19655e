"""Driver snapshots and geo value objects.

Snapshots are validated at the repository boundary: a record missing a
required field fails validation instead of defaulting silently.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    """A WGS84 point in decimal degrees."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class DriverSnapshot(BaseModel):
    """Immutable read of a driver record."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID
    name: str
    phone: str
    location: Optional[Coordinates]
    is_available: bool
    location_updated_at: Optional[datetime] = None


class DriverCandidate(BaseModel):
    """A driver eligible for an assignment, with its distance to the seller."""

    model_config = ConfigDict(frozen=True)

    driver: DriverSnapshot
    distance_km: float

    @property
    def driver_id(self) -> UUID:
        return self.driver.id
