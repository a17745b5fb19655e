"""Great-circle distance and candidate ranking.

Pure functions, no I/O: callers pass the drivers they read.
"""

from __future__ import annotations

import math
from typing import Iterable, List

from modules.drivers.dtos import Coordinates, DriverCandidate, DriverSnapshot

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Distance in kilometres between two points on the Earth's surface."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push h marginally above 1 for antipodal points.
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def rank_candidates(
    origin: Coordinates,
    drivers: Iterable[DriverSnapshot],
    radius_km: float,
) -> List[DriverCandidate]:
    """Available drivers within *radius_km* of *origin*, nearest first.

    Drivers that are unavailable or have no known position are skipped.
    Equal distances are ordered by driver id so the list is deterministic.
    """
    candidates = []
    for driver in drivers:
        if not driver.is_available or driver.location is None:
            continue
        distance = haversine_km(origin, driver.location)
        if distance <= radius_km:
            candidates.append(DriverCandidate(driver=driver, distance_km=distance))

    candidates.sort(key=lambda c: (c.distance_km, str(c.driver.id)))
    return candidates


def is_within_radius(origin: Coordinates, point: Coordinates, radius_km: float) -> bool:
    return haversine_km(origin, point) <= radius_km
