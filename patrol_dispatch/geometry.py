"""
Geometry - great-circle distances for the patrol simulator.

Both the scalar and the numpy-vectorised haversine use the same formula and
Earth radius, so dispatch decisions made over arrays agree with the distances
reported for individual units.
"""

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True)
class Location:
    """Geographic location with lat/lng coordinates in decimal degrees."""
    lat: float
    lng: float

    def distance_to(self, other: 'Location') -> float:
        """Haversine distance in metres"""
        return haversine_distance_m(self, other)

    def to_dict(self):
        return {'lat': self.lat, 'lng': self.lng}

    def __str__(self):
        return f"({self.lat:.6f}, {self.lng:.6f})"


def haversine_distance_m(a: Location, b: Location) -> float:
    """
    Calculate the great-circle distance in metres between two points.

    Non-finite coordinates yield NaN instead of raising; callers validate
    their input before relying on the result.
    """
    if not all(math.isfinite(v) for v in (a.lat, a.lng, b.lat, b.lng)):
        return math.nan

    lat1, lng1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lng2 = math.radians(b.lat), math.radians(b.lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Rounding can push h just outside [0, 1] near antipodal points
    h = min(max(h, 0.0), 1.0)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def haversine_distances_m(origin: Location, lats: Sequence[float], lngs: Sequence[float]) -> np.ndarray:
    """Vectorised haversine from one origin to many points, in metres."""
    lats = np.radians(np.asarray(lats, dtype=float))
    lngs = np.radians(np.asarray(lngs, dtype=float))
    lat0 = np.radians(origin.lat)
    lng0 = np.radians(origin.lng)

    dlat = lats - lat0
    dlng = lngs - lng0

    with np.errstate(invalid='ignore'):
        h = np.sin(dlat / 2) ** 2 + np.cos(lat0) * np.cos(lats) * np.sin(dlng / 2) ** 2
        h = np.clip(h, 0.0, 1.0)
        c = 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))

    return EARTH_RADIUS_M * c
