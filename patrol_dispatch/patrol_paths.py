"""
Patrol Paths - the static region catalog and the closed paths units idle along.

Each region of the catalog is turned into exactly one patrol path:
- LoopPath: a rectangular "patrol box" polyline closing on itself. Segment
  lengths and the total loop length are measured once, when the path is built.
- OrbitPath: a smooth ellipse around the region centre, located directly by
  an angle, so it needs no precomputed metrics.

Both expose position_at_progress(value) so the simulation treats them alike.
"""

import math
import logging
from dataclasses import dataclass, field, replace
from typing import List, Sequence, Tuple, Union

from patrol_dispatch.geometry import Location, haversine_distance_m

logger = logging.getLogger(__name__)

PATH_KIND_LOOP = "loop"
PATH_KIND_ORBIT = "orbit"
PATH_KINDS = (PATH_KIND_LOOP, PATH_KIND_ORBIT)


@dataclass(frozen=True)
class Region:
    """A named patrol zone: centre plus half-extents in degrees."""
    id: str
    centre: Location
    lat_extent: float
    lng_extent: float


@dataclass(frozen=True)
class PathSegment:
    start: Location
    end: Location
    length: float  # metres


@dataclass(frozen=True)
class LoopPath:
    """Closed polyline; the first point is repeated as the last."""
    id: str
    points: Tuple[Location, ...]
    segments: Tuple[PathSegment, ...] = field(repr=False)
    total_length: float

    kind = PATH_KIND_LOOP

    def position_at_progress(self, value: float) -> Location:
        """
        Point reached after travelling `value` metres along the loop.

        Progress wraps modulo the loop length.
        """
        if self.total_length <= 0:
            return self.points[0]

        remaining = value % self.total_length

        for segment in self.segments:
            if segment.length == 0:
                continue
            if remaining <= segment.length:
                t = remaining / segment.length
                return Location(
                    lat=segment.start.lat + (segment.end.lat - segment.start.lat) * t,
                    lng=segment.start.lng + (segment.end.lng - segment.start.lng) * t,
                )
            remaining -= segment.length

        # Floating-point drift left distance unresolved; stay on the path
        return self.points[-1]


@dataclass(frozen=True)
class OrbitPath:
    """Ellipse around a region centre, parametrised by angle in radians."""
    id: str
    centre: Location
    lat_amplitude: float
    lng_amplitude: float
    wobble: float = 0.0

    kind = PATH_KIND_ORBIT

    def position_at_progress(self, value: float) -> Location:
        return Location(
            lat=self.centre.lat + self.lat_amplitude * math.sin(value)
                + self.wobble * math.sin(3 * value),
            lng=self.centre.lng + self.lng_amplitude * math.cos(value),
        )

    def scaled(self, lat_factor: float, lng_factor: float, wobble_factor: float = 0.0) -> 'OrbitPath':
        """Copy of this orbit with per-unit amplitude scaling applied."""
        lat_amplitude = self.lat_amplitude * lat_factor
        return replace(
            self,
            lat_amplitude=lat_amplitude,
            lng_amplitude=self.lng_amplitude * lng_factor,
            wobble=lat_amplitude * wobble_factor,
        )


PatrolPath = Union[LoopPath, OrbitPath]


# =============================================================================
# REGION CATALOG
# =============================================================================

# Approximate patrol zones covering the major Auckland suburbs.
REGIONS: Tuple[Region, ...] = (
    # Central city
    Region("CBD", Location(-36.8485, 174.763), 0.006, 0.008),
    Region("PONSONBY_GREYLYNN", Location(-36.855, 174.75), 0.006, 0.01),
    Region("MT_EDEN_EPSOM", Location(-36.885, 174.765), 0.007, 0.008),
    Region("NEWMARKET_PARNELL_GRAFTON", Location(-36.858, 174.776), 0.006, 0.008),
    # Inner south / isthmus
    Region("ONEHUNGA_ROYAL_OAK", Location(-36.915, 174.785), 0.008, 0.01),
    Region("MT_ROSKILL_BLOCKHOUSE_BAY", Location(-36.906, 174.729), 0.007, 0.009),
    # West
    Region("NEW_LYNN", Location(-36.9055, 174.686), 0.007, 0.01),
    Region("HENDERSON", Location(-36.8801, 174.6198), 0.008, 0.01),
    Region("TE_ATATU", Location(-36.845, 174.65), 0.006, 0.01),
    # North Shore
    Region("TAKAPUNA_DEVONPORT", Location(-36.7917, 174.7758), 0.006, 0.01),
    Region("NORTHCOTE_GLENFIELD", Location(-36.8, 174.74), 0.007, 0.01),
    Region("ALBANY_ROSEDALE", Location(-36.7167, 174.7), 0.01, 0.013),
    Region("BROWNS_BAY_TORBAY", Location(-36.72, 174.75), 0.008, 0.01),
    # Central / east
    Region("PANMURE_MT_WELLINGTON", Location(-36.8833, 174.8667), 0.007, 0.01),
    Region("SYLVIA_PARK_ELLERSLIE", Location(-36.9015, 174.816), 0.006, 0.01),
    # East Auckland
    Region("HOWICK", Location(-36.8936, 174.9317), 0.007, 0.01),
    Region("BOTANY_DOWNS", Location(-36.908, 174.9199), 0.007, 0.01),
    Region("EAST_TAMAKI_PAKURANGA", Location(-36.91, 174.89), 0.009, 0.011),
    # South Auckland
    Region("PAPATOETOE", Location(-36.9682, 174.8402), 0.007, 0.01),
    Region("OTAHUHU", Location(-36.9382, 174.8402), 0.007, 0.01),
    Region("MANUKAU", Location(-36.9928, 174.8799), 0.009, 0.011),
    Region("MANGERE", Location(-36.96, 174.78), 0.01, 0.012),
    Region("AIRPORT", Location(-37.01, 174.78), 0.008, 0.012),
)


def build_loop_path(region_id: str, points: Sequence[Location]) -> LoopPath:
    """Measure a closed polyline once and wrap it as a LoopPath."""
    points = tuple(points)
    if len(points) < 2:
        raise ValueError(f"Loop path {region_id} needs at least two points")
    if points[0] != points[-1]:
        points = points + (points[0],)

    segments: List[PathSegment] = []
    total = 0.0
    for start, end in zip(points, points[1:]):
        length = haversine_distance_m(start, end)
        segments.append(PathSegment(start=start, end=end, length=length))
        total += length

    return LoopPath(id=region_id, points=points, segments=tuple(segments), total_length=total)


def box_path(region: Region) -> LoopPath:
    """Rectangular loop around the region centre, clockwise from the north-west corner."""
    lat, lng = region.centre.lat, region.centre.lng
    d_lat, d_lng = region.lat_extent, region.lng_extent
    corners = [
        Location(lat + d_lat, lng - d_lng),
        Location(lat + d_lat, lng + d_lng),
        Location(lat - d_lat, lng + d_lng),
        Location(lat - d_lat, lng - d_lng),
        Location(lat + d_lat, lng - d_lng),
    ]
    return build_loop_path(region.id, corners)


def build_orbit_path(region: Region) -> OrbitPath:
    return OrbitPath(
        id=region.id,
        centre=region.centre,
        lat_amplitude=region.lat_extent,
        lng_amplitude=region.lng_extent,
    )


def build_catalog(kind: str = PATH_KIND_LOOP, regions: Sequence[Region] = REGIONS) -> Tuple[PatrolPath, ...]:
    """Turn every region into one patrol path of the requested kind, keeping catalog order."""
    if kind not in PATH_KINDS:
        raise ValueError(f"Unknown patrol path kind: {kind!r} (expected one of {PATH_KINDS})")
    if not regions:
        raise ValueError("Region catalog is empty")

    builder = box_path if kind == PATH_KIND_LOOP else build_orbit_path
    catalog = tuple(builder(region) for region in regions)

    logger.info(f"[PatrolPaths] Built {len(catalog)} {kind} paths")
    return catalog


def path_for_unit(catalog: Sequence[PatrolPath], unit_index: int) -> PatrolPath:
    """Paths are shared round-robin across the fleet."""
    return catalog[unit_index % len(catalog)]
