"""
Patrol Simulation - where every idle unit is at any instant.

Positions are a pure function of (unit index, time). There is no tick loop and
no stored state: each unit's speed and starting offset are re-derived from its
id on every call via unit_seed(), so replaying a past instant costs nothing.

Seed hash (part of the simulation's reproducible contract):
    h = 0
    for each character c of the id:  h = int32(h * 31 + ord(c))
    seed = abs(h)
i.e. the classic 32-bit polynomial string hash. For "UNIT-00" this gives
431439593, so unit 0 patrols at 25 + 431439593 % 16 = 34 km/h.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union

from patrol_dispatch.config import MIN_SPEED_KMH, SPEED_SPREAD_KMH, settings
from patrol_dispatch.patrol_paths import (
    LoopPath,
    OrbitPath,
    PatrolPath,
    build_catalog,
    path_for_unit,
)

Timestamp = Union[datetime, int, float]

UNIT_ID_PREFIX = "UNIT-"
_UNIT_ID_PATTERN = re.compile(r"UNIT-([0-9]{2})")

# Orbit timing: one full loop every 4-6 minutes
ORBIT_MIN_PERIOD_S = 240
ORBIT_PERIOD_SPREAD_S = 121
ORBIT_WOBBLE_FACTOR = 0.08

# Paths for the configured kind, built once per process
DEFAULT_CATALOG = build_catalog(settings.path_kind)


@dataclass(frozen=True)
class BaseUnitState:
    """Idle (patrolling) position of one unit at one instant."""
    id: str
    index: int
    lat: float
    lng: float
    path_id: str
    speed_mps: float


# =============================================================================
# UNIT IDENTIFIERS
# =============================================================================

def format_unit_id(index: int) -> str:
    return f"{UNIT_ID_PREFIX}{index:02d}"


def parse_unit_id(unit_id: str, fleet_size: Optional[int] = None) -> Optional[int]:
    """
    Inverse of format_unit_id.

    Returns None for anything that is not a well-formed id of a unit in the
    fleet, so lookups by id degrade to "not found".
    """
    if not isinstance(unit_id, str):
        return None
    match = _UNIT_ID_PATTERN.fullmatch(unit_id)
    if not match:
        return None
    index = int(match.group(1))
    if fleet_size is None:
        fleet_size = settings.fleet_size
    if index >= fleet_size:
        return None
    return index


# =============================================================================
# SEED-DERIVED UNIT PARAMETERS
# =============================================================================

def unit_seed(unit_id: str) -> int:
    """Stable non-negative 32-bit hash of a unit id."""
    h = 0
    for char in unit_id:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def speed_for_seed(seed: int) -> float:
    """Patrol speed in m/s, between 25 and 40 km/h."""
    speed_kmh = MIN_SPEED_KMH + (seed % SPEED_SPREAD_KMH)
    return speed_kmh * 1000 / 3600


def orbit_parameters(seed: int):
    """
    Per-unit orbit shape and timing.

    Returns (phase_radians, lat_factor, lng_factor, period_seconds).
    """
    phase = math.radians(seed % 360)
    lat_factor = 0.6 + ((seed >> 4) % 41) / 100
    lng_factor = 0.6 + ((seed >> 10) % 41) / 100
    period = ORBIT_MIN_PERIOD_S + (seed % ORBIT_PERIOD_SPREAD_S)
    return phase, lat_factor, lng_factor, period


def to_epoch_seconds(timestamp: Timestamp) -> float:
    """Seconds since the Unix epoch; naive datetimes are taken as UTC."""
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp.timestamp()
    return float(timestamp)


# =============================================================================
# POSITION FUNCTION
# =============================================================================

def position_at_time(
    unit_index: int,
    timestamp: Timestamp,
    catalog: Optional[Sequence[PatrolPath]] = None
) -> BaseUnitState:
    """Idle position of unit `unit_index` at `timestamp`. Pure."""
    if unit_index < 0:
        raise ValueError(f"Unit index must be non-negative, got {unit_index}")

    path = path_for_unit(catalog or DEFAULT_CATALOG, unit_index)
    unit_id = format_unit_id(unit_index)
    seed = unit_seed(unit_id)
    speed = speed_for_seed(seed)
    elapsed = to_epoch_seconds(timestamp)

    if isinstance(path, LoopPath):
        offset = seed % path.total_length if path.total_length > 0 else 0.0
        progress = (offset + elapsed * speed) % path.total_length if path.total_length > 0 else 0.0
        point = path.position_at_progress(progress)
    else:
        phase, lat_factor, lng_factor, period = orbit_parameters(seed)
        angle = (2 * math.pi / period) * elapsed + phase
        orbit = path.scaled(lat_factor, lng_factor, ORBIT_WOBBLE_FACTOR)
        point = orbit.position_at_progress(angle)

    return BaseUnitState(
        id=unit_id,
        index=unit_index,
        lat=point.lat,
        lng=point.lng,
        path_id=path.id,
        speed_mps=speed,
    )


def patrol_period_seconds(unit_index: int, catalog: Optional[Sequence[PatrolPath]] = None) -> float:
    """Time for the unit to come back to the same idle position."""
    path = path_for_unit(catalog or DEFAULT_CATALOG, unit_index)
    seed = unit_seed(format_unit_id(unit_index))
    if isinstance(path, OrbitPath):
        return float(orbit_parameters(seed)[3])
    return path.total_length / speed_for_seed(seed)


def all_base_units(
    timestamp: Timestamp,
    fleet_size: Optional[int] = None,
    catalog: Optional[Sequence[PatrolPath]] = None
) -> List[BaseUnitState]:
    """Idle positions for the whole fleet, in index order."""
    if fleet_size is None:
        fleet_size = settings.fleet_size
    return [position_at_time(i, timestamp, catalog) for i in range(fleet_size)]


def base_unit_by_id(
    unit_id: str,
    timestamp: Timestamp,
    fleet_size: Optional[int] = None,
    catalog: Optional[Sequence[PatrolPath]] = None
) -> Optional[BaseUnitState]:
    index = parse_unit_id(unit_id, fleet_size)
    if index is None:
        return None
    return position_at_time(index, timestamp, catalog)
