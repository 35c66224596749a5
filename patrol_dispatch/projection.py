"""
Projection - where a busy unit is shown while it responds to an incident.

A dispatched unit leaves its patrol path from wherever it was idling at the
moment of assignment and travels straight to the target at its patrol speed.
Nothing about the journey is stored: the departure point is replayed from the
simulation, and the progress is derived from the elapsed time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from patrol_dispatch.config import settings
from patrol_dispatch.geometry import Location, haversine_distance_m
from patrol_dispatch.patrol_paths import PatrolPath
from patrol_dispatch.simulation import (
    BaseUnitState,
    Timestamp,
    format_unit_id,
    parse_unit_id,
    position_at_time,
    to_epoch_seconds,
)

logger = logging.getLogger(__name__)

STATUS_AVAILABLE = "available"
STATUS_BUSY = "busy"


@dataclass(frozen=True)
class Assignment:
    """An open incident assignment for one unit, as recorded by the store."""
    incident_id: str
    target: Location
    assigned_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Assignment':
        assigned_at = record.get('assigned_at', record.get('assignedAt'))
        if isinstance(assigned_at, str):
            assigned_at = parse_time(assigned_at)
        return cls(
            incident_id=str(record.get('incident_id', record.get('id', ''))),
            target=Location(
                lat=float(record.get('lat', record.get('latitude'))),
                lng=float(record.get('lng', record.get('longitude'))),
            ),
            assigned_at=assigned_at,
        )


@dataclass(frozen=True)
class RenderedUnitState:
    id: str
    lat: float
    lng: float
    path_id: str
    status: str
    last_updated: datetime
    assigned_incident_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'lat': self.lat,
            'lng': self.lng,
            'path_id': self.path_id,
            'status': self.status,
            'last_updated': self.last_updated.isoformat(),
        }
        if self.assigned_incident_id is not None:
            data['assigned_incident_id'] = self.assigned_incident_id
        return data


def parse_time(time_str: str) -> datetime:
    """Parse ISO 8601 timestamp."""
    if time_str.endswith('Z'):
        time_str = time_str[:-1] + '+00:00'
    parsed = datetime.fromisoformat(time_str)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_datetime(timestamp: Timestamp) -> datetime:
    if isinstance(timestamp, datetime):
        return timestamp if timestamp.tzinfo else timestamp.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(float(timestamp), tz=timezone.utc)


def render_idle_unit(base: BaseUnitState, now: Timestamp) -> RenderedUnitState:
    return RenderedUnitState(
        id=base.id,
        lat=base.lat,
        lng=base.lng,
        path_id=base.path_id,
        status=STATUS_AVAILABLE,
        last_updated=to_datetime(now),
    )


# =============================================================================
# BUSY UNIT PROJECTION
# =============================================================================

def project_from_departure(
    departure: BaseUnitState,
    assignment: Assignment,
    now: Timestamp,
    arrival_threshold_m: Optional[float] = None
) -> RenderedUnitState:
    """
    Position of a unit that left `departure` for `assignment.target`.

    fraction = min(distance, elapsed * speed) / distance, clamped to [0, 1];
    the unit then waits at the target until the store clears the assignment.
    """
    if arrival_threshold_m is None:
        arrival_threshold_m = settings.arrival_threshold_m

    target = assignment.target
    origin = Location(departure.lat, departure.lng)
    distance = haversine_distance_m(origin, target)

    if distance <= arrival_threshold_m:
        lat, lng = target.lat, target.lng
    else:
        assigned_at = assignment.assigned_at if assignment.assigned_at is not None else now
        elapsed = max(0.0, to_epoch_seconds(now) - to_epoch_seconds(assigned_at))
        travelled = min(distance, elapsed * departure.speed_mps)
        fraction = travelled / distance
        if fraction >= 1.0:
            lat, lng = target.lat, target.lng
        else:
            lat = origin.lat + fraction * (target.lat - origin.lat)
            lng = origin.lng + fraction * (target.lng - origin.lng)

    return RenderedUnitState(
        id=departure.id,
        lat=lat,
        lng=lng,
        path_id=departure.path_id,
        status=STATUS_BUSY,
        last_updated=to_datetime(now),
        assigned_incident_id=assignment.incident_id,
    )


def project_busy_unit(
    unit_index: int,
    assignment: Assignment,
    now: Timestamp,
    catalog: Optional[Sequence[PatrolPath]] = None
) -> RenderedUnitState:
    """Replay the idle position at assignment time, then project toward the target."""
    assigned_at = assignment.assigned_at if assignment.assigned_at is not None else now
    departure = position_at_time(unit_index, assigned_at, catalog)
    return project_from_departure(departure, assignment, now)


def latest_assignments(
    records: Iterable[Mapping[str, Any]],
    now: Timestamp,
    fleet_size: Optional[int] = None
) -> Dict[str, Assignment]:
    """
    Reduce store records to one open assignment per unit.

    If a unit appears more than once the most recent assigned_at wins (records
    without one count as assigned "now"; equal times go to the later record).
    Records naming an unknown unit are skipped.
    """
    now_s = to_epoch_seconds(now)
    latest: Dict[str, Assignment] = {}
    latest_time: Dict[str, float] = {}

    for record in records:
        unit_id = record.get('assigned_unit_id', record.get('assignedUnitId'))
        if not unit_id:
            continue
        if parse_unit_id(unit_id, fleet_size) is None:
            logger.warning(f"[Projection] Ignoring assignment for unknown unit {unit_id!r}")
            continue

        assignment = Assignment.from_record(record)
        when = to_epoch_seconds(assignment.assigned_at) if assignment.assigned_at is not None else now_s

        if unit_id in latest:
            logger.warning(f"[Projection] {unit_id} has more than one open assignment; "
                           f"keeping the most recent")
            if when < latest_time[unit_id]:
                continue
        latest[unit_id] = assignment
        latest_time[unit_id] = when

    return latest


def render_fleet(
    now: Timestamp,
    assignments: Mapping[str, Assignment],
    fleet_size: Optional[int] = None,
    catalog: Optional[Sequence[PatrolPath]] = None
) -> List[RenderedUnitState]:
    """Every unit at `now`: patrolling if idle, projected if assigned."""
    if fleet_size is None:
        fleet_size = settings.fleet_size
    units: List[RenderedUnitState] = []

    for index in range(fleet_size):
        assignment = assignments.get(format_unit_id(index))
        if assignment is not None:
            units.append(project_busy_unit(index, assignment, now, catalog))
        else:
            units.append(render_idle_unit(position_at_time(index, now, catalog), now))

    return units
