"""
Fleet State - in-memory incident and assignment store.

This module holds the only mutable state of the service:
- All reported incidents, open or resolved
- The unit each open incident is assigned to, and when it was assigned

Unit positions are never stored; they are recomputed from time by the
simulation. Dispatch runs under the store lock so that reading the busy set,
choosing a unit and recording the choice happen as one step: two concurrent
reports can never be given the same unit.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set
from datetime import datetime, timezone
from enum import Enum
import threading
import uuid
import logging

from patrol_dispatch.config import settings
from patrol_dispatch.dispatch import assign_nearest_unit
from patrol_dispatch.geometry import Location
from patrol_dispatch.incidents import IncidentReport, freshness_for_age, severity_for_priority

logger = logging.getLogger(__name__)

Dispatcher = Callable[..., Optional[str]]


class IncidentStatus(Enum):
    OPEN = "open"                # Reported, waiting for a free unit
    ASSIGNED = "assigned"        # A unit is responding
    RESOLVED = "resolved"


@dataclass
class IncidentState:
    id: str
    description: str
    priority_level: int
    location: Location
    reported_at: datetime
    assigned_unit_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> IncidentStatus:
        if self.resolved_at is not None:
            return IncidentStatus.RESOLVED
        if self.assigned_unit_id:
            return IncidentStatus.ASSIGNED
        return IncidentStatus.OPEN

    @property
    def severity(self) -> str:
        return severity_for_priority(self.priority_level)

    def freshness(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        return freshness_for_age((now - self.reported_at).total_seconds())

    def to_assignment_record(self) -> Dict[str, Any]:
        return {
            'incident_id': self.id,
            'lat': self.location.lat,
            'lng': self.location.lng,
            'assigned_unit_id': self.assigned_unit_id,
            'assigned_at': self.assigned_at,
        }

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            'id': self.id,
            'description': self.description,
            'priority_level': self.priority_level,
            'severity': self.severity,
            'freshness': self.freshness(now),
            'latitude': self.location.lat,
            'longitude': self.location.lng,
            'status': self.status.value,
            'assigned_unit_id': self.assigned_unit_id,
            'assigned_at': self.assigned_at.isoformat() if self.assigned_at else None,
            'reported_at': self.reported_at.isoformat(),
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
        }


class IncidentStore:
    """
    Thread-safe store of incidents and their unit assignments.
    """

    def __init__(self, fleet_size: Optional[int] = None, dispatcher: Dispatcher = assign_nearest_unit):
        """
        Initialize the store.

        Args:
            fleet_size: Number of simulated units (defaults to configuration)
            dispatcher: Picks a unit given (location, busy ids, timestamp, fleet_size)
        """
        self.fleet_size = settings.fleet_size if fleet_size is None else fleet_size
        self._dispatcher = dispatcher

        # State storage
        self._incidents: Dict[str, IncidentState] = {}

        # Thread safety
        self._lock = threading.RLock()

        # Statistics
        self._stats = {
            'incidents_reported': 0,
            'incidents_dispatched': 0,
            'incidents_unassigned': 0,
            'incidents_resolved': 0,
        }

        logger.info(f"[IncidentStore] Initialized for fleet of {self.fleet_size} units")

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def create_incident(self, report: IncidentReport, now: Optional[datetime] = None) -> IncidentState:
        """
        Record a new incident and dispatch the nearest free unit to it.

        If no unit is free the incident is stored without an assignment.
        """
        now = now or datetime.now(timezone.utc)

        with self._lock:
            busy = self.busy_unit_ids()
            unit_id = self._dispatcher(report.location, busy, now, self.fleet_size)

            incident = IncidentState(
                id=str(uuid.uuid4()),
                description=report.description,
                priority_level=report.priority_level,
                location=report.location,
                reported_at=now,
                assigned_unit_id=unit_id,
                assigned_at=now if unit_id else None,
                last_updated=now,
            )
            self._incidents[incident.id] = incident

            self._stats['incidents_reported'] += 1
            if unit_id:
                self._stats['incidents_dispatched'] += 1
                logger.info(f"[IncidentStore] Incident {incident.id[:8]} at {report.location} → {unit_id}")
            else:
                self._stats['incidents_unassigned'] += 1
                logger.warning(f"[IncidentStore] Incident {incident.id[:8]} at {report.location} "
                               f"left unassigned, all {self.fleet_size} units busy")

            return incident

    def resolve_incident(self, incident_id: str, now: Optional[datetime] = None) -> Optional[IncidentState]:
        """Close an incident, releasing its unit back to patrol"""
        with self._lock:
            incident = self._incidents.get(incident_id)
            if not incident:
                return None
            if incident.resolved_at is None:
                incident.resolved_at = now or datetime.now(timezone.utc)
                incident.last_updated = incident.resolved_at
                self._stats['incidents_resolved'] += 1
                logger.info(f"[IncidentStore] Incident resolved: {incident_id[:8]}, "
                            f"{incident.assigned_unit_id or 'no unit'} released")
            return incident

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_incident(self, incident_id: str) -> Optional[IncidentState]:
        with self._lock:
            return self._incidents.get(incident_id)

    def list_incidents(self, include_resolved: bool = True) -> List[IncidentState]:
        """Incidents in reporting order"""
        with self._lock:
            incidents = sorted(self._incidents.values(), key=lambda i: i.reported_at)
            if include_resolved:
                return incidents
            return [i for i in incidents if i.status != IncidentStatus.RESOLVED]

    def busy_unit_ids(self) -> Set[str]:
        """Units with an open assignment"""
        with self._lock:
            return {
                i.assigned_unit_id for i in self._incidents.values()
                if i.assigned_unit_id and i.status == IncidentStatus.ASSIGNED
            }

    def open_assignment_records(self, at: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Open assignments in the store's record form.

        With `at`, the assignments that were open at that instant: made at or
        before it and not yet resolved by then.
        """
        with self._lock:
            if at is None:
                return [
                    i.to_assignment_record() for i in self._incidents.values()
                    if i.status == IncidentStatus.ASSIGNED
                ]
            return [
                i.to_assignment_record() for i in self._incidents.values()
                if i.assigned_unit_id and i.assigned_at <= at
                and (i.resolved_at is None or i.resolved_at > at)
            ]

    # =========================================================================
    # STATISTICS AND DEBUGGING
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            busy = self.busy_unit_ids()
            return {
                **self._stats,
                'fleet_size': self.fleet_size,
                'busy_units': len(busy),
                'available_units': self.fleet_size - len(busy),
                'open_incidents': len(self.list_incidents(include_resolved=False)),
            }

    def get_state_summary(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        with self._lock:
            return {
                'busy_units': sorted(self.busy_unit_ids()),
                'open_incidents': [i.to_dict(now) for i in self.list_incidents(include_resolved=False)],
                'stats': self.get_stats(),
            }

    def clear(self):
        """Clear all state (for testing)"""
        with self._lock:
            self._incidents.clear()
            for key in self._stats:
                self._stats[key] = 0
            logger.info("[IncidentStore] State cleared")


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

incident_store = IncidentStore()
