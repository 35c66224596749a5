"""
Incident intake - validation of new incident reports and display helpers.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping

from patrol_dispatch.geometry import Location

MIN_PRIORITY = 1
MAX_PRIORITY = 10

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"

FRESHNESS_RECENT = "recent"
FRESHNESS_WARM = "warm"
FRESHNESS_OLD = "old"


@dataclass(frozen=True)
class IncidentReport:
    """A validated incident report, before dispatch."""
    description: str
    priority_level: int
    location: Location


def _as_number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def parse_incident_payload(data: Mapping[str, Any]) -> IncidentReport:
    """
    Validate a create-incident request body.

    Raises ValueError with a user-facing message on the first problem found.
    """
    if not isinstance(data, Mapping):
        raise ValueError("Request body must be a JSON object.")

    description = data.get('description')
    if not description or not isinstance(description, str) or not description.strip():
        raise ValueError("Description is required.")

    priority = _as_number(data.get('priority_level', data.get('priorityLevel')))
    if (not math.isfinite(priority) or priority != int(priority)
            or priority < MIN_PRIORITY or priority > MAX_PRIORITY):
        raise ValueError(f"priority_level must be a whole number between {MIN_PRIORITY} and {MAX_PRIORITY}.")

    lat = _as_number(data.get('latitude', data.get('lat')))
    lng = _as_number(data.get('longitude', data.get('lng')))
    if not math.isfinite(lat) or not math.isfinite(lng):
        raise ValueError("latitude and longitude must be valid numbers.")

    return IncidentReport(
        description=description.strip(),
        priority_level=int(priority),
        location=Location(lat=lat, lng=lng),
    )


def severity_for_priority(priority_level: int) -> str:
    if priority_level >= 8:
        return SEVERITY_HIGH
    if priority_level >= 4:
        return SEVERITY_MEDIUM
    return SEVERITY_LOW


def freshness_for_age(age_seconds: float) -> str:
    """Bucket an incident's age for map styling"""
    age_minutes = age_seconds / 60
    if age_minutes < 15:
        return FRESHNESS_RECENT
    if age_minutes < 60:
        return FRESHNESS_WARM
    return FRESHNESS_OLD
