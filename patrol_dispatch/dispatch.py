"""
Dispatch - pick the nearest idle unit for a new incident.

Greedy and stateless: the caller supplies the busy set it read from the
incident store and records the decision itself. Serialising concurrent
dispatches is the store's job (see IncidentStore.create_incident).
"""

import logging
from typing import Callable, Collection, Optional

import numpy as np

from patrol_dispatch.config import settings
from patrol_dispatch.geometry import Location, haversine_distances_m
from patrol_dispatch.simulation import (
    BaseUnitState,
    Timestamp,
    format_unit_id,
    position_at_time,
)

logger = logging.getLogger(__name__)

PositionFn = Callable[[int, Timestamp], BaseUnitState]


def assign_nearest_unit(
    incident: Location,
    busy_unit_ids: Collection[str],
    timestamp: Timestamp,
    fleet_size: Optional[int] = None,
    position_fn: PositionFn = position_at_time
) -> Optional[str]:
    """
    Return the id of the idle unit closest to `incident`, or None if every
    unit is busy.

    Units are scanned in ascending index order and np.argmin keeps the first
    minimum, so exact ties go to the lowest index.
    """
    if fleet_size is None:
        fleet_size = settings.fleet_size
    busy = set(busy_unit_ids)

    idle_units = [
        position_fn(index, timestamp)
        for index in range(fleet_size)
        if format_unit_id(index) not in busy
    ]

    if not idle_units:
        logger.info(f"[Dispatch] No available units for incident at {incident} "
                    f"({len(busy)} busy)")
        return None

    distances = haversine_distances_m(
        incident,
        [unit.lat for unit in idle_units],
        [unit.lng for unit in idle_units],
    )
    if np.all(np.isnan(distances)):
        # Non-finite incident coordinates; nothing is comparable
        logger.warning(f"[Dispatch] Distances undefined for incident at {incident}")
        return None

    best = int(np.nanargmin(distances))
    chosen = idle_units[best]

    logger.info(f"[Dispatch] {chosen.id} assigned, {distances[best]:.0f}m from {incident} "
                f"({len(idle_units)} available)")
    return chosen.id
