"""
Process-wide configuration, read from the environment once at start-up.

Nothing here changes at runtime; the simulation relies on fleet size and path
kind staying fixed so that positions are reproducible for any instant.
"""

import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional

from patrol_dispatch.patrol_paths import PATH_KIND_LOOP, PATH_KINDS

DEFAULT_FLEET_SIZE = 80
MAX_FLEET_SIZE = 100  # unit ids are two digits wide

# Idle patrol speed range, km/h (inclusive)
MIN_SPEED_KMH = 25
SPEED_SPREAD_KMH = 16

# A busy unit closer than this to its target is treated as arrived
DEFAULT_ARRIVAL_THRESHOLD_M = 1.0


@dataclass(frozen=True)
class SimulationConfig:
    fleet_size: int = DEFAULT_FLEET_SIZE
    path_kind: str = PATH_KIND_LOOP
    arrival_threshold_m: float = DEFAULT_ARRIVAL_THRESHOLD_M
    secret_key: str = 'patrol-dispatch-secret-key'
    port: int = 8080
    async_mode: Optional[str] = None

    def __post_init__(self):
        if not 0 < self.fleet_size <= MAX_FLEET_SIZE:
            raise ValueError(f"FLEET_SIZE must be between 1 and {MAX_FLEET_SIZE}, got {self.fleet_size}")
        if self.path_kind not in PATH_KINDS:
            raise ValueError(f"PATROL_PATH_KIND must be one of {PATH_KINDS}, got {self.path_kind!r}")
        if self.arrival_threshold_m < 0:
            raise ValueError("ARRIVAL_THRESHOLD_M must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SimulationConfig':
        env = os.environ if environ is None else environ
        return cls(
            fleet_size=int(env.get('FLEET_SIZE', DEFAULT_FLEET_SIZE)),
            path_kind=env.get('PATROL_PATH_KIND', PATH_KIND_LOOP).strip().lower(),
            arrival_threshold_m=float(env.get('ARRIVAL_THRESHOLD_M', DEFAULT_ARRIVAL_THRESHOLD_M)),
            secret_key=env.get('SECRET_KEY', 'patrol-dispatch-secret-key'),
            port=int(env.get('PORT', 8080)),
            async_mode=env.get('ASYNC_MODE') or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the configuration (no secrets)."""
        data = asdict(self)
        data.pop('secret_key')
        return data


settings = SimulationConfig.from_env()
