"""Patrol unit simulation and nearest-unit incident dispatch."""

__version__ = "0.1.0"
