"""Collaborator implementations for tests and local simulation."""

from .memory import InMemoryAlertStore, StaticDirectory
from .simulated import SimulatedLocationProvider, SimulatedMotionSensor

__all__ = [
    "InMemoryAlertStore",
    "StaticDirectory",
    "SimulatedLocationProvider",
    "SimulatedMotionSensor",
]
