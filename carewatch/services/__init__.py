"""
Core services for the monitoring system.

This package contains the detection state machines, the alert confirmation
workflow, and the per-patient session orchestration.
"""

from .alert_lifecycle import AlertLifecycleManager
from .collaborators import (
    AlertStore,
    Clock,
    Directory,
    LocationProvider,
    MotionSensor,
    Result,
    SystemClock,
)
from .debounce import DebounceGate
from .fall_detection import FallDetector
from .geofence import GeofenceEvaluation, GeofenceEvaluator, GeofenceTransition
from .monitoring_service import MonitoringService
from .session import MonitoringSession

__all__ = [
    "AlertLifecycleManager",
    "AlertStore",
    "Clock",
    "DebounceGate",
    "Directory",
    "FallDetector",
    "GeofenceEvaluation",
    "GeofenceEvaluator",
    "GeofenceTransition",
    "LocationProvider",
    "MonitoringService",
    "MonitoringSession",
    "MotionSensor",
    "Result",
    "SystemClock",
]
