"""
Error taxonomy for the monitoring core.

Expected outcomes (a lost confirmation race, a transient store outage) are
returned inside ``Result`` values; only programmer/data errors and a failed
session start are raised.
"""


class MonitoringError(Exception):
    """Base class for monitoring core errors."""


class SensorUnavailable(MonitoringError):
    """Motion sensor cannot be used. Fatal to a single session start."""


class LocationUnavailable(MonitoringError):
    """Location provider returned no fix. Callers degrade instead of failing."""


class StoreWriteFailed(MonitoringError):
    """Alert store rejected or failed a write. Alert creation is dropped."""


class AlertNotFound(MonitoringError):
    def __init__(self, alert_id: str) -> None:
        super().__init__(f"Alert {alert_id} not found")
        self.alert_id = alert_id


class ConditionFailed(MonitoringError):
    """A conditional update's precondition did not hold."""


class AlreadyResolved(ConditionFailed):
    """The alert left PENDING before this confirmation attempt."""

    def __init__(self, alert_id: str, status: str) -> None:
        super().__init__(f"Alert {alert_id} already resolved as {status}")
        self.alert_id = alert_id
        self.status = status


class InvalidCoordinate(MonitoringError, ValueError):
    """Latitude/longitude is NaN or out of range."""
