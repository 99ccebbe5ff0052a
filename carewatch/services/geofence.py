"""
Safe-zone transition detection.

State machine per session: UNKNOWN -> INSIDE/OUTSIDE on the first usable
sample (baseline, no event), then one event per boundary crossing.

A missing, invalid, or stale sample skips the tick and leaves state as it
was. A GPS dropout therefore never looks like an exit; detection is delayed
until a usable fix arrives.
"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict

from carewatch.config import GeofenceConfig
from carewatch.domain.errors import InvalidCoordinate
from carewatch.domain.models import (
    AlertEvent,
    AlertType,
    Coordinate,
    GeofenceState,
    MonitoringState,
    SafeZone,
)
from carewatch.services.collaborators import Clock, SystemClock, logger
from carewatch.services.geo import distance_meters, validate_coordinate


class GeofenceTransition(str, Enum):
    ENTERED = "entered"
    EXITED = "exited"

    @property
    def alert_type(self) -> AlertType:
        if self is GeofenceTransition.EXITED:
            return AlertType.GEOFENCE_EXIT
        return AlertType.GEOFENCE_ENTRY

    @property
    def log_event(self) -> str:
        if self is GeofenceTransition.EXITED:
            return "geofence_exit_detected"
        return "geofence_entry_detected"


class GeofenceEvaluation(BaseModel):
    """Outcome of evaluating one location sample."""

    model_config = ConfigDict(frozen=True)

    location: Coordinate
    distance_meters: float
    radius_meters: float
    is_inside: bool
    previous_state: GeofenceState
    state: GeofenceState
    transition: GeofenceTransition | None = None
    evaluated_at: datetime

    @property
    def is_baseline(self) -> bool:
        return self.previous_state == GeofenceState.UNKNOWN

    def to_alert(self, patient_id: str) -> AlertEvent | None:
        if self.transition is None:
            return None
        return AlertEvent.create(
            patient_id, self.transition.alert_type, location=self.location, now=self.evaluated_at
        )


class GeofenceEvaluator:
    """
    Evaluates location samples against a patient's safe zone.

    The evaluator keeps no state of its own between calls; everything lives
    in the session-owned MonitoringState passed in.
    """

    def __init__(
        self,
        patient_id: str,
        safe_zone: SafeZone | None,
        state: MonitoringState | None = None,
        config: GeofenceConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.patient_id = patient_id
        self.state = state if state is not None else MonitoringState()
        self.config = config or GeofenceConfig()
        self.clock = clock or SystemClock()
        self.logger = logger.bind(component="geofence_evaluator", patient_id=patient_id)
        self.safe_zone: SafeZone | None = None
        self.update_safe_zone(safe_zone)

    @property
    def has_safe_zone(self) -> bool:
        return self.safe_zone is not None

    def update_safe_zone(self, zone: SafeZone | None) -> None:
        """
        Replace the zone. Inactive zones count as absent.

        A changed zone resets the baseline so the next sample re-establishes
        state without emitting an event.
        """
        if zone is not None and not zone.is_active:
            self.logger.info("safe_zone_inactive", name=zone.display_name)
            zone = None

        if zone != self.safe_zone:
            self.state.reset_baseline()

        self.safe_zone = zone
        if zone is None:
            self.logger.info("geofence_inert_no_safe_zone")
        else:
            self.logger.info(
                "safe_zone_configured",
                name=zone.display_name,
                center_latitude=zone.center_latitude,
                center_longitude=zone.center_longitude,
                radius_meters=zone.radius_meters,
            )

    def _is_usable(self, sample: Coordinate, now: datetime) -> bool:
        try:
            validate_coordinate(sample)
        except InvalidCoordinate as e:
            self.logger.warning("location_sample_invalid", error=str(e))
            return False

        if sample.recorded_at is not None:
            age = now - sample.recorded_at
            if age > timedelta(seconds=self.config.max_location_age_seconds):
                self.logger.warning(
                    "location_sample_stale", age_seconds=round(age.total_seconds(), 1)
                )
                return False
        return True

    def evaluate(
        self, sample: Coordinate | None, now: datetime | None = None
    ) -> GeofenceEvaluation | None:
        """
        Advance the state machine with one sample.

        Returns:
            The evaluation, or None when the tick was skipped (no zone, or no
            usable sample). Skipped ticks never change state.
        """
        zone = self.safe_zone
        if zone is None:
            return None

        now = now or self.clock.now()
        if sample is None:
            self.logger.debug("geofence_tick_skipped_no_location")
            return None
        if not self._is_usable(sample, now):
            return None

        distance = distance_meters(sample, zone.center)
        now_inside = distance <= zone.radius_meters
        previous = self.state.geofence_state

        transition: GeofenceTransition | None = None
        if previous == GeofenceState.UNKNOWN:
            self.logger.info(
                "geofence_baseline_established",
                state="inside" if now_inside else "outside",
                distance_meters=round(distance, 1),
            )
        elif previous == GeofenceState.INSIDE and not now_inside:
            transition = GeofenceTransition.EXITED
        elif previous == GeofenceState.OUTSIDE and now_inside:
            transition = GeofenceTransition.ENTERED

        self.state.has_baseline = True
        self.state.is_inside_safe_zone = now_inside
        self.state.last_location = sample
        self.state.last_checked_at = now

        if transition is not None:
            self.logger.warning(
                transition.log_event,
                distance_meters=round(distance, 1),
                radius_meters=zone.radius_meters,
                latitude=sample.latitude,
                longitude=sample.longitude,
            )
        else:
            self.logger.debug(
                "geofence_checked",
                distance_meters=round(distance, 1),
                radius_meters=zone.radius_meters,
                inside=now_inside,
            )

        return GeofenceEvaluation(
            location=sample,
            distance_meters=distance,
            radius_meters=zone.radius_meters,
            is_inside=now_inside,
            previous_state=previous,
            state=self.state.geofence_state,
            transition=transition,
            evaluated_at=now,
        )
