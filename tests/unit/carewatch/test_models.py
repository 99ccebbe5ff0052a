"""
Tests for domain models and the Result type.

Covers:
- AlertEvent confirmation invariants and derived fields
- SafeZone radius bounds and fail-closed record decoding
- Acceleration magnitude and sample validity
- MonitoringState geofence state derivation and status staleness
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

import pytest

from carewatch.domain.models import (
    Acceleration,
    AlertEvent,
    AlertType,
    ConfirmationStatus,
    Coordinate,
    GeofenceState,
    MonitoringMode,
    MonitoringState,
    MonitoringStatus,
    SafeZone,
)
from carewatch.services.collaborators import Result


class TestResult:
    """Test the Result type for explicit error handling."""

    def test_result_ok_creates_successful_result(self) -> None:
        result: Result[str, Exception] = Result.ok("success")
        assert result.is_ok()
        assert not result.is_err()
        assert result.unwrap() == "success"

    def test_unwrap_raises_on_error_result(self) -> None:
        result: Result[str, ValueError] = Result.err(ValueError("test error"))

        assert result.unwrap_or("default") == "default"
        with pytest.raises(ValueError, match="test error"):
            result.unwrap()

    def test_unwrap_err_on_ok_value_raises(self) -> None:
        with pytest.raises(ValueError):
            Result.ok(1).unwrap_err()


class TestAlertEvent:
    def test_geofence_exit_requires_confirmation(self) -> None:
        alert = AlertEvent.create("patient-1", AlertType.GEOFENCE_EXIT)

        assert alert.requires_confirmation is True
        assert alert.confirmation_status == ConfirmationStatus.PENDING
        assert alert.is_pending_confirmation
        assert alert.display_message == "Patient left safe zone - confirmation needed"

    @pytest.mark.parametrize("alert_type", [AlertType.FALL_DETECTED, AlertType.GEOFENCE_ENTRY])
    def test_other_alerts_need_no_confirmation(self, alert_type: AlertType) -> None:
        alert = AlertEvent.create("patient-1", alert_type)

        assert alert.requires_confirmation is False
        assert alert.confirmation_status == ConfirmationStatus.NOT_APPLICABLE
        assert not alert.is_pending_confirmation

    def test_fall_alert_cannot_be_pending(self) -> None:
        with pytest.raises(ValueError):
            AlertEvent(
                patient_id="patient-1",
                alert_type=AlertType.FALL_DETECTED,
                requires_confirmation=False,
                confirmation_status=ConfirmationStatus.PENDING,
            )

    def test_exit_alert_cannot_be_not_applicable(self) -> None:
        with pytest.raises(ValueError):
            AlertEvent(
                patient_id="patient-1",
                alert_type=AlertType.GEOFENCE_EXIT,
                requires_confirmation=True,
                confirmation_status=ConfirmationStatus.NOT_APPLICABLE,
            )

    def test_location_fields_follow_coordinate(self) -> None:
        with_location = AlertEvent.create(
            "patient-1",
            AlertType.FALL_DETECTED,
            location=Coordinate(latitude=24.7, longitude=46.6),
        )
        without_location = AlertEvent.create("patient-1", AlertType.FALL_DETECTED)

        assert with_location.has_location
        assert with_location.coordinate == Coordinate(latitude=24.7, longitude=46.6)
        assert not without_location.has_location
        assert without_location.coordinate is None

    def test_alerts_are_immutable(self) -> None:
        alert = AlertEvent.create("patient-1", AlertType.GEOFENCE_EXIT)

        with pytest.raises(ValueError, match="frozen"):
            alert.is_read = True  # type: ignore[misc]

    def test_confirmation_deadline(self) -> None:
        now = datetime(2025, 12, 11, 9, 0, tzinfo=UTC)
        alert = AlertEvent.create("patient-1", AlertType.GEOFENCE_EXIT, now=now)

        assert alert.confirmation_deadline(300) == now + timedelta(seconds=300)

    def test_display_messages_for_resolved_exit(self) -> None:
        alert = AlertEvent.create("patient-1", AlertType.GEOFENCE_EXIT)
        accompanied = alert.model_copy(
            update={"confirmation_status": ConfirmationStatus.ACCOMPANIED}
        )
        wandering = alert.model_copy(update={"confirmation_status": ConfirmationStatus.WANDERING})

        assert accompanied.display_message == "Patient left safe zone with caregiver"
        assert wandering.display_message == "Patient wandered outside safe zone"
        assert wandering.is_wandering_incident
        assert alert.display_title == "Left Safe Zone"


class TestSafeZone:
    @pytest.mark.parametrize("radius", [49.9, 2000.1, -1.0])
    def test_radius_outside_bounds_is_rejected(self, radius: float) -> None:
        with pytest.raises(ValueError):
            SafeZone(center_latitude=24.7, center_longitude=46.6, radius_meters=radius)

    def test_from_record_decodes_complete_zone(self) -> None:
        zone = SafeZone.from_record(
            {
                "safe_zone_center_lat": 24.7136,
                "safe_zone_center_lon": 46.6753,
                "safe_zone_radius": 500.0,
                "safe_zone_is_active": True,
                "safe_zone_name": "Home",
            }
        )

        assert zone is not None
        assert zone.radius_meters == 500.0
        assert zone.is_active
        assert zone.display_name == "Home"
        assert zone.radius_km == 0.5

    @pytest.mark.parametrize(
        "missing", ["safe_zone_center_lat", "safe_zone_center_lon", "safe_zone_radius"]
    )
    def test_from_record_fails_closed_on_missing_field(self, missing: str) -> None:
        record = {
            "safe_zone_center_lat": 24.7136,
            "safe_zone_center_lon": 46.6753,
            "safe_zone_radius": 500.0,
            "safe_zone_is_active": True,
        }
        del record[missing]

        assert SafeZone.from_record(record) is None

    def test_from_record_fails_closed_on_invalid_radius(self) -> None:
        record = {
            "safe_zone_center_lat": 24.7136,
            "safe_zone_center_lon": 46.6753,
            "safe_zone_radius": 10_000.0,
        }
        assert SafeZone.from_record(record) is None
        assert SafeZone.from_record(None) is None

    def test_inactive_by_default_when_record_omits_flag(self) -> None:
        zone = SafeZone.from_record(
            {
                "safe_zone_center_lat": 24.7136,
                "safe_zone_center_lon": 46.6753,
                "safe_zone_radius": 500.0,
            }
        )

        assert zone is not None
        assert zone.is_active is False
        assert zone.display_name == "Safe Zone"


class TestAcceleration:
    def test_magnitude(self) -> None:
        assert Acceleration(x=3.0, y=4.0, z=0.0).magnitude == pytest.approx(5.0)

    def test_non_finite_sample_is_flagged(self) -> None:
        assert Acceleration(x=0.1, y=0.2, z=0.3).is_finite
        assert not Acceleration(x=math.nan, y=0.0, z=0.0).is_finite
        assert not Acceleration(x=0.0, y=math.inf, z=0.0).is_finite


class TestMonitoringState:
    def test_state_is_unknown_until_baseline(self) -> None:
        state = MonitoringState()
        assert state.geofence_state == GeofenceState.UNKNOWN
        assert state.mode == MonitoringMode.HIGH_POWER

        state.has_baseline = True
        state.is_inside_safe_zone = True
        assert state.geofence_state == GeofenceState.INSIDE

        state.is_inside_safe_zone = False
        assert state.geofence_state == GeofenceState.OUTSIDE

        state.reset_baseline()
        assert state.geofence_state == GeofenceState.UNKNOWN

    def test_status_staleness(self) -> None:
        checked = datetime(2025, 12, 11, 9, 0, tzinfo=UTC)
        status = MonitoringStatus(
            patient_id="patient-1",
            is_monitoring_active=True,
            is_inside_safe_zone=True,
            has_safe_zone=True,
            mode=MonitoringMode.HIGH_POWER,
            last_checked_at=checked,
        )

        assert status.staleness(checked + timedelta(minutes=2)) == timedelta(minutes=2)

        never_checked = status.model_copy(update={"last_checked_at": None})
        assert never_checked.staleness() is None
