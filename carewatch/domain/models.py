"""
Domain models for patient safety monitoring.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; record decoding fails closed rather than
defaulting missing fields to misleading values.
"""

import math
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

# Safe zone radius limits in meters
MIN_SAFE_ZONE_RADIUS_METERS = 50.0
MAX_SAFE_ZONE_RADIUS_METERS = 2000.0
DEFAULT_SAFE_ZONE_RADIUS_METERS = 500.0


def utc_now() -> datetime:
    return datetime.now(UTC)


class Coordinate(BaseModel):
    """A single position fix reported by a location provider."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    recorded_at: datetime | None = Field(
        default=None, description="When the provider obtained the fix"
    )

    def formatted(self) -> str:
        return f"{self.latitude:.4f}, {self.longitude:.4f}"


class Acceleration(BaseModel):
    """Gravity-compensated user acceleration in g-units."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)

    @property
    def is_finite(self) -> bool:
        return all(math.isfinite(axis) for axis in (self.x, self.y, self.z))


class SafeZone(BaseModel):
    """Circular area the patient is expected to stay within."""

    model_config = ConfigDict(frozen=True)

    center_latitude: float = Field(ge=-90.0, le=90.0)
    center_longitude: float = Field(ge=-180.0, le=180.0)
    radius_meters: float = Field(
        ge=MIN_SAFE_ZONE_RADIUS_METERS, le=MAX_SAFE_ZONE_RADIUS_METERS
    )
    is_active: bool = True
    name: str | None = None

    @property
    def center(self) -> Coordinate:
        return Coordinate(latitude=self.center_latitude, longitude=self.center_longitude)

    @property
    def display_name(self) -> str:
        return self.name or "Safe Zone"

    @property
    def radius_km(self) -> float:
        return self.radius_meters / 1000

    @classmethod
    def from_record(cls, record: Mapping[str, Any] | None) -> "SafeZone | None":
        """
        Build a zone from a patient record, or None if any required field is absent.

        Accepts the record keys used by the patient directory
        (``safe_zone_center_lat``, ``safe_zone_center_lon``, ``safe_zone_radius``,
        ``safe_zone_is_active``, ``safe_zone_name``).
        """
        if not record:
            return None

        lat = record.get("safe_zone_center_lat")
        lon = record.get("safe_zone_center_lon")
        radius = record.get("safe_zone_radius")
        if lat is None or lon is None or radius is None:
            return None

        try:
            return cls(
                center_latitude=lat,
                center_longitude=lon,
                radius_meters=radius,
                is_active=bool(record.get("safe_zone_is_active", False)),
                name=record.get("safe_zone_name"),
            )
        except ValidationError:
            return None


class MonitoringMode(str, Enum):
    """Location tracking mode. Sessions always run in high power."""

    LOW_POWER = "Low Power"
    HIGH_POWER = "Active Tracking"


class GeofenceState(str, Enum):
    UNKNOWN = "unknown"
    INSIDE = "inside"
    OUTSIDE = "outside"


class MonitoringState(BaseModel):
    """Per-session geofence state. Owned by a single monitoring session."""

    mode: MonitoringMode = MonitoringMode.HIGH_POWER
    has_baseline: bool = False
    is_inside_safe_zone: bool = False
    last_location: Coordinate | None = None
    last_checked_at: datetime | None = None

    @property
    def geofence_state(self) -> GeofenceState:
        if not self.has_baseline:
            return GeofenceState.UNKNOWN
        return GeofenceState.INSIDE if self.is_inside_safe_zone else GeofenceState.OUTSIDE

    def reset_baseline(self) -> None:
        self.has_baseline = False
        self.is_inside_safe_zone = False


class MonitoringStatus(BaseModel):
    """Display snapshot published to status subscribers."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    is_monitoring_active: bool
    is_inside_safe_zone: bool
    has_safe_zone: bool
    mode: MonitoringMode
    last_location: Coordinate | None = None
    last_checked_at: datetime | None = None

    def staleness(self, now: datetime | None = None) -> timedelta | None:
        """Age of the last geofence check, for a "last updated" indicator."""
        if self.last_checked_at is None:
            return None
        return (now or utc_now()) - self.last_checked_at


class AlertType(str, Enum):
    GEOFENCE_EXIT = "GEOFENCE_EXIT"
    GEOFENCE_ENTRY = "GEOFENCE_ENTRY"
    FALL_DETECTED = "FALL_DETECTED"

    @property
    def display_name(self) -> str:
        return {
            AlertType.GEOFENCE_EXIT: "Left Safe Zone",
            AlertType.GEOFENCE_ENTRY: "Returned to Safe Zone",
            AlertType.FALL_DETECTED: "Fall Detected",
        }[self]


class ConfirmationStatus(str, Enum):
    PENDING = "PENDING"
    ACCOMPANIED = "ACCOMPANIED"
    WANDERING = "WANDERING"
    NOT_APPLICABLE = "NOT_APPLICABLE"

    @property
    def is_terminal(self) -> bool:
        return self in (ConfirmationStatus.ACCOMPANIED, ConfirmationStatus.WANDERING)

    @property
    def display_name(self) -> str:
        return {
            ConfirmationStatus.PENDING: "Awaiting Confirmation",
            ConfirmationStatus.ACCOMPANIED: "With Caregiver",
            ConfirmationStatus.WANDERING: "Wandering Incident",
            ConfirmationStatus.NOT_APPLICABLE: "-",
        }[self]


class AlertEvent(BaseModel):
    """
    Safety alert raised for a patient.

    Only geofence exits require caregiver confirmation. Once the confirmation
    status leaves PENDING it is terminal; the store enforces this with a
    conditional update.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patient_id: str = Field(min_length=1)
    alert_type: AlertType
    timestamp: datetime = Field(default_factory=utc_now)

    latitude: float | None = None
    longitude: float | None = None

    is_read: bool = False

    requires_confirmation: bool
    confirmation_status: ConfirmationStatus
    confirmed_at: datetime | None = None
    auto_confirmed_at: datetime | None = None

    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_confirmation_fields(self) -> "AlertEvent":
        if self.requires_confirmation != (self.alert_type == AlertType.GEOFENCE_EXIT):
            raise ValueError("only geofence exit alerts require confirmation")
        not_applicable = self.confirmation_status == ConfirmationStatus.NOT_APPLICABLE
        if not_applicable == self.requires_confirmation:
            raise ValueError(
                "confirmation_status must be NOT_APPLICABLE only when no confirmation is required"
            )
        return self

    @classmethod
    def create(
        cls,
        patient_id: str,
        alert_type: AlertType,
        location: Coordinate | None = None,
        now: datetime | None = None,
    ) -> "AlertEvent":
        """New alert with confirmation fields derived from the alert type."""
        now = now or utc_now()
        requires_confirmation = alert_type == AlertType.GEOFENCE_EXIT
        return cls(
            patient_id=patient_id,
            alert_type=alert_type,
            timestamp=now,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            requires_confirmation=requires_confirmation,
            confirmation_status=(
                ConfirmationStatus.PENDING
                if requires_confirmation
                else ConfirmationStatus.NOT_APPLICABLE
            ),
            created_at=now,
        )

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def coordinate(self) -> Coordinate | None:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(latitude=self.latitude, longitude=self.longitude)

    @property
    def is_pending_confirmation(self) -> bool:
        return self.requires_confirmation and self.confirmation_status == ConfirmationStatus.PENDING

    @property
    def is_wandering_incident(self) -> bool:
        return self.confirmation_status == ConfirmationStatus.WANDERING

    @property
    def display_title(self) -> str:
        return self.alert_type.display_name

    @property
    def display_message(self) -> str:
        if self.alert_type == AlertType.GEOFENCE_EXIT:
            if self.confirmation_status == ConfirmationStatus.ACCOMPANIED:
                return "Patient left safe zone with caregiver"
            if self.confirmation_status == ConfirmationStatus.WANDERING:
                return "Patient wandered outside safe zone"
            return "Patient left safe zone - confirmation needed"
        if self.alert_type == AlertType.GEOFENCE_ENTRY:
            return "Patient returned to safe zone"
        return "Fall detected - immediate attention needed"

    def confirmation_deadline(self, delay_seconds: float) -> datetime:
        """When an unconfirmed exit becomes a wandering incident."""
        return self.created_at + timedelta(seconds=delay_seconds)


@dataclass
class CooldownRecord:
    key: str
    last_fired_at: datetime
