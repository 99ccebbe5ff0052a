"""
Fall detection from accelerometer samples.

A sample whose user-acceleration magnitude exceeds the threshold is a fall
candidate. Candidates are debounced per patient so one impact produces one
alert. The alert is raised even when no location fix arrives in time: an
alert without coordinates beats a missed fall.
"""

import asyncio
from datetime import datetime

from carewatch.config import FallDetectionConfig
from carewatch.domain.errors import LocationUnavailable, SensorUnavailable
from carewatch.domain.models import Acceleration, AlertEvent, AlertType, Coordinate
from carewatch.services.alert_lifecycle import AlertLifecycleManager
from carewatch.services.collaborators import (
    Clock,
    LocationProvider,
    MotionSensor,
    SystemClock,
    logger,
)
from carewatch.services.debounce import DebounceGate, fall_key


def ensure_sensor_available(sensor: MotionSensor) -> None:
    """Raise SensorUnavailable if the device cannot report motion."""
    if not sensor.is_available():
        raise SensorUnavailable("Device motion not available")


class FallDetector:
    """
    Turns motion samples into FallDetected alerts for one patient.

    Design principles:
    - The sample path is synchronous and never waits on I/O
    - A single bad sample never aborts the stream
    - Location and store failures degrade the alert, they don't drop the fall
    """

    def __init__(
        self,
        patient_id: str,
        lifecycle: AlertLifecycleManager,
        location_provider: LocationProvider,
        gate: DebounceGate | None = None,
        config: FallDetectionConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.patient_id = patient_id
        self.lifecycle = lifecycle
        self.location_provider = location_provider
        self.gate = gate or DebounceGate()
        self.config = config or FallDetectionConfig()
        self.clock = clock or SystemClock()
        self.logger = logger.bind(component="fall_detector", patient_id=patient_id)

        self.last_fall_detected_at: datetime | None = None
        self.samples_processed = 0
        self.samples_rejected = 0

    def is_fall_candidate(self, sample: Acceleration, now: datetime | None = None) -> bool:
        """Threshold and cooldown check for one sample."""
        self.samples_processed += 1

        if not sample.is_finite:
            self.samples_rejected += 1
            self.logger.warning("motion_sample_rejected", x=sample.x, y=sample.y, z=sample.z)
            return False

        magnitude = sample.magnitude
        if magnitude <= self.config.threshold_g:
            return False

        now = now or self.clock.now()
        if not self.gate.should_fire(fall_key(self.patient_id), self.config.cooldown_seconds, now):
            self.logger.info("fall_alert_in_cooldown", magnitude_g=round(magnitude, 2))
            return False

        self.logger.warning("potential_fall_detected", magnitude_g=round(magnitude, 2))
        return True

    async def _locate(self) -> Coordinate | None:
        timeout = self.config.location_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                result = await self.location_provider.current_location(timeout)
        except TimeoutError:
            self.logger.warning("fall_location_timeout", timeout_seconds=timeout)
            return None
        except Exception as e:
            self.logger.warning("fall_location_failed", error=str(e))
            return None

        if result.is_err():
            error = result.unwrap_err()
            if not isinstance(error, LocationUnavailable):
                self.logger.warning("fall_location_failed", error=str(error))
            else:
                self.logger.warning("fall_location_unavailable")
            return None
        return result.unwrap()

    async def report_fall(self, detected_at: datetime | None = None) -> AlertEvent | None:
        """
        Resolve location and raise the FallDetected alert.

        Returns:
            The stored alert, or None if the store write failed.
        """
        detected_at = detected_at or self.clock.now()
        location = await self._locate()

        event = AlertEvent.create(
            self.patient_id, AlertType.FALL_DETECTED, location=location, now=detected_at
        )
        result = await self.lifecycle.raise_alert(event)
        if result.is_err():
            self.logger.error("fall_alert_dropped", error=str(result.unwrap_err()))
            return None

        saved = result.unwrap()
        self.last_fall_detected_at = detected_at
        if saved.has_location:
            self.logger.info(
                "fall_alert_created",
                alert_id=saved.id,
                latitude=saved.latitude,
                longitude=saved.longitude,
            )
        else:
            self.logger.info("fall_alert_created", alert_id=saved.id, location="unavailable")
        return saved

    async def on_motion_sample(self, sample: Acceleration) -> AlertEvent | None:
        """Process one sample end to end. Returns the alert when one was raised."""
        now = self.clock.now()
        if not self.is_fall_candidate(sample, now):
            return None
        return await self.report_fall(now)
