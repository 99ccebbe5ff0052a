"""
Caller-facing monitoring service.

Runs one independent MonitoringSession per patient and exposes the surface a
UI layer or notification dispatcher needs: start/stop, caregiver
confirmation, and the status and alert streams.
"""

import asyncio
from collections.abc import Callable

from carewatch.config import AppConfig, get_config
from carewatch.domain.models import AlertEvent, ConfirmationStatus, MonitoringStatus
from carewatch.services.alert_lifecycle import AlertLifecycleManager
from carewatch.services.broadcast import Broadcaster, Subscription
from carewatch.services.collaborators import (
    AlertStore,
    Clock,
    Directory,
    LocationProvider,
    MotionSensor,
    Result,
    SystemClock,
    logger,
)
from carewatch.services.debounce import DebounceGate
from carewatch.services.session import MonitoringSession


class MonitoringService:
    """
    Orchestrates monitoring sessions for any number of patients.

    Sessions share the alert lifecycle manager (one set of confirmation timers,
    one alert stream) and the debounce gate; everything else is per patient.
    """

    def __init__(
        self,
        *,
        directory: Directory,
        store: AlertStore,
        location_provider_factory: Callable[[str], LocationProvider],
        motion_sensor_factory: Callable[[str], MotionSensor],
        config: AppConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or get_config()
        self.clock = clock or SystemClock()
        self.directory = directory
        self.location_provider_factory = location_provider_factory
        self.motion_sensor_factory = motion_sensor_factory
        self.logger = logger.bind(component="monitoring_service")

        self.gate = DebounceGate()
        self.lifecycle = AlertLifecycleManager(store, config=self.config.alerts, clock=self.clock)
        self.sessions: dict[str, MonitoringSession] = {}
        self._statuses: Broadcaster[MonitoringStatus] = Broadcaster("status")
        self._lock = asyncio.Lock()

    @property
    def active_patients(self) -> list[str]:
        return [pid for pid, session in self.sessions.items() if session.is_running]

    async def start_monitoring(self, patient_id: str) -> MonitoringSession:
        """
        Start (or return the already running) session for a patient.

        Raises:
            SensorUnavailable: If the patient's motion sensor cannot be used.
        """
        async with self._lock:
            session = self.sessions.get(patient_id)
            if session is not None and session.is_running:
                return session

            session = MonitoringSession(
                patient_id,
                directory=self.directory,
                location_provider=self.location_provider_factory(patient_id),
                motion_sensor=self.motion_sensor_factory(patient_id),
                lifecycle=self.lifecycle,
                gate=self.gate,
                config=self.config,
                clock=self.clock,
                status_broadcaster=self._statuses,
            )
            await session.start()
            self.sessions[patient_id] = session

        self.logger.info("patient_monitoring_started", patient_id=patient_id)
        return session

    async def stop_monitoring(self, patient_id: str) -> bool:
        """Stop a patient's session. Returns False if none was running."""
        # Held across stop() so a concurrent start only recovers timers after
        # the old session has cancelled its own
        async with self._lock:
            session = self.sessions.pop(patient_id, None)
            if session is None:
                return False
            await session.stop()

        self.logger.info("patient_monitoring_stopped", patient_id=patient_id)
        return True

    async def refresh_safe_zone(self, patient_id: str) -> bool:
        session = self.sessions.get(patient_id)
        if session is None:
            return False
        return await session.refresh_safe_zone()

    def status(self, patient_id: str) -> MonitoringStatus | None:
        session = self.sessions.get(patient_id)
        return session.status if session else None

    def statuses(self) -> Subscription[MonitoringStatus]:
        """Status snapshots from every session."""
        return self._statuses.subscribe()

    def alerts(self) -> Subscription[AlertEvent]:
        """Raised alerts from every session."""
        return self.lifecycle.alerts()

    async def confirm(
        self, alert_id: str, outcome: ConfirmationStatus
    ) -> Result[AlertEvent, Exception]:
        return await self.lifecycle.confirm(alert_id, outcome)

    async def mark_as_read(self, alert_id: str) -> Result[AlertEvent, Exception]:
        return await self.lifecycle.mark_as_read(alert_id)

    async def pending_confirmations(self, patient_id: str) -> list[AlertEvent]:
        return await self.lifecycle.pending_confirmations(patient_id)

    async def shutdown(self) -> None:
        """Gracefully stop every session and the lifecycle manager."""
        self.logger.info("stopping_monitoring_service", sessions=len(self.sessions))
        for patient_id in list(self.sessions):
            await self.stop_monitoring(patient_id)
        await self.lifecycle.shutdown()
        self._statuses.close()
