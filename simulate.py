"""
Simulated end-to-end monitoring run.

This script exercises:
1. Configuration loading and validation
2. Safe-zone monitoring with a wandering and a stationary patient
3. Fall detection from a noisy accelerometer
4. Caregiver confirmation racing the auto-confirmation timer
5. Degraded behaviour under GPS dropouts and store failures

Run with: uv run python simulate.py
"""

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from carewatch.adapters import (
    InMemoryAlertStore,
    SimulatedLocationProvider,
    SimulatedMotionSensor,
    StaticDirectory,
)
from carewatch.config import (
    AlertConfig,
    AppConfig,
    FallDetectionConfig,
    GeofenceConfig,
    LoggingConfig,
)
from carewatch.domain.models import AlertType, ConfirmationStatus, Coordinate, SafeZone
from carewatch.services.collaborators import configure_logging
from carewatch.services.monitoring_service import MonitoringService

console = Console()

HOME = Coordinate(latitude=24.7136, longitude=46.6753)

PATIENTS = {
    # patient id: (drift bearing, step meters); None drifts randomly
    "patient-wanderer": (90.0, 120.0),
    "patient-homebody": (None, 15.0),
}


def build_config() -> AppConfig:
    """Compressed timings so a run finishes in seconds."""
    return AppConfig(
        environment="development",
        debug=True,
        fall_detection=FallDetectionConfig(cooldown_seconds=2.0, location_timeout_seconds=0.5),
        geofence=GeofenceConfig(check_interval_seconds=0.5, location_timeout_seconds=0.5),
        alerts=AlertConfig(auto_confirmation_delay_seconds=3.0),
        logging=LoggingConfig(level="WARNING", format="console"),
    )


def render_status(service: MonitoringService) -> Table:
    table = Table(title="Monitoring Status")
    table.add_column("Patient")
    table.add_column("Active")
    table.add_column("Safe Zone")
    table.add_column("Inside")
    table.add_column("Last Location")

    for patient_id in PATIENTS:
        status = service.status(patient_id)
        if status is None:
            table.add_row(patient_id, "no", "-", "-", "-")
            continue
        table.add_row(
            patient_id,
            "yes" if status.is_monitoring_active else "no",
            "yes" if status.has_safe_zone else "no",
            "yes" if status.is_inside_safe_zone else "[red]no[/red]",
            status.last_location.formatted() if status.last_location else "-",
        )
    return table


async def caregiver(service: MonitoringService, alerts_seen: list) -> None:
    """Confirms every other geofence exit as accompanied; the rest time out."""
    exits = 0
    async for alert in service.alerts():
        alerts_seen.append(alert)
        console.print(
            f"[bold]{alert.display_title}[/bold] for {alert.patient_id}: {alert.display_message}"
        )

        if alert.alert_type == AlertType.GEOFENCE_EXIT:
            exits += 1
            if exits % 2 == 1:
                result = await service.confirm(alert.id, ConfirmationStatus.ACCOMPANIED)
                if result.is_ok():
                    console.print("  caregiver confirmed: accompanied")
                else:
                    console.print(f"  too late: {result.unwrap_err()}")


async def main() -> None:
    console.print(Panel.fit("Patient Safety Monitoring Simulation", style="bold blue"))

    config = build_config()
    configure_logging(config.logging)

    zone = SafeZone(
        center_latitude=HOME.latitude,
        center_longitude=HOME.longitude,
        radius_meters=500,
        name="Home",
    )
    directory = StaticDirectory({patient_id: zone for patient_id in PATIENTS})
    store = InMemoryAlertStore(failure_rate=0.05, latency_seconds=0.05)

    def location_for(patient_id: str) -> SimulatedLocationProvider:
        bearing, step = PATIENTS[patient_id]
        return SimulatedLocationProvider(HOME, step_meters=step, drift_bearing=bearing)

    service = MonitoringService(
        directory=directory,
        store=store,
        location_provider_factory=location_for,
        motion_sensor_factory=lambda _: SimulatedMotionSensor(fall_probability=0.005),
        config=config,
    )

    alerts_seen: list = []
    caregiver_task = asyncio.create_task(caregiver(service, alerts_seen))

    for patient_id in PATIENTS:
        await service.start_monitoring(patient_id)

    try:
        for _ in range(5):
            await asyncio.sleep(2.0)
            console.print(render_status(service))
        # Give outstanding wandering timers a chance to fire
        await asyncio.sleep(config.alerts.auto_confirmation_delay_seconds)
    finally:
        await service.shutdown()
        await caregiver_task

    summary = Table(title="Alert Summary")
    summary.add_column("Patient")
    summary.add_column("Type")
    summary.add_column("Status")
    summary.add_column("Location")
    for alert in alerts_seen:
        stored = await store.get(alert.id) or alert
        summary.add_row(
            stored.patient_id,
            stored.alert_type.display_name,
            stored.confirmation_status.display_name,
            stored.coordinate.formatted() if stored.coordinate else "unavailable",
        )
    console.print(summary)
    console.print(f"Alerts raised: {len(alerts_seen)}")


if __name__ == "__main__":
    asyncio.run(main())
