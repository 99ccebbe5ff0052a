"""Tests for the multi-patient monitoring service."""

import asyncio
from collections.abc import AsyncIterator

import pytest
from conftest import FakeClock, ScriptedLocationProvider, ScriptedMotionSensor, impact, point_at

from carewatch.adapters.memory import InMemoryAlertStore, StaticDirectory
from carewatch.config import AlertConfig, AppConfig, FallDetectionConfig, GeofenceConfig
from carewatch.domain.errors import AlreadyResolved, SensorUnavailable
from carewatch.domain.models import AlertType, ConfirmationStatus, SafeZone
from carewatch.services.monitoring_service import MonitoringService


class Devices:
    """Per-patient scripted devices handed out by the service factories."""

    def __init__(self) -> None:
        self.locations: dict[str, ScriptedLocationProvider] = {}
        self.sensors: dict[str, ScriptedMotionSensor] = {}
        self.unavailable: set[str] = set()

    def location_for(self, patient_id: str) -> ScriptedLocationProvider:
        provider = ScriptedLocationProvider(default=point_at(100))
        self.locations[patient_id] = provider
        return provider

    def sensor_for(self, patient_id: str) -> ScriptedMotionSensor:
        sensor = ScriptedMotionSensor(available=patient_id not in self.unavailable)
        self.sensors[patient_id] = sensor
        return sensor


@pytest.fixture
def devices() -> Devices:
    return Devices()


@pytest.fixture
async def service(
    safe_zone: SafeZone, store: InMemoryAlertStore, devices: Devices, clock: FakeClock
) -> AsyncIterator[MonitoringService]:
    directory = StaticDirectory({"patient-1": safe_zone, "patient-2": safe_zone})
    service = MonitoringService(
        directory=directory,
        store=store,
        location_provider_factory=devices.location_for,
        motion_sensor_factory=devices.sensor_for,
        config=AppConfig(
            fall_detection=FallDetectionConfig(location_timeout_seconds=0.2),
            geofence=GeofenceConfig(check_interval_seconds=3600, location_timeout_seconds=0.2),
            alerts=AlertConfig(auto_confirmation_delay_seconds=300),
        ),
        clock=clock,
    )
    yield service
    await service.shutdown()


async def test_sessions_are_independent(service: MonitoringService, devices: Devices) -> None:
    first = await service.start_monitoring("patient-1")
    second = await service.start_monitoring("patient-2")
    await asyncio.sleep(0.05)

    devices.locations["patient-1"].queue(point_at(900))
    await first.run_geofence_tick()

    assert sorted(service.active_patients) == ["patient-1", "patient-2"]
    assert first.state.is_inside_safe_zone is False
    assert second.state.is_inside_safe_zone is True
    assert len(await service.pending_confirmations("patient-1")) == 1
    assert await service.pending_confirmations("patient-2") == []


async def test_start_is_idempotent(service: MonitoringService, devices: Devices) -> None:
    first = await service.start_monitoring("patient-1")
    again = await service.start_monitoring("patient-1")

    assert first is again
    assert list(devices.sensors) == ["patient-1"]


async def test_concurrent_starts_create_one_session(
    service: MonitoringService, devices: Devices
) -> None:
    sessions = await asyncio.gather(
        *(service.start_monitoring("patient-1") for _ in range(5))
    )

    assert all(session is sessions[0] for session in sessions)
    assert len(devices.sensors) == 1


async def test_sensor_failure_is_isolated(service: MonitoringService, devices: Devices) -> None:
    devices.unavailable.add("patient-2")

    await service.start_monitoring("patient-1")
    with pytest.raises(SensorUnavailable):
        await service.start_monitoring("patient-2")

    assert service.active_patients == ["patient-1"]
    assert service.status("patient-2") is None


async def test_falls_are_debounced_per_patient(
    service: MonitoringService, devices: Devices, store: InMemoryAlertStore
) -> None:
    first = await service.start_monitoring("patient-1")
    second = await service.start_monitoring("patient-2")

    assert first.handle_motion_sample(impact(3.0))
    assert second.handle_motion_sample(impact(3.0))
    assert not first.handle_motion_sample(impact(3.5))
    await first.wait_for_alerts()
    await second.wait_for_alerts()

    for patient_id in ("patient-1", "patient-2"):
        alerts = await store.list_alerts(patient_id)
        assert [alert.alert_type for alert in alerts] == [AlertType.FALL_DETECTED]


async def test_confirm_through_service(service: MonitoringService, devices: Devices) -> None:
    session = await service.start_monitoring("patient-1")
    await asyncio.sleep(0.05)
    subscription = service.alerts()

    devices.locations["patient-1"].queue(point_at(900))
    await session.run_geofence_tick()
    alert = await asyncio.wait_for(subscription.__anext__(), timeout=1)

    confirmed = await service.confirm(alert.id, ConfirmationStatus.ACCOMPANIED)
    again = await service.confirm(alert.id, ConfirmationStatus.WANDERING)
    read = await service.mark_as_read(alert.id)

    assert confirmed.unwrap().confirmation_status == ConfirmationStatus.ACCOMPANIED
    assert isinstance(again.unwrap_err(), AlreadyResolved)
    assert read.unwrap().is_read
    assert service.lifecycle.pending_timer_ids == set()
    subscription.close()


async def test_stop_monitoring(service: MonitoringService, devices: Devices) -> None:
    await service.start_monitoring("patient-1")
    await asyncio.sleep(0.01)
    assert devices.sensors["patient-1"].subscribed

    assert await service.stop_monitoring("patient-1") is True
    assert await service.stop_monitoring("patient-1") is False
    assert service.active_patients == []
    assert devices.sensors["patient-1"].unsubscribed


async def test_refresh_and_status_for_unknown_patient(service: MonitoringService) -> None:
    assert await service.refresh_safe_zone("nobody") is False
    assert service.status("nobody") is None


async def test_shutdown_ends_streams(
    safe_zone: SafeZone, store: InMemoryAlertStore, devices: Devices, clock: FakeClock
) -> None:
    service = MonitoringService(
        directory=StaticDirectory({"patient-1": safe_zone}),
        store=store,
        location_provider_factory=devices.location_for,
        motion_sensor_factory=devices.sensor_for,
        config=AppConfig(geofence=GeofenceConfig(check_interval_seconds=3600)),
        clock=clock,
    )
    alerts = service.alerts()
    statuses = service.statuses()
    await service.start_monitoring("patient-1")

    await service.shutdown()

    assert service.active_patients == []
    assert [alert async for alert in alerts] == []
    received = [status async for status in statuses]
    assert received[-1].is_monitoring_active is False


async def test_shutdown_right_after_start_returns_promptly(service: MonitoringService) -> None:
    await service.start_monitoring("patient-1")
    await asyncio.sleep(0)

    await asyncio.wait_for(service.shutdown(), timeout=1)

    assert service.active_patients == []


async def test_concurrent_restart_keeps_wandering_timer(
    service: MonitoringService, devices: Devices, store: InMemoryAlertStore
) -> None:
    session = await service.start_monitoring("patient-1")
    await asyncio.sleep(0.05)
    devices.locations["patient-1"].queue(point_at(900))
    await session.run_geofence_tick()
    [exit_alert] = await service.pending_confirmations("patient-1")

    await asyncio.wait_for(
        asyncio.gather(
            service.stop_monitoring("patient-1"), service.start_monitoring("patient-1")
        ),
        timeout=2,
    )

    assert service.active_patients == ["patient-1"]
    assert exit_alert.id in service.lifecycle.pending_timer_ids
    stored = await store.get(exit_alert.id)
    assert stored is not None
    assert stored.confirmation_status == ConfirmationStatus.PENDING
