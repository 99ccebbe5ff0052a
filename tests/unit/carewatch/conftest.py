"""Shared test doubles and fixtures for the monitoring core."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta

import pytest

from carewatch.adapters.memory import InMemoryAlertStore, StaticDirectory
from carewatch.config import AlertConfig
from carewatch.domain.errors import LocationUnavailable
from carewatch.domain.models import Acceleration, Coordinate, SafeZone
from carewatch.services.alert_lifecycle import AlertLifecycleManager
from carewatch.services.collaborators import Result

METERS_PER_DEGREE_LAT = 6_371_000.0 * 3.141592653589793 / 180.0

CENTER = Coordinate(latitude=24.7136, longitude=46.6753)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 12, 11, 9, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


class ScriptedLocationProvider:
    """
    Returns queued fixes in order, then ``default``.

    Queue entries may be a Coordinate, None (unavailable) or an exception
    instance (raised from the call).
    """

    def __init__(self, default: Coordinate | None = None, delay_seconds: float = 0.0) -> None:
        self.default = default
        self.delay_seconds = delay_seconds
        self.fixes: deque[Coordinate | BaseException | None] = deque()
        self.calls = 0

    def queue(self, *fixes: Coordinate | BaseException | None) -> None:
        self.fixes.extend(fixes)

    async def current_location(self, timeout: float) -> Result[Coordinate, Exception]:
        self.calls += 1
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        fix = self.fixes.popleft() if self.fixes else self.default
        if isinstance(fix, BaseException):
            raise fix
        if fix is None:
            return Result.err(LocationUnavailable("no fix"))
        return Result.ok(fix)

    async def subscribe(self, interval: float) -> AsyncIterator[Coordinate]:
        while True:
            await asyncio.sleep(interval)
            result = await self.current_location(interval)
            if result.is_ok():
                yield result.unwrap()


class ScriptedMotionSensor:
    """Pushes samples put on its queue; stays subscribed until cancelled."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.samples: asyncio.Queue[Acceleration] = asyncio.Queue()
        self.subscribed = False
        self.unsubscribed = False

    def is_available(self) -> bool:
        return self.available

    def push(self, *samples: Acceleration) -> None:
        for sample in samples:
            self.samples.put_nowait(sample)

    async def subscribe(self, sample_rate_hz: float) -> AsyncIterator[Acceleration]:
        self.subscribed = True
        try:
            while True:
                yield await self.samples.get()
        finally:
            self.unsubscribed = True


def point_at(distance_m: float, center: Coordinate = CENTER) -> Coordinate:
    """Coordinate ``distance_m`` meters due north of ``center``."""
    return Coordinate(
        latitude=center.latitude + distance_m / METERS_PER_DEGREE_LAT,
        longitude=center.longitude,
    )


def impact(g: float) -> Acceleration:
    """Sample with magnitude ``g`` along one axis."""
    return Acceleration(x=g, y=0.0, z=0.0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def safe_zone() -> SafeZone:
    return SafeZone(
        center_latitude=CENTER.latitude,
        center_longitude=CENTER.longitude,
        radius_meters=500,
        name="Home",
    )


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def directory(safe_zone: SafeZone) -> StaticDirectory:
    return StaticDirectory({"patient-1": safe_zone, "patient-no-zone": None})


@pytest.fixture
async def lifecycle(
    store: InMemoryAlertStore, clock: FakeClock
) -> AsyncIterator[AlertLifecycleManager]:
    manager = AlertLifecycleManager(
        store, config=AlertConfig(auto_confirmation_delay_seconds=300), clock=clock
    )
    yield manager
    await manager.shutdown()


@pytest.fixture
def location_provider() -> ScriptedLocationProvider:
    return ScriptedLocationProvider(default=point_at(100))


@pytest.fixture
def motion_sensor() -> ScriptedMotionSensor:
    return ScriptedMotionSensor()


@pytest.fixture
def make_point() -> Callable[[float], Coordinate]:
    return point_at


@pytest.fixture
def make_impact() -> Callable[[float], Acceleration]:
    return impact
