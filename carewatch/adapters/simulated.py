"""
Simulated device sensors.

In production these would wrap the wearable's location and motion APIs.
Design principles: realistic noise and dropouts so the monitoring core's
degraded paths get exercised during local runs.
"""

import asyncio
import math
import random
from collections.abc import AsyncIterator

from carewatch.domain.errors import LocationUnavailable
from carewatch.domain.models import Acceleration, Coordinate, utc_now
from carewatch.services.collaborators import Result, logger

METERS_PER_DEGREE_LAT = 111_320.0


class SimulatedLocationProvider:
    """
    Random walk around a starting point with occasional GPS dropouts.

    Args:
        start: Initial position
        step_meters: Maximum movement per fix
        dropout_rate: Probability a fix request returns nothing
        drift_bearing: Optional heading (degrees) the walk is biased towards
    """

    def __init__(
        self,
        start: Coordinate,
        step_meters: float = 40.0,
        dropout_rate: float = 0.05,
        drift_bearing: float | None = None,
    ) -> None:
        self.position = start
        self.step_meters = step_meters
        self.dropout_rate = dropout_rate
        self.drift_bearing = drift_bearing
        self.logger = logger.bind(component="simulated_location_provider")

    def _advance(self) -> Coordinate:
        if self.drift_bearing is None:
            bearing = random.uniform(0, 2 * math.pi)
        else:
            bearing = math.radians(self.drift_bearing + random.uniform(-30, 30))
        step = random.uniform(0, self.step_meters)

        lat = self.position.latitude
        dlat = step * math.cos(bearing) / METERS_PER_DEGREE_LAT
        dlon = step * math.sin(bearing) / (METERS_PER_DEGREE_LAT * math.cos(math.radians(lat)))
        self.position = Coordinate(
            latitude=lat + dlat,
            longitude=self.position.longitude + dlon,
            recorded_at=utc_now(),
        )
        return self.position

    async def current_location(self, timeout: float) -> Result[Coordinate, Exception]:
        # Simulate time to acquire a fix
        await asyncio.sleep(min(timeout, random.uniform(0.01, 0.1)))

        if random.random() < self.dropout_rate:
            self.logger.info("location_fix_unavailable")
            return Result.err(LocationUnavailable("No GPS fix"))

        return Result.ok(self._advance())

    async def subscribe(self, interval: float) -> AsyncIterator[Coordinate]:
        while True:
            await asyncio.sleep(interval)
            if random.random() < self.dropout_rate:
                continue
            yield self._advance()


class SimulatedMotionSensor:
    """
    Accelerometer noise with occasional impact spikes.

    Args:
        available: Whether the device reports motion support
        fall_probability: Chance per sample of an impact spike
        noise_g: Standard deviation of per-axis noise
    """

    def __init__(
        self, available: bool = True, fall_probability: float = 0.002, noise_g: float = 0.15
    ) -> None:
        self.available = available
        self.fall_probability = fall_probability
        self.noise_g = noise_g
        self.samples_emitted = 0

    def is_available(self) -> bool:
        return self.available

    async def subscribe(self, sample_rate_hz: float) -> AsyncIterator[Acceleration]:
        period = 1.0 / sample_rate_hz
        while True:
            await asyncio.sleep(period)
            if random.random() < self.fall_probability:
                impact = random.uniform(3.0, 4.5)
                sample = Acceleration(x=impact * 0.6, y=impact * 0.8, z=random.gauss(0, 0.2))
            else:
                sample = Acceleration(
                    x=random.gauss(0, self.noise_g),
                    y=random.gauss(0, self.noise_g),
                    z=random.gauss(0, self.noise_g),
                )
            self.samples_emitted += 1
            yield sample
