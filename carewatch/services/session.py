"""
Per-patient monitoring session.

Owns the periodic geofence loop and the motion subscription for one patient,
and wires their output into the shared alert lifecycle manager.

Concurrency model:
- One geofence loop task; ticks never overlap
- One motion task; the sample path never awaits I/O
- Fall reports and geofence alert writes run as tracked tasks so stopping the
  session lets in-flight writes finish without starting new ones
"""

import asyncio
import time
from collections.abc import Coroutine
from typing import Any

from carewatch.config import AppConfig
from carewatch.domain.errors import SensorUnavailable
from carewatch.domain.models import (
    Acceleration,
    AlertEvent,
    Coordinate,
    MonitoringState,
    MonitoringStatus,
)
from carewatch.services.alert_lifecycle import AlertLifecycleManager
from carewatch.services.broadcast import Broadcaster, Subscription
from carewatch.services.collaborators import (
    Clock,
    Directory,
    LocationProvider,
    MotionSensor,
    SystemClock,
    logger,
)
from carewatch.services.debounce import DebounceGate
from carewatch.services.fall_detection import FallDetector, ensure_sensor_available
from carewatch.services.geofence import GeofenceEvaluation, GeofenceEvaluator


class MonitoringSession:
    """Fall and safe-zone monitoring for a single patient."""

    def __init__(
        self,
        patient_id: str,
        *,
        directory: Directory,
        location_provider: LocationProvider,
        motion_sensor: MotionSensor,
        lifecycle: AlertLifecycleManager,
        gate: DebounceGate | None = None,
        config: AppConfig | None = None,
        clock: Clock | None = None,
        status_broadcaster: Broadcaster[MonitoringStatus] | None = None,
    ) -> None:
        self.patient_id = patient_id
        self.directory = directory
        self.location_provider = location_provider
        self.motion_sensor = motion_sensor
        self.lifecycle = lifecycle
        self.config = config or AppConfig()
        self.clock = clock or SystemClock()
        self.logger = logger.bind(component="monitoring_session", patient_id=patient_id)

        self.state = MonitoringState()
        self.evaluator = GeofenceEvaluator(
            patient_id, None, self.state, config=self.config.geofence, clock=self.clock
        )
        self.fall_detector = FallDetector(
            patient_id,
            lifecycle,
            location_provider,
            gate=gate,
            config=self.config.fall_detection,
            clock=self.clock,
        )

        self._statuses = status_broadcaster or Broadcaster(f"status:{patient_id}")
        self._tick_lock = asyncio.Lock()
        self._geofence_task: asyncio.Task[None] | None = None
        self._motion_task: asyncio.Task[None] | None = None
        self._alert_tasks: set[asyncio.Task[Any]] = set()
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def status(self) -> MonitoringStatus:
        return MonitoringStatus(
            patient_id=self.patient_id,
            is_monitoring_active=self._is_running,
            is_inside_safe_zone=self.state.is_inside_safe_zone,
            has_safe_zone=self.evaluator.has_safe_zone,
            mode=self.state.mode,
            last_location=self.state.last_location,
            last_checked_at=self.state.last_checked_at,
        )

    def statuses(self) -> Subscription[MonitoringStatus]:
        return self._statuses.subscribe()

    def _publish_status(self) -> None:
        self._statuses.publish(self.status)

    async def start(self) -> None:
        """
        Begin monitoring.

        Raises:
            SensorUnavailable: If the motion sensor cannot be used. Not retried.
        """
        if self._is_running:
            return

        try:
            ensure_sensor_available(self.motion_sensor)
        except SensorUnavailable as e:
            self.logger.error("monitoring_start_failed", error=str(e))
            raise

        # Fall detection runs whether or not a safe zone is configured
        await self.refresh_safe_zone()
        await self.lifecycle.recover_pending(self.patient_id)

        self._is_running = True
        self._geofence_task = asyncio.create_task(
            self._run_geofence_loop(), name=f"geofence:{self.patient_id}"
        )
        self._motion_task = asyncio.create_task(
            self._consume_motion(), name=f"motion:{self.patient_id}"
        )

        self.logger.info(
            "monitoring_started",
            has_safe_zone=self.evaluator.has_safe_zone,
            mode=self.state.mode.value,
            check_interval_seconds=self.config.geofence.check_interval_seconds,
            sample_rate_hz=self.config.fall_detection.sample_rate_hz,
        )
        self._publish_status()

    async def stop(self) -> None:
        """Cancel the loop and motion subscription; let in-flight alert writes finish."""
        if not self._is_running:
            return
        self._is_running = False

        tasks = [task for task in (self._geofence_task, self._motion_task) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._geofence_task = None
        self._motion_task = None

        if self._alert_tasks:
            self.logger.info("waiting_for_inflight_alerts", count=len(self._alert_tasks))
            await asyncio.gather(*self._alert_tasks, return_exceptions=True)

        # Recovered by the pending sweep on the next start
        self.lifecycle.cancel_timers(self.patient_id)

        self.logger.info("monitoring_stopped")
        self._publish_status()

    async def __aenter__(self) -> "MonitoringSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def refresh_safe_zone(self) -> bool:
        """Re-read the safe zone. A failed lookup keeps the current zone."""
        try:
            zone = await self.directory.get_safe_zone(self.patient_id)
        except Exception as e:
            self.logger.error("safe_zone_fetch_failed", error=str(e))
            return self.evaluator.has_safe_zone

        async with self._tick_lock:
            self.evaluator.update_safe_zone(zone)
        self._publish_status()
        return self.evaluator.has_safe_zone

    def _track(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)
        return task

    async def _latest_location(self) -> Coordinate | None:
        timeout = self.config.geofence.location_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                result = await self.location_provider.current_location(timeout)
        except TimeoutError:
            self.logger.warning("geofence_location_timeout", timeout_seconds=timeout)
            return None
        except Exception as e:
            self.logger.warning("geofence_location_failed", error=str(e))
            return None

        if result.is_err():
            self.logger.info("geofence_location_unavailable", error=str(result.unwrap_err()))
            return None
        return result.unwrap()

    async def _raise_transition_alert(self, alert: AlertEvent) -> AlertEvent | None:
        result = await self.lifecycle.raise_alert(alert)
        if result.is_err():
            self.logger.error(
                "geofence_alert_dropped",
                alert_type=alert.alert_type.value,
                error=str(result.unwrap_err()),
            )
            return None
        return result.unwrap()

    async def run_geofence_tick(self) -> GeofenceEvaluation | None:
        """One geofence evaluation against the latest location."""
        async with self._tick_lock:
            if not self.evaluator.has_safe_zone:
                return None

            location = await self._latest_location()
            evaluation = self.evaluator.evaluate(location)
            if evaluation is None:
                return None

            alert = evaluation.to_alert(self.patient_id)
            if alert is not None:
                # Shielded so stopping mid-tick doesn't abort the write
                task = self._track(
                    self._raise_transition_alert(alert), name=f"geofence-alert:{alert.id}"
                )
                await asyncio.shield(task)

            self._publish_status()
            return evaluation

    async def _run_geofence_loop(self) -> None:
        interval = self.config.geofence.check_interval_seconds
        while self._is_running:
            tick_start = time.perf_counter()
            try:
                await self.run_geofence_tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception("geofence_tick_failed", error=str(e))

            if not self._is_running:
                break

            elapsed = time.perf_counter() - tick_start
            sleep_time = max(0.0, interval - elapsed)
            if sleep_time == 0:
                self.logger.warning(
                    "geofence_tick_slower_than_interval",
                    elapsed_seconds=round(elapsed, 3),
                    interval_seconds=interval,
                )
            await asyncio.sleep(sleep_time)

    def handle_motion_sample(self, sample: Acceleration) -> bool:
        """
        Feed one sample to the fall detector.

        Returns:
            True when the sample started a fall report.
        """
        if not self._is_running:
            return False

        now = self.clock.now()
        try:
            candidate = self.fall_detector.is_fall_candidate(sample, now)
        except Exception as e:
            self.logger.exception("motion_sample_failed", error=str(e))
            return False

        if candidate:
            self._track(self.fall_detector.report_fall(now), name=f"fall-report:{self.patient_id}")
        return candidate

    async def _consume_motion(self) -> None:
        stream = self.motion_sensor.subscribe(self.config.fall_detection.sample_rate_hz)
        try:
            async for sample in stream:
                self.handle_motion_sample(sample)
            self.logger.warning("motion_stream_ended")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.exception("motion_stream_failed", error=str(e))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def wait_for_alerts(self) -> None:
        """Wait until every in-flight alert write has finished."""
        while self._alert_tasks:
            await asyncio.gather(*list(self._alert_tasks), return_exceptions=True)
