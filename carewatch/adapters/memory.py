"""
In-memory implementations of the directory and alert store.

Used by the test suite and the simulation script. The alert store honours
the same compare-and-set contract a real backend must provide, and can be
told to fail writes to exercise degraded paths.
"""

import asyncio
import random
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from carewatch.domain.errors import AlertNotFound, ConditionFailed, StoreWriteFailed
from carewatch.domain.models import AlertEvent, ConfirmationStatus, SafeZone
from carewatch.services.collaborators import Result, logger


class StaticDirectory:
    """Directory backed by a dict of patient id to safe zone."""

    def __init__(self, zones: Mapping[str, SafeZone | None] | None = None) -> None:
        self._zones: dict[str, SafeZone | None] = dict(zones or {})
        self.lookups = 0

    @classmethod
    def from_records(cls, records: Mapping[str, Mapping[str, Any]]) -> "StaticDirectory":
        """Build from raw patient records; incomplete zones decode to None."""
        return cls({patient_id: SafeZone.from_record(rec) for patient_id, rec in records.items()})

    def set_safe_zone(self, patient_id: str, zone: SafeZone | None) -> None:
        self._zones[patient_id] = zone

    async def get_safe_zone(self, patient_id: str) -> SafeZone | None:
        self.lookups += 1
        return self._zones.get(patient_id)


class InMemoryAlertStore:
    """
    Alert store with serialized conditional updates.

    Args:
        failure_rate: Probability that any write fails with StoreWriteFailed
        latency_seconds: Simulated round-trip delay per call
    """

    def __init__(self, failure_rate: float = 0.0, latency_seconds: float = 0.0) -> None:
        self.failure_rate = failure_rate
        self.latency_seconds = latency_seconds
        self.fail_next_writes = 0
        self._records: dict[str, AlertEvent] = {}
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="in_memory_alert_store")

    def __len__(self) -> int:
        return len(self._records)

    async def _simulate_io(self) -> None:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

    def _should_fail(self) -> bool:
        if self.fail_next_writes > 0:
            self.fail_next_writes -= 1
            return True
        return self.failure_rate > 0 and random.random() < self.failure_rate

    async def create(self, event: AlertEvent) -> Result[AlertEvent, Exception]:
        await self._simulate_io()
        async with self._lock:
            if self._should_fail():
                return Result.err(StoreWriteFailed(f"Failed to save alert {event.id}"))

            # Creating the same id twice returns the original record
            existing = self._records.get(event.id)
            if existing is not None:
                return Result.ok(existing)

            self._records[event.id] = event
            return Result.ok(event)

    async def update(
        self,
        alert_id: str,
        changes: dict[str, Any],
        precondition: Callable[[AlertEvent], bool] | None = None,
    ) -> Result[AlertEvent, Exception]:
        await self._simulate_io()
        async with self._lock:
            current = self._records.get(alert_id)
            if current is None:
                return Result.err(AlertNotFound(alert_id))

            if precondition is not None and not precondition(current):
                return Result.err(
                    ConditionFailed(
                        f"Precondition failed for alert {alert_id} "
                        f"(status {current.confirmation_status.value})"
                    )
                )

            if self._should_fail():
                return Result.err(StoreWriteFailed(f"Failed to update alert {alert_id}"))

            try:
                updated = AlertEvent.model_validate({**current.model_dump(), **changes})
            except ValidationError as e:
                return Result.err(StoreWriteFailed(f"Rejected update for alert {alert_id}: {e}"))

            self._records[alert_id] = updated
            return Result.ok(updated)

    async def get(self, alert_id: str) -> AlertEvent | None:
        await self._simulate_io()
        return self._records.get(alert_id)

    async def list_alerts(
        self,
        patient_id: str,
        *,
        unread_only: bool = False,
        status: ConfirmationStatus | None = None,
    ) -> list[AlertEvent]:
        await self._simulate_io()
        alerts = [
            alert
            for alert in self._records.values()
            if alert.patient_id == patient_id
            and (not unread_only or not alert.is_read)
            and (status is None or alert.confirmation_status == status)
        ]
        return sorted(alerts, key=lambda alert: alert.timestamp, reverse=True)
