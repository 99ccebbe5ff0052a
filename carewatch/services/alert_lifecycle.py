"""
Alert creation and the caregiver confirmation workflow.

A geofence exit alert starts PENDING. Two writers race to resolve it: the
caregiver (ACCOMPANIED or WANDERING) and an automatic timer (WANDERING after
a fixed delay). Both go through the store's conditional update, so exactly
one of them changes the status and the other observes AlreadyResolved.

Timers are owned here, keyed by alert id, and are independent of the
geofence tick that produced the alert. After a restart they are re-derived
from persisted PENDING alerts by ``recover_pending``.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any

from carewatch.config import AlertConfig
from carewatch.domain.errors import AlreadyResolved, ConditionFailed, StoreWriteFailed
from carewatch.domain.models import AlertEvent, ConfirmationStatus
from carewatch.services.broadcast import Broadcaster, Subscription
from carewatch.services.collaborators import AlertStore, Clock, Result, SystemClock, logger

MANUAL_OUTCOMES = (ConfirmationStatus.ACCOMPANIED, ConfirmationStatus.WANDERING)


def _is_pending(alert: AlertEvent) -> bool:
    return alert.confirmation_status == ConfirmationStatus.PENDING


class AlertLifecycleManager:
    """Writes alerts through the store and resolves pending confirmations."""

    def __init__(
        self,
        store: AlertStore,
        config: AlertConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.config = config or AlertConfig()
        self.clock = clock or SystemClock()
        self.logger = logger.bind(component="alert_lifecycle")

        self._timers: dict[str, asyncio.Task[None]] = {}
        self._timer_patients: dict[str, str] = {}
        self._alerts: Broadcaster[AlertEvent] = Broadcaster("alerts")

    @property
    def pending_timer_ids(self) -> set[str]:
        return set(self._timers)

    def alerts(self) -> Subscription[AlertEvent]:
        """Stream of successfully raised alerts, for notification dispatch."""
        return self._alerts.subscribe()

    async def raise_alert(self, event: AlertEvent) -> Result[AlertEvent, Exception]:
        """
        Persist a new alert. Not retried on failure.

        Returns:
            Result with the stored copy, or StoreWriteFailed.
        """
        try:
            result = await self.store.create(event)
        except Exception as e:
            result = Result.err(StoreWriteFailed(str(e)))

        if result.is_err():
            error = result.unwrap_err()
            if not isinstance(error, StoreWriteFailed):
                error = StoreWriteFailed(str(error))
            self.logger.error(
                "alert_write_failed",
                alert_id=event.id,
                alert_type=event.alert_type.value,
                patient_id=event.patient_id,
                error=str(error),
            )
            return Result.err(error)

        saved = result.unwrap()
        self.logger.info(
            "alert_raised",
            alert_id=saved.id,
            alert_type=saved.alert_type.value,
            patient_id=saved.patient_id,
            has_location=saved.has_location,
        )
        self._alerts.publish(saved)

        if saved.is_pending_confirmation:
            self.schedule_auto_confirmation(saved)

        return Result.ok(saved)

    def schedule_auto_confirmation(self, alert: AlertEvent, delay: float | None = None) -> None:
        """Start the wandering timer for a pending alert. No-op if one is running."""
        if alert.id in self._timers:
            return

        delay = self.config.auto_confirmation_delay_seconds if delay is None else max(0.0, delay)
        task = asyncio.create_task(
            self._auto_confirm_after(alert.id, delay), name=f"auto-confirm:{alert.id}"
        )
        self._timers[alert.id] = task
        self._timer_patients[alert.id] = alert.patient_id
        task.add_done_callback(lambda t, alert_id=alert.id: self._forget_timer(alert_id, t))

        self.logger.info(
            "auto_confirmation_scheduled",
            alert_id=alert.id,
            patient_id=alert.patient_id,
            delay_seconds=round(delay, 3),
        )

    def _forget_timer(self, alert_id: str, task: asyncio.Task[None]) -> None:
        if self._timers.get(alert_id) is task:
            del self._timers[alert_id]
            self._timer_patients.pop(alert_id, None)

    async def _auto_confirm_after(self, alert_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.auto_confirm(alert_id)

    async def _update(
        self,
        alert_id: str,
        changes: dict[str, Any],
        precondition: Callable[[AlertEvent], bool] | None = None,
    ) -> Result[AlertEvent, Exception]:
        """Store update with a raising backend reported as StoreWriteFailed."""
        try:
            return await self.store.update(alert_id, changes, precondition=precondition)
        except Exception as e:
            return Result.err(StoreWriteFailed(str(e)))

    async def auto_confirm(self, alert_id: str) -> Result[AlertEvent, Exception]:
        """Mark a still-pending alert as WANDERING. No-op if already resolved."""
        result = await self._update(
            alert_id,
            {
                "confirmation_status": ConfirmationStatus.WANDERING,
                "auto_confirmed_at": self.clock.now(),
            },
            precondition=_is_pending,
        )

        if result.is_ok():
            self.logger.info("alert_auto_confirmed", alert_id=alert_id, status="WANDERING")
            return result

        error = result.unwrap_err()
        if isinstance(error, ConditionFailed):
            resolved = await self._already_resolved(alert_id)
            self.logger.info(
                "auto_confirmation_skipped", alert_id=alert_id, status=resolved.status
            )
            return Result.err(resolved)

        self.logger.error("auto_confirmation_failed", alert_id=alert_id, error=str(error))
        return result

    async def confirm(
        self, alert_id: str, outcome: ConfirmationStatus
    ) -> Result[AlertEvent, Exception]:
        """
        Caregiver disposition of a pending alert.

        Returns:
            Result with the updated alert, or AlreadyResolved when the timer or
            another confirmation got there first (expected, not a fault).

        Raises:
            ValueError: If ``outcome`` is not ACCOMPANIED or WANDERING.
        """
        if outcome not in MANUAL_OUTCOMES:
            raise ValueError(f"Invalid confirmation outcome: {outcome}")

        result = await self._update(
            alert_id,
            {"confirmation_status": outcome, "confirmed_at": self.clock.now()},
            precondition=_is_pending,
        )

        if result.is_ok():
            self._cancel_timer(alert_id)
            self.logger.info("alert_confirmed", alert_id=alert_id, status=outcome.value)
            return result

        error = result.unwrap_err()
        if isinstance(error, ConditionFailed):
            resolved = await self._already_resolved(alert_id)
            self.logger.info(
                "confirmation_already_resolved",
                alert_id=alert_id,
                requested=outcome.value,
                status=resolved.status,
            )
            return Result.err(resolved)

        self.logger.warning("confirmation_failed", alert_id=alert_id, error=str(error))
        return result

    async def _already_resolved(self, alert_id: str) -> AlreadyResolved:
        try:
            current = await self.store.get(alert_id)
        except Exception as e:
            self.logger.warning("alert_lookup_failed", alert_id=alert_id, error=str(e))
            current = None
        status = current.confirmation_status.value if current else "unknown"
        return AlreadyResolved(alert_id, status)

    async def mark_as_read(self, alert_id: str) -> Result[AlertEvent, Exception]:
        result = await self._update(alert_id, {"is_read": True})
        if result.is_err():
            self.logger.warning(
                "mark_as_read_failed", alert_id=alert_id, error=str(result.unwrap_err())
            )
        return result

    async def pending_confirmations(self, patient_id: str) -> list[AlertEvent]:
        return await self.store.list_alerts(patient_id, status=ConfirmationStatus.PENDING)

    async def recover_pending(self, patient_id: str, now: datetime | None = None) -> int:
        """
        Re-derive timers from persisted PENDING alerts after a restart.

        Alerts already past their deadline are resolved immediately; the rest
        get a timer for the remaining time.

        Returns:
            Number of alerts resolved as WANDERING by this sweep.
        """
        now = now or self.clock.now()
        delay = self.config.auto_confirmation_delay_seconds

        try:
            pending = await self.pending_confirmations(patient_id)
        except Exception as e:
            self.logger.error("pending_sweep_failed", patient_id=patient_id, error=str(e))
            return 0

        resolved = 0
        rescheduled = 0
        for alert in pending:
            if not alert.is_pending_confirmation:
                continue
            remaining = (alert.confirmation_deadline(delay) - now).total_seconds()
            if remaining <= 0:
                if (await self.auto_confirm(alert.id)).is_ok():
                    resolved += 1
            elif alert.id not in self._timers:
                self.schedule_auto_confirmation(alert, delay=remaining)
                rescheduled += 1

        self.logger.info(
            "pending_sweep_completed",
            patient_id=patient_id,
            pending=len(pending),
            resolved=resolved,
            rescheduled=rescheduled,
        )
        return resolved

    def _cancel_timer(self, alert_id: str) -> bool:
        task = self._timers.pop(alert_id, None)
        self._timer_patients.pop(alert_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_timers(self, patient_id: str | None = None) -> int:
        """Cancel timers for one patient, or all of them."""
        alert_ids = [
            alert_id
            for alert_id, owner in self._timer_patients.items()
            if patient_id is None or owner == patient_id
        ]
        cancelled = sum(self._cancel_timer(alert_id) for alert_id in alert_ids)
        if cancelled:
            self.logger.info(
                "auto_confirmation_timers_cancelled", patient_id=patient_id, count=cancelled
            )
        return cancelled

    async def shutdown(self) -> None:
        tasks = list(self._timers.values())
        self.cancel_timers()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._alerts.close()
