"""
Cooldown gate shared by detectors.

The cooldown map is the only state touched concurrently in the core, so every
read-modify-write happens under one lock.
"""

import threading
from datetime import datetime, timedelta

from carewatch.domain.models import CooldownRecord
from carewatch.services.collaborators import logger


def fall_key(patient_id: str) -> str:
    return f"fall:{patient_id}"


class DebounceGate:
    """Decides whether a repeated occurrence of an event class is distinct."""

    def __init__(self) -> None:
        self._records: dict[str, CooldownRecord] = {}
        self._lock = threading.Lock()
        self.logger = logger.bind(component="debounce_gate")

    def should_fire(self, key: str, cooldown: timedelta | float, now: datetime) -> bool:
        """
        Return True and record ``now`` if ``key`` is outside its cooldown window.

        At most one caller wins per window for a given key.
        """
        if not isinstance(cooldown, timedelta):
            cooldown = timedelta(seconds=cooldown)

        with self._lock:
            record = self._records.get(key)
            if record is not None and now - record.last_fired_at < cooldown:
                self.logger.debug(
                    "event_suppressed_by_cooldown",
                    key=key,
                    seconds_since_last=(now - record.last_fired_at).total_seconds(),
                )
                return False
            self._records[key] = CooldownRecord(key=key, last_fired_at=now)
            return True

    def last_fired_at(self, key: str) -> datetime | None:
        with self._lock:
            record = self._records.get(key)
            return record.last_fired_at if record else None

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when none is given."""
        with self._lock:
            if key is None:
                self._records.clear()
            else:
                self._records.pop(key, None)
