"""
Contracts for the collaborators the monitoring core depends on.

Key patterns:
- Protocol-based dependency injection (location, motion, directory, alert store, clock)
- Generic Result type for expected failures
- Shared structured logger configured once for the package
"""

import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any, Generic, Protocol, TypeVar

import structlog

from carewatch.config import LoggingConfig
from carewatch.domain.models import (
    Acceleration,
    AlertEvent,
    ConfirmationStatus,
    Coordinate,
    SafeZone,
)


def _processors(renderer: Any) -> list[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ]


# Configure structured logging (production-ready observability)
structlog.configure(
    processors=_processors(structlog.processors.JSONRenderer()),
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def configure_logging(config: LoggingConfig) -> None:
    """Apply level and renderer from configuration (console output in development)."""
    logging.basicConfig(format="%(message)s", level=config.level)
    logging.getLogger().setLevel(config.level)

    renderer: Any = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=_processors(renderer),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Why: Makes error paths visible in type system, forces handling decisions.
    When to use: When failure is expected business logic, not exceptional.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class LocationProvider(Protocol):
    """
    Source of position fixes for one device.

    Fixes may be stale or absent; absence is reported as
    ``Result.err(LocationUnavailable)``, never by raising.
    """

    async def current_location(self, timeout: float) -> Result[Coordinate, Exception]:
        """
        Request a single fix.

        Args:
            timeout: Seconds the provider may spend acquiring a fix.
        """
        ...

    def subscribe(self, interval: float) -> AsyncIterator[Coordinate]:
        """Stream fixes roughly every ``interval`` seconds. Ticks may be skipped."""
        ...


class MotionSensor(Protocol):
    """Accelerometer producing gravity-compensated samples in g-units."""

    def is_available(self) -> bool: ...

    def subscribe(self, sample_rate_hz: float) -> AsyncIterator[Acceleration]:
        """Push samples until the iterator is closed (unsubscribe)."""
        ...


class Directory(Protocol):
    """Read access to patient safe-zone configuration."""

    async def get_safe_zone(self, patient_id: str) -> SafeZone | None: ...


class AlertStore(Protocol):
    """
    Durable, idempotent storage for alert records.

    ``update`` is a compare-and-set: ``precondition`` is evaluated against the
    current record and the change is applied only when it holds, otherwise
    the result carries ``ConditionFailed``.
    """

    async def create(self, event: AlertEvent) -> Result[AlertEvent, Exception]: ...

    async def update(
        self,
        alert_id: str,
        changes: dict[str, Any],
        precondition: Callable[[AlertEvent], bool] | None = None,
    ) -> Result[AlertEvent, Exception]: ...

    async def get(self, alert_id: str) -> AlertEvent | None: ...

    async def list_alerts(
        self,
        patient_id: str,
        *,
        unread_only: bool = False,
        status: ConfirmationStatus | None = None,
    ) -> list[AlertEvent]: ...
