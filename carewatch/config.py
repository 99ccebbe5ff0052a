"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Safe defaults matching the deployed device behaviour
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class FallDetectionConfig(BaseModel):
    """Fall detection thresholds and timing."""

    threshold_g: float = Field(
        default=2.5, gt=0.0, description="User acceleration magnitude that counts as a fall"
    )
    cooldown_seconds: float = Field(
        default=60.0, ge=0.0, description="Minimum time between two fall alerts"
    )
    location_timeout_seconds: float = Field(
        default=3.0, gt=0.0, description="How long to wait for a fix before alerting without one"
    )
    sample_rate_hz: float = Field(
        default=10.0, gt=0.0, le=100.0, description="Motion sensor sampling rate"
    )


class GeofenceConfig(BaseModel):
    """Safe-zone evaluation cadence and location quality limits."""

    check_interval_seconds: float = Field(
        default=30.0, gt=0.0, description="Interval between geofence evaluations"
    )
    location_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for the per-tick location request"
    )
    max_location_age_seconds: float = Field(
        default=120.0, gt=0.0, description="Fixes older than this are treated as missing"
    )


class AlertConfig(BaseModel):
    """Alert confirmation workflow settings."""

    auto_confirmation_delay_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Unconfirmed geofence exits become wandering incidents after this delay",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    fall_detection: FallDetectionConfig = Field(default_factory=FallDetectionConfig)
    geofence: GeofenceConfig = Field(default_factory=GeofenceConfig)
    alerts: AlertConfig = Field(default_factory=AlertConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    fall_config = FallDetectionConfig(
        threshold_g=float(os.getenv("FALL_THRESHOLD_G", "2.5")),
        cooldown_seconds=float(os.getenv("FALL_COOLDOWN_SECONDS", "60.0")),
        location_timeout_seconds=float(os.getenv("FALL_LOCATION_TIMEOUT_SECONDS", "3.0")),
        sample_rate_hz=float(os.getenv("MOTION_SAMPLE_RATE_HZ", "10.0")),
    )

    geofence_config = GeofenceConfig(
        check_interval_seconds=float(os.getenv("GEOFENCE_CHECK_INTERVAL_SECONDS", "30.0")),
        location_timeout_seconds=float(os.getenv("GEOFENCE_LOCATION_TIMEOUT_SECONDS", "10.0")),
        max_location_age_seconds=float(os.getenv("MAX_LOCATION_AGE_SECONDS", "120.0")),
    )

    alert_config = AlertConfig(
        auto_confirmation_delay_seconds=float(
            os.getenv("AUTO_CONFIRMATION_DELAY_SECONDS", "300.0")
        ),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        fall_detection=fall_config,
        geofence=geofence_config,
        alerts=alert_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nFALL DETECTION")
    print(f"Threshold: {config.fall_detection.threshold_g}g")
    print(f"Cooldown: {config.fall_detection.cooldown_seconds}s")
    print(f"Location Timeout: {config.fall_detection.location_timeout_seconds}s")
    print(f"Sample Rate: {config.fall_detection.sample_rate_hz}Hz")

    print("\nGEOFENCE")
    print(f"Check Interval: {config.geofence.check_interval_seconds}s")
    print(f"Max Location Age: {config.geofence.max_location_age_seconds}s")

    print("\nALERTS")
    print(f"Auto-confirmation Delay: {config.alerts.auto_confirmation_delay_seconds}s")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
