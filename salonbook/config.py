"""
Centralized configuration with environment variable overrides.

Scheduling constants (slot step, lock TTL, cancellation cutoff, timezone)
are defaults only. Each organization may override them through
``OrganizationSettings``; anything it leaves unset falls back to these.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag from an env var."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class SchedulingConfig:
    """Default booking policy applied to organizations without overrides."""

    slot_step_minutes: int = _safe_int("SLOT_STEP_MINUTES", "15")
    lock_ttl_seconds: int = _safe_int("SLOT_LOCK_TTL_SECONDS", "120")
    modification_cutoff_minutes: int = _safe_int("MODIFICATION_CUTOFF_MINUTES", "120")
    utc_offset_minutes: int = _safe_int("UTC_OFFSET_MINUTES", "180")
    auto_confirm: bool = _safe_bool("AUTO_CONFIRM_BOOKINGS", "false")
    min_advance_minutes: int = _safe_int("MIN_ADVANCE_MINUTES", "0")
    max_advance_days: int = _safe_int("MAX_ADVANCE_DAYS", "90")


@dataclass(frozen=True)
class ConfirmationConfig:
    """Confirmation code shape. The alphabet omits 0, O, I and 1."""

    alphabet: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    code_length: int = _safe_int("CONFIRMATION_CODE_LENGTH", "6")
    max_attempts: int = _safe_int("CONFIRMATION_CODE_ATTEMPTS", "10")


@dataclass(frozen=True)
class RateLimitConfig:
    """Token buckets for lock attempts (per session) and bookings (per customer phone)."""

    period_seconds: int = _safe_int("RATE_LIMIT_PERIOD_SECONDS", "60")
    lock_rate: int = _safe_int("LOCK_RATE_LIMIT", "30")
    lock_capacity: int = _safe_int("LOCK_RATE_CAPACITY", "40")
    booking_rate: int = _safe_int("BOOKING_RATE_LIMIT", "5")
    booking_capacity: int = _safe_int("BOOKING_RATE_CAPACITY", "20")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "salonbook")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    sched = config.scheduling
    if not 1 <= sched.slot_step_minutes <= 240:
        raise ValueError(
            f"SLOT_STEP_MINUTES must be between 1 and 240, got {sched.slot_step_minutes}"
        )
    if 1440 % sched.slot_step_minutes != 0:
        raise ValueError(
            f"SLOT_STEP_MINUTES must divide a day evenly, got {sched.slot_step_minutes}"
        )
    if sched.lock_ttl_seconds < 1:
        raise ValueError(
            f"SLOT_LOCK_TTL_SECONDS must be >= 1, got {sched.lock_ttl_seconds}"
        )
    if sched.modification_cutoff_minutes < 0:
        raise ValueError(
            "MODIFICATION_CUTOFF_MINUTES must be >= 0, "
            f"got {sched.modification_cutoff_minutes}"
        )
    if not -720 <= sched.utc_offset_minutes <= 840:
        raise ValueError(
            f"UTC_OFFSET_MINUTES must be between -720 and 840, got {sched.utc_offset_minutes}"
        )
    if sched.min_advance_minutes < 0:
        raise ValueError(
            f"MIN_ADVANCE_MINUTES must be >= 0, got {sched.min_advance_minutes}"
        )
    if sched.max_advance_days < 1:
        raise ValueError(
            f"MAX_ADVANCE_DAYS must be >= 1, got {sched.max_advance_days}"
        )

    conf = config.confirmation
    if conf.code_length < 4:
        raise ValueError(
            f"CONFIRMATION_CODE_LENGTH must be >= 4, got {conf.code_length}"
        )
    if conf.max_attempts < 1:
        raise ValueError(
            f"CONFIRMATION_CODE_ATTEMPTS must be >= 1, got {conf.max_attempts}"
        )

    limits = config.rate_limits
    if limits.period_seconds < 1:
        raise ValueError(
            f"RATE_LIMIT_PERIOD_SECONDS must be >= 1, got {limits.period_seconds}"
        )
    for name, rate, capacity in (
        ("LOCK", limits.lock_rate, limits.lock_capacity),
        ("BOOKING", limits.booking_rate, limits.booking_capacity),
    ):
        if rate < 1:
            raise ValueError(f"{name}_RATE_LIMIT must be >= 1, got {rate}")
        if capacity < rate:
            raise ValueError(
                f"{name}_RATE_CAPACITY must be >= {name}_RATE_LIMIT, got {capacity}"
            )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
