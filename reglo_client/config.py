"""
Centralized configuration with environment variable overrides.

Backend location, storage path, booking limits and push settings are
configurable here. Coordinators receive these values instead of
hardcoding them.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

SUPPORTED_PUSH_PLATFORMS = ("android", "ios")


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_int_list(env_var: str, default: str) -> tuple[int, ...]:
    """Parse a comma-separated list of integers from an env var."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer list for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class ApiConfig:
    """Backend endpoint and transport timeouts."""

    base_url: str = os.getenv("REGLO_API_BASE_URL", "https://app.reglo.it/api")
    connect_timeout_sec: float = _safe_float("REGLO_API_CONNECT_TIMEOUT", "10.0")
    read_timeout_sec: float = _safe_float("REGLO_API_READ_TIMEOUT", "30.0")


@dataclass(frozen=True)
class StorageConfig:
    """Location of the durable key/value store."""

    path: str = os.getenv("REGLO_STORAGE_PATH", "~/.reglo/secure_store.json")


@dataclass(frozen=True)
class BookingConfig:
    """Limits applied to booking negotiation and screen data."""

    allowed_durations: tuple[int, ...] = _safe_int_list("REGLO_BOOKING_DURATIONS", "30,60,90,120")
    max_days: int = _safe_int("REGLO_BOOKING_MAX_DAYS", "4")
    waitlist_offer_limit: int = _safe_int("REGLO_WAITLIST_OFFER_LIMIT", "1")
    history_page_size: int = _safe_int("REGLO_HISTORY_PAGE_SIZE", "10")
    payment_history_limit: int = _safe_int("REGLO_PAYMENT_HISTORY_LIMIT", "80")
    availability_weeks: int = _safe_int("REGLO_AVAILABILITY_WEEKS", "4")


@dataclass(frozen=True)
class PushConfig:
    """Push notification registration settings."""

    platform: str = os.getenv("REGLO_PUSH_PLATFORM", "android")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    api: ApiConfig = field(default_factory=ApiConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    push: PushConfig = field(default_factory=PushConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "Reglo Autoscuole")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not config.api.base_url.strip():
        raise ValueError("REGLO_API_BASE_URL must not be empty")
    if config.api.connect_timeout_sec <= 0:
        raise ValueError(
            f"REGLO_API_CONNECT_TIMEOUT must be > 0, got {config.api.connect_timeout_sec}"
        )
    if config.api.read_timeout_sec <= 0:
        raise ValueError(
            f"REGLO_API_READ_TIMEOUT must be > 0, got {config.api.read_timeout_sec}"
        )
    if not config.booking.allowed_durations:
        raise ValueError("REGLO_BOOKING_DURATIONS must list at least one duration")
    if any(minutes <= 0 for minutes in config.booking.allowed_durations):
        raise ValueError(
            f"REGLO_BOOKING_DURATIONS must be positive, got {config.booking.allowed_durations}"
        )

    for limit_name, limit_value in [
        ("REGLO_BOOKING_MAX_DAYS", config.booking.max_days),
        ("REGLO_WAITLIST_OFFER_LIMIT", config.booking.waitlist_offer_limit),
        ("REGLO_HISTORY_PAGE_SIZE", config.booking.history_page_size),
        ("REGLO_PAYMENT_HISTORY_LIMIT", config.booking.payment_history_limit),
        ("REGLO_AVAILABILITY_WEEKS", config.booking.availability_weeks),
    ]:
        if limit_value < 1:
            raise ValueError(f"{limit_name} must be >= 1, got {limit_value}")

    if config.push.platform not in SUPPORTED_PUSH_PLATFORMS:
        raise ValueError(
            f"REGLO_PUSH_PLATFORM must be one of {SUPPORTED_PUSH_PLATFORMS}, "
            f"got {config.push.platform!r}"
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
    logger.info("Configuration loaded for '%s' (%s)", config.app_name, config.api.base_url)
    return config


# Singleton instance
settings = load_config()
