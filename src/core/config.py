"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class ProbeConfig(BaseModel):
    """HTTP probe configuration."""

    user_agent: str = "Pulsewatch/1.0"
    slow_threshold_ms: int = 5000
    default_timeout_secs: float = 30.0


class SchedulerConfig(BaseModel):
    """Check sweep configuration."""

    max_concurrent: int = 10
    sweep_interval_secs: float = 60.0


class CacheConfig(BaseModel):
    """TTL cache configuration."""

    max_size: int = 1000
    default_ttl_secs: float = 300.0
    stats_ttl_secs: float = 60.0
    cleanup_interval_secs: float = 60.0


class RateLimitConfig(BaseModel):
    """Fixed-window rate limiting for the inbound API surface."""

    default_limit: int = 100
    window_ms: int = 60_000
    sweep_interval_secs: float = 60.0


class MetricsConfig(BaseModel):
    """Metrics collector configuration."""

    max_histogram_samples: int = 1000


class EmailProviderConfig(BaseModel):
    """Transactional email relay. Empty ``api_url`` means log-only delivery."""

    api_url: str = ""
    api_key: SecretStr = SecretStr("")
    sender: str = "alerts@pulsewatch.local"


class SmsProviderConfig(BaseModel):
    """SMS gateway. Empty ``api_url`` means log-only delivery."""

    api_url: str = ""
    api_key: SecretStr = SecretStr("")
    sender: str = ""


class AlertsConfig(BaseModel):
    """Notification channel configuration."""

    timeout_secs: float = 10.0
    user_agent: str = "Pulsewatch/1.0"
    email: EmailProviderConfig = EmailProviderConfig()
    sms: SmsProviderConfig = SmsProviderConfig()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    probe: ProbeConfig = ProbeConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    cache: CacheConfig = CacheConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    metrics: MetricsConfig = MetricsConfig()
    alerts: AlertsConfig = AlertsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
