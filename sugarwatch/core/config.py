"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr, field_validator, model_validator

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

# Fallbacks applied when a threshold is stored as 0 and zero_means_unset is on.
DEFAULT_THRESHOLDS: dict[str, int] = {
    "critical_low": 55,
    "low": 70,
    "high": 180,
    "critical_high": 250,
}


class NightscoutConfig(BaseModel):
    """Nightscout server connection configuration."""

    base_url: str = "https://your-nightscout-site.com"
    api_secret: SecretStr = SecretStr("")
    timeout_secs: float = 30.0
    latest_count: int = 2

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("timeout_secs")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_secs must be positive")
        return v


class ThresholdsConfig(BaseModel):
    """Glucose alarm thresholds, in the server's unit (mg/dL).

    ``zero_means_unset`` keeps the historical behaviour where a stored 0
    falls back to the documented default. Turn it off to take 0 literally.
    """

    critical_low: int = DEFAULT_THRESHOLDS["critical_low"]
    low: int = DEFAULT_THRESHOLDS["low"]
    high: int = DEFAULT_THRESHOLDS["high"]
    critical_high: int = DEFAULT_THRESHOLDS["critical_high"]
    zero_means_unset: bool = True

    @model_validator(mode="before")
    @classmethod
    def _apply_zero_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if not data.get("zero_means_unset", True):
            return data
        patched = dict(data)
        for key, default in DEFAULT_THRESHOLDS.items():
            if patched.get(key) == 0:
                patched[key] = default
        return patched

    @model_validator(mode="after")
    def _check_ordering(self) -> ThresholdsConfig:
        if not (self.critical_low < self.low < self.high < self.critical_high):
            raise ValueError(
                "thresholds must satisfy critical_low < low < high < critical_high"
                f" (got {self.critical_low}, {self.low}, {self.high},"
                f" {self.critical_high})"
            )
        return self


class PollingConfig(BaseModel):
    """Polling cadence, staleness windows and failure escalation."""

    normal_interval_secs: int = 300
    critical_interval_secs: int = 120
    urgent_interval_secs: int = 60
    stale_after_mins: int = 10
    missed_readings_after_mins: int = 15
    critical_stale_after_mins: int = 15
    degraded_after_failures: int = 3
    restart_after_failures: int = 5
    restart_delay_secs: float = 2.0
    track_device_status: bool = True
    loop_unresponsive_after_mins: int = 10

    @field_validator(
        "normal_interval_secs",
        "critical_interval_secs",
        "urgent_interval_secs",
        "stale_after_mins",
        "missed_readings_after_mins",
        "critical_stale_after_mins",
        "degraded_after_failures",
        "restart_after_failures",
        "loop_unresponsive_after_mins",
    )
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("restart_delay_secs")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("restart_delay_secs must be >= 0")
        return v

    @model_validator(mode="after")
    def _check_escalation(self) -> PollingConfig:
        if self.restart_after_failures < self.degraded_after_failures:
            raise ValueError(
                "restart_after_failures must be >= degraded_after_failures"
            )
        return self


class WatchdogConfig(BaseModel):
    """Independent health watchdog configuration."""

    interval_secs: float = 120.0
    max_silence_secs: float = 600.0

    @field_validator("interval_secs", "max_silence_secs")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


class AlarmsConfig(BaseModel):
    """Alarm snoozing and frozen-sensor detection."""

    auto_snooze_mins: int = 15
    frozen_window_mins: int = 15
    frozen_min_samples: int = 3
    history_capacity: int = 5
    snooze_options: dict[str, list[int]] = {
        "low": [10, 20, 30],
        "critical_low": [10],
        "high": [10, 20, 30, 45, 60],
        "critical_high": [10, 20, 30],
    }

    @model_validator(mode="after")
    def _check_history(self) -> AlarmsConfig:
        if self.history_capacity < self.frozen_min_samples:
            raise ValueError("history_capacity must be >= frozen_min_samples")
        return self


class PersistenceConfig(BaseModel):
    """Where the last known reading is stored between launches."""

    path: str = "data/state.json"


class WebhookConfig(BaseModel):
    """Generic JSON webhook for alarm delivery."""

    enabled: bool = False
    url: SecretStr = SecretStr("")

    @model_validator(mode="after")
    def _url_when_enabled(self) -> WebhookConfig:
        if self.enabled and not self.url.get_secret_value():
            raise ValueError("webhook.url is required when the webhook is enabled")
        return self


class AlertsConfig(BaseModel):
    """Alarm dispatch configuration."""

    throttle_secs: float = 0.0
    webhook: WebhookConfig = WebhookConfig()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    nightscout: NightscoutConfig = NightscoutConfig()
    thresholds: ThresholdsConfig = ThresholdsConfig()
    polling: PollingConfig = PollingConfig()
    watchdog: WatchdogConfig = WatchdogConfig()
    alarms: AlarmsConfig = AlarmsConfig()
    persistence: PersistenceConfig = PersistenceConfig()
    alerts: AlertsConfig = AlertsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.

    Raises:
        pydantic.ValidationError: if any section is invalid (for example
            thresholds that are not strictly ordered).
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
