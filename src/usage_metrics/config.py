"""Configuration loading and validation for usage_metrics."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

STORE_TYPES = ("memory", "disk")
MODES = ("local", "online")


@dataclass
class OtelExporterConfig:
    """OpenTelemetry exporter settings."""

    endpoint: str = "http://localhost:4318"
    service_name: str = "usage-metrics"
    headers: dict[str, str] = field(default_factory=dict)
    export_interval_ms: int = 10000


@dataclass
class CollectorConfig:
    """Which collectors run and how often."""

    enabled: bool = True
    interval_seconds: float = 5.0
    host: bool = True
    process: bool = True
    pid: int | None = None


@dataclass
class StoreConfig:
    """Series store settings."""

    type: str = "memory"
    path: str = "./usage_data"
    retention_seconds: float = 3600.0
    max_points: int = 10000


@dataclass
class UsageMetricsConfig:
    """Top-level usage_metrics configuration."""

    mode: str = "local"
    log_level: str = "INFO"
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    otel: OtelExporterConfig = field(default_factory=OtelExporterConfig)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using USAGE_METRICS_ prefix."""
    env_map = {
        "USAGE_METRICS_MODE": ("mode",),
        "USAGE_METRICS_LOG_LEVEL": ("log_level",),
        "USAGE_METRICS_INTERVAL": ("collector", "interval_seconds"),
        "USAGE_METRICS_PID": ("collector", "pid"),
        "USAGE_METRICS_STORE": ("store", "type"),
        "USAGE_METRICS_STORE_PATH": ("store", "path"),
        "USAGE_METRICS_OTEL_ENDPOINT": ("otel", "endpoint"),
        "USAGE_METRICS_OTEL_SERVICE_NAME": ("otel", "service_name"),
    }
    coerce = {"interval_seconds": float, "pid": int}
    for env_key, path in env_map.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        obj = data
        for part in path[:-1]:
            obj = obj.setdefault(part, {})
        final_key = path[-1]
        try:
            obj[final_key] = coerce.get(final_key, str)(value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid value for {env_key}: {value!r}") from exc
    return data


def _section(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        data = {}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _dict_to_config(data: dict[str, Any]) -> UsageMetricsConfig:
    """Convert a raw dictionary to a UsageMetricsConfig dataclass."""
    return UsageMetricsConfig(
        mode=data.get("mode", "local"),
        log_level=str(data.get("log_level", "INFO")).upper(),
        collector=_section(CollectorConfig, data.get("collector")),
        store=_section(StoreConfig, data.get("store")),
        otel=_section(OtelExporterConfig, data.get("otel")),
    )


def validate_config(cfg: UsageMetricsConfig) -> UsageMetricsConfig:
    """Reject settings a collector could not run with."""
    if cfg.mode not in MODES:
        raise ConfigurationError(f"Unknown mode {cfg.mode!r}, expected one of {MODES}")
    if cfg.collector.interval_seconds <= 0:
        raise ConfigurationError("collector.interval_seconds must be positive")
    if cfg.store.type not in STORE_TYPES:
        raise ConfigurationError(f"Unknown store type {cfg.store.type!r}, expected one of {STORE_TYPES}")
    if cfg.store.retention_seconds <= 0 or cfg.store.max_points <= 0:
        raise ConfigurationError("store retention and max_points must be positive")
    return cfg


def load_config(path: str | Path | None = None) -> UsageMetricsConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``usage_metrics.yaml`` in the current directory if *path* is None.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("usage_metrics.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return validate_config(_dict_to_config(data))
