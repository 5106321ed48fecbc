"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gas_stations.common.constants import DEFAULT_IMPORT_INTERVAL_SECONDS, DEFAULT_RADIUS_METERS
from gas_stations.common.errors import ConfigError
from gas_stations.common.fs import read_yaml
from gas_stations.common.http import TimeoutConfig
from gas_stations.common.schema import validate_settings_config

DEFAULT_CONFIG_FILENAME = "gas_stations.yml"


@dataclass(frozen=True)
class FeedSettings:
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    verify_tls: bool = True


@dataclass(frozen=True)
class DatabaseSettings:
    dsn: str
    pool_min: int = 1
    pool_max: int = 5


@dataclass(frozen=True)
class ScheduleSettings:
    interval_seconds: float = DEFAULT_IMPORT_INTERVAL_SECONDS
    run_on_start: bool = True


@dataclass(frozen=True)
class Settings:
    feed: FeedSettings
    database: DatabaseSettings
    schedule: ScheduleSettings
    default_radius_meters: float = DEFAULT_RADIUS_METERS


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def _resolve_dsn(database: dict, environ: dict[str, str]) -> str:
    env_name = database.get("dsn_env")
    if env_name and environ.get(env_name):
        return environ[env_name]
    dsn = database.get("dsn")
    if not dsn:
        raise ConfigError(f"Database DSN not configured (env var {env_name!r} unset and no dsn given)")
    return str(dsn)


def build_settings(cfg: dict, environ: dict[str, str] | None = None) -> Settings:
    environ = dict(os.environ) if environ is None else environ
    feed = cfg["feed"]
    timeout = feed.get("timeout") or {}
    database = cfg["database"]
    schedule = cfg.get("schedule") or {}
    query = cfg.get("query") or {}

    return Settings(
        feed=FeedSettings(
            url=str(feed["url"]),
            params=dict(feed.get("params") or {}),
            timeout=TimeoutConfig(
                connect=float(timeout.get("connect", TimeoutConfig.connect)),
                read=float(timeout.get("read", TimeoutConfig.read)),
            ),
            verify_tls=bool(feed.get("verify_tls", True)),
        ),
        database=DatabaseSettings(
            dsn=_resolve_dsn(database, environ),
            pool_min=int(database.get("pool_min", 1)),
            pool_max=int(database.get("pool_max", 5)),
        ),
        schedule=ScheduleSettings(
            interval_seconds=float(schedule.get("interval_seconds", DEFAULT_IMPORT_INTERVAL_SECONDS)),
            run_on_start=bool(schedule.get("run_on_start", True)),
        ),
        default_radius_meters=float(query.get("default_radius_meters", DEFAULT_RADIUS_METERS)),
    )


def load_settings(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    path = config_dir / DEFAULT_CONFIG_FILENAME
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / DEFAULT_CONFIG_FILENAME
    cfg = validate_settings_config(_load_yaml_with_overlay(path, overlay_path), allow_unknown=allow_unknown)
    return build_settings(cfg, environ=environ)
