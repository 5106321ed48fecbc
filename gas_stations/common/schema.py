"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from gas_stations.common.errors import ConfigError

TOP_LEVEL_KEYS = {"feed", "database", "schedule", "query"}
FEED_KEYS = {"url", "params", "timeout", "verify_tls"}
DATABASE_KEYS = {"dsn", "dsn_env", "pool_min", "pool_max"}
SCHEDULE_KEYS = {"interval_seconds", "run_on_start"}
QUERY_KEYS = {"default_radius_meters"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_positive_number(value: object, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number")


def validate_settings_config(cfg: object, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "settings")
    _assert_required_keys(cfg, {"feed", "database"}, "settings")
    _assert_no_unknown_keys(cfg, TOP_LEVEL_KEYS, "settings", allow_unknown)

    feed = _assert_mapping(cfg["feed"], "feed")
    _assert_required_keys(feed, {"url"}, "feed")
    _assert_no_unknown_keys(feed, FEED_KEYS, "feed", allow_unknown)
    if not str(feed["url"]).startswith(("http://", "https://")):
        raise ConfigError("feed.url must be an http(s) URL")
    if "params" in feed:
        _assert_mapping(feed["params"], "feed.params")
    if "timeout" in feed:
        timeout = _assert_mapping(feed["timeout"], "feed.timeout")
        _assert_no_unknown_keys(timeout, {"connect", "read"}, "feed.timeout", allow_unknown)
        for key, value in timeout.items():
            _assert_positive_number(value, f"feed.timeout.{key}")

    database = _assert_mapping(cfg["database"], "database")
    _assert_no_unknown_keys(database, DATABASE_KEYS, "database", allow_unknown)
    if "dsn" not in database and "dsn_env" not in database:
        raise ConfigError("database requires one of: dsn, dsn_env")
    pool_min = database.get("pool_min", 1)
    pool_max = database.get("pool_max", 5)
    if not isinstance(pool_min, int) or not isinstance(pool_max, int) or pool_min < 1 or pool_max < pool_min:
        raise ConfigError("database pool sizes must satisfy 1 <= pool_min <= pool_max")

    schedule = _assert_mapping(cfg.get("schedule", {}), "schedule")
    _assert_no_unknown_keys(schedule, SCHEDULE_KEYS, "schedule", allow_unknown)
    if "interval_seconds" in schedule:
        _assert_positive_number(schedule["interval_seconds"], "schedule.interval_seconds")

    query = _assert_mapping(cfg.get("query", {}), "query")
    _assert_no_unknown_keys(query, QUERY_KEYS, "query", allow_unknown)
    if "default_radius_meters" in query:
        _assert_positive_number(query["default_radius_meters"], "query.default_radius_meters")

    return cfg
