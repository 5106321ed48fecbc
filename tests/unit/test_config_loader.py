from pathlib import Path

import pytest

from gas_stations.common.config_loader import load_settings
from gas_stations.common.errors import ConfigError

BASE_CONFIG = """feed:
  url: "https://example.test/arcgis/rest/services/x/MapServer/0/query"
  params:
    f: json
  timeout:
    connect: 3
    read: 7
database:
  dsn: "postgresql://u:p@db/base"
schedule:
  interval_seconds: 120
"""


def _write(directory: Path, text: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "gas_stations.yml").write_text(text, encoding="utf-8")
    return directory


def test_load_settings_from_repo_config_dir():
    settings = load_settings(Path("config"), environ={})

    assert settings.feed.url.endswith("/query")
    assert settings.feed.params["outSR"] == "4326"
    assert settings.schedule.interval_seconds == 3600
    assert settings.default_radius_meters == 1000
    assert settings.database.dsn.startswith("postgresql://")


def test_load_settings_reads_values_and_defaults(tmp_path: Path):
    settings = load_settings(_write(tmp_path / "base", BASE_CONFIG), environ={})

    assert settings.feed.timeout.connect == 3
    assert settings.feed.timeout.read == 7
    assert settings.feed.verify_tls is True
    assert settings.database.pool_min == 1
    assert settings.database.pool_max == 5
    assert settings.schedule.interval_seconds == 120
    assert settings.schedule.run_on_start is True


def test_load_settings_applies_overlay_values(tmp_path: Path):
    base = _write(tmp_path / "base", BASE_CONFIG)
    overlay = _write(
        tmp_path / "overlay",
        """feed:
  timeout:
    read: 60
query:
  default_radius_meters: 2500
""",
    )

    settings = load_settings(base, overlay_config_dir=overlay, environ={})

    assert settings.feed.timeout.read == 60
    assert settings.feed.timeout.connect == 3
    assert settings.feed.params == {"f": "json"}
    assert settings.default_radius_meters == 2500


def test_dsn_env_takes_precedence(tmp_path: Path):
    base = _write(
        tmp_path / "base",
        BASE_CONFIG.replace('  dsn: "postgresql://u:p@db/base"\n', '  dsn_env: STATIONS_DSN\n  dsn: "postgresql://fallback"\n'),
    )

    from_env = load_settings(base, environ={"STATIONS_DSN": "postgresql://from-env"})
    fallback = load_settings(base, environ={})

    assert from_env.database.dsn == "postgresql://from-env"
    assert fallback.database.dsn == "postgresql://fallback"


def test_dsn_env_without_value_fails(tmp_path: Path):
    base = _write(tmp_path / "base", BASE_CONFIG.replace('dsn: "postgresql://u:p@db/base"', "dsn_env: STATIONS_DSN"))

    with pytest.raises(ConfigError):
        load_settings(base, environ={})


def test_unknown_keys_rejected_unless_allowed(tmp_path: Path):
    base = _write(tmp_path / "base", BASE_CONFIG + "extra: 1\n")

    with pytest.raises(ConfigError):
        load_settings(base, environ={})
    assert load_settings(base, allow_unknown=True, environ={}).feed.params == {"f": "json"}


@pytest.mark.parametrize(
    "broken",
    [
        BASE_CONFIG.replace("https://example.test", "ftp://example.test"),
        BASE_CONFIG.replace("interval_seconds: 120", "interval_seconds: 0"),
        BASE_CONFIG.replace("read: 7", "read: -1"),
        BASE_CONFIG + "query:\n  default_radius_meters: nope\n",
    ],
)
def test_invalid_values_rejected(tmp_path: Path, broken: str):
    with pytest.raises(ConfigError):
        load_settings(_write(tmp_path / "base", broken), environ={})


def test_missing_config_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path, environ={})
