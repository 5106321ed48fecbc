"""Import cycle report files."""

from __future__ import annotations

from pathlib import Path

from gas_stations.common.models import ImportResult
from gas_stations.common.fs import write_json
from gas_stations.common.time_utils import utc_timestamp_iso


def write_import_report(reports_dir: Path, result: ImportResult) -> Path:
    payload = result.to_dict()
    payload["written_at"] = utc_timestamp_iso()

    report_path = reports_dir / f"{result.run_id}.json"
    write_json(report_path, payload)
    write_json(reports_dir / "latest.json", payload)
    return report_path
