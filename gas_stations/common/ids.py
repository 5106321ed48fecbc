"""Run identifier helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    # Sortable id; microseconds keep back-to-back manual triggers apart.
    return now.strftime("import-%Y%m%dT%H%M%S%fZ")
