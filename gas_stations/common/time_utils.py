"""UTC-focused helpers for run metadata."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
