"""Data models used across the import pipeline and query path."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any

from gas_stations.common.geometry import point_ewkt


@dataclass(frozen=True)
class RawFeature:
    attributes: dict[str, Any]
    geometry: dict[str, Any] | None = None
    wkid: int | None = None


@dataclass(frozen=True)
class GasStation:
    object_id: int
    address: str
    longitude: float
    latitude: float

    @property
    def geometry(self) -> str:
        return point_ewkt(self.longitude, self.latitude)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["geometry"] = self.geometry
        return payload


@dataclass(frozen=True)
class StationWithDistance:
    station: GasStation
    distance_km: float

    def to_dict(self) -> dict[str, Any]:
        payload = self.station.to_dict()
        payload["distance_km"] = self.distance_km
        return payload


@dataclass(frozen=True)
class RejectionReason:
    index: int
    object_id: int | None
    reason: str
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UpsertReport:
    imported: int = 0
    skipped: int = 0
    skip_reasons: dict[int, str] = field(default_factory=dict)

    def with_imported(self) -> "UpsertReport":
        return replace(self, imported=self.imported + 1)

    def with_skipped(self, object_id: int, reason: str) -> "UpsertReport":
        return replace(
            self,
            skipped=self.skipped + 1,
            skip_reasons={**self.skip_reasons, object_id: reason},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "skip_reasons": {str(k): v for k, v in self.skip_reasons.items()},
        }


@dataclass(frozen=True)
class ImportResult:
    run_id: str
    status: str
    state: str
    features: int = 0
    rejected: tuple[RejectionReason, ...] = ()
    report: UpsertReport | None = None
    error_code: str | None = None
    error: str | None = None
    duration_ms: int | None = None

    @property
    def ok(self) -> bool:
        return self.status == "done"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "state": self.state,
            "features": self.features,
            "rejected_count": len(self.rejected),
            "rejected": [r.to_dict() for r in self.rejected],
            "report": self.report.to_dict() if self.report is not None else None,
            "error_code": self.error_code,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }
