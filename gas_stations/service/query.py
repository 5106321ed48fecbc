"""Proximity query parameter handling."""

from __future__ import annotations

import math

from gas_stations.common.constants import DEFAULT_RADIUS_METERS
from gas_stations.common.errors import InvalidQuery
from gas_stations.common.models import GasStation, StationWithDistance


def _parse_number(raw: object, name: str) -> float:
    if raw is None or isinstance(raw, bool):
        raise InvalidQuery(f"{name} is required")
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            raise InvalidQuery(f"{name} is required")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise InvalidQuery(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value):
        raise InvalidQuery(f"{name} must be finite, got {raw!r}")
    return value


class ProximityQueryService:
    """Validates loosely typed query input; radius comes in meters."""

    def __init__(self, repository, default_radius_meters: float = DEFAULT_RADIUS_METERS) -> None:
        self.repository = repository
        self.default_radius_meters = default_radius_meters

    def find_nearby(self, raw_lat: object, raw_lng: object, raw_radius: object = None) -> list[StationWithDistance]:
        lat = _parse_number(raw_lat, "lat")
        lng = _parse_number(raw_lng, "lng")
        if not -90 <= lat <= 90:
            raise InvalidQuery(f"lat must be within [-90, 90], got {lat}")
        if not -180 <= lng <= 180:
            raise InvalidQuery(f"lng must be within [-180, 180], got {lng}")

        if raw_radius is None or (isinstance(raw_radius, str) and not raw_radius.strip()):
            radius_m = self.default_radius_meters
        else:
            radius_m = _parse_number(raw_radius, "radius")
        if radius_m <= 0:
            raise InvalidQuery(f"radius must be positive, got {radius_m}")

        return self.repository.nearby(lat, lng, radius_m / 1000.0)

    def list_all(self) -> list[GasStation]:
        return self.repository.list_all()
