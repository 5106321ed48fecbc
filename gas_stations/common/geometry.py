"""Geometry helpers."""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Any

from pyproj import CRS, Geod, Transformer
from pyproj.exceptions import CRSError, ProjError

from gas_stations.common.constants import WGS84_SRID

_WGS84 = Geod(ellps="WGS84")


def extract_point_from_geometry(geometry: dict[str, Any] | None) -> tuple[Any, Any]:
    """Return the raw ``(y, x)`` pair of an ArcGIS point, unparsed."""
    if not isinstance(geometry, dict):
        return None, None
    return geometry.get("y"), geometry.get("x")


def valid_lat_lon(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def require_nearby_arguments(latitude: float, longitude: float, radius_km: float) -> None:
    if not valid_lat_lon(latitude, longitude):
        raise ValueError(f"Query point out of range: lat={latitude!r} lon={longitude!r}")
    if not (math.isfinite(radius_km) and radius_km > 0):
        raise ValueError(f"Radius must be a positive number of kilometers, got {radius_km!r}")


def point_ewkt(longitude: float, latitude: float) -> str:
    return f"SRID={WGS84_SRID};POINT({longitude!r} {latitude!r})"


def geodesic_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    _az12, _az21, meters = _WGS84.inv(lon1, lat1, lon2, lat2)
    return meters / 1000.0


@lru_cache(maxsize=16)
def _transformer_to_wgs84(source_epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(WGS84_SRID), always_xy=True)


def transform_to_wgs84(lat: float, lon: float, source_epsg: int) -> tuple[float, float] | None:
    """Reproject an ``(y, x)`` pair into WGS84; None when the CRS is unusable."""
    if source_epsg == WGS84_SRID:
        return lat, lon
    try:
        transformed_lon, transformed_lat = _transformer_to_wgs84(source_epsg).transform(lon, lat)
    except (CRSError, ProjError):
        return None
    return transformed_lat, transformed_lon
