"""Raw feature to canonical station transformation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable

from gas_stations.common.constants import (
    ADDRESS_UNAVAILABLE,
    REJECT_INVALID_COORDINATES,
    REJECT_MISSING_ID,
)
from gas_stations.common.geometry import extract_point_from_geometry, transform_to_wgs84, valid_lat_lon
from gas_stations.common.models import GasStation, RawFeature, RejectionReason

OBJECT_ID_CANDIDATES = ["objectid", "object_id"]
ADDRESS_CANDIDATES = ["adresse", "address"]


@dataclass(frozen=True)
class TransformResult:
    stations: list[GasStation]
    rejected: list[RejectionReason]


def _lookup_first(attributes: dict, candidates: list[str]) -> object | None:
    # ArcGIS services differ in field name casing (OBJECTID vs objectid).
    folded = {str(key).lower(): value for key, value in attributes.items()}
    for key in candidates:
        value = folded.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_object_id(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def _safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _address(attributes: dict) -> str:
    raw = _lookup_first(attributes, ADDRESS_CANDIDATES)
    if raw is None:
        return ADDRESS_UNAVAILABLE
    text = str(raw).strip()
    return text or ADDRESS_UNAVAILABLE


def transform_feature(index: int, feature: RawFeature) -> GasStation | RejectionReason:
    object_id = _parse_object_id(_lookup_first(feature.attributes, OBJECT_ID_CANDIDATES))
    if object_id is None:
        return RejectionReason(
            index=index,
            object_id=None,
            reason=REJECT_MISSING_ID,
            detail="objectid missing or not an integer",
        )

    raw_lat, raw_lon = extract_point_from_geometry(feature.geometry)
    lat = _safe_float(raw_lat)
    lon = _safe_float(raw_lon)
    if lat is not None and lon is not None and feature.wkid is not None:
        transformed = transform_to_wgs84(lat, lon, feature.wkid)
        lat, lon = transformed if transformed is not None else (None, None)
    if not valid_lat_lon(lat, lon):
        return RejectionReason(
            index=index,
            object_id=object_id,
            reason=REJECT_INVALID_COORDINATES,
            detail=f"unusable coordinates x={raw_lon!r} y={raw_lat!r}",
        )

    return GasStation(
        object_id=object_id,
        address=_address(feature.attributes),
        longitude=lon,
        latitude=lat,
    )


def transform_features(features: Iterable[RawFeature]) -> TransformResult:
    by_id: dict[int, GasStation] = {}
    rejected: list[RejectionReason] = []

    for index, feature in enumerate(features):
        outcome = transform_feature(index, feature)
        if isinstance(outcome, RejectionReason):
            rejected.append(outcome)
            continue
        # Later duplicates win, same as applying the upserts in feed order.
        by_id.pop(outcome.object_id, None)
        by_id[outcome.object_id] = outcome

    return TransformResult(stations=list(by_id.values()), rejected=rejected)
