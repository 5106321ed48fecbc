"""ArcGIS feature feed source."""

from __future__ import annotations

from typing import Any

from gas_stations.common.config_loader import FeedSettings
from gas_stations.common.errors import MalformedPayload, UpstreamUnavailable
from gas_stations.common.http import HttpClient
from gas_stations.common.models import RawFeature

# Esri-only codes for Web Mercator that EPSG does not define.
ESRI_WKID_ALIASES = {102100: 3857, 102113: 3857}


def _error_message(error: object) -> str:
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or "unknown error"
        return f"{code}: {message}" if code is not None else str(message)
    return str(error)


def _parse_wkid(container: dict | None) -> int | None:
    if not isinstance(container, dict):
        return None
    spatial_ref = container.get("spatialReference") or {}
    if not isinstance(spatial_ref, dict):
        return None
    wkid = spatial_ref.get("latestWkid") or spatial_ref.get("wkid")
    if wkid is None:
        return None
    try:
        wkid = int(wkid)
    except (TypeError, ValueError):
        return None
    return ESRI_WKID_ALIASES.get(wkid, wkid)


def decode_features(payload: Any) -> list[RawFeature]:
    """Turn a decoded ArcGIS query envelope into raw features.

    Entries that are not objects become empty features so that the
    transformer can reject them one by one instead of failing the batch.
    """
    if not isinstance(payload, dict):
        raise MalformedPayload("Feed envelope is not a JSON object")
    if "error" in payload:
        raise UpstreamUnavailable(f"Feed reported an error: {_error_message(payload['error'])}")

    features = payload.get("features")
    if not isinstance(features, list):
        raise MalformedPayload("Feed envelope has no 'features' sequence")

    envelope_wkid = _parse_wkid(payload)
    out: list[RawFeature] = []
    for feature in features:
        if not isinstance(feature, dict):
            out.append(RawFeature(attributes={}, geometry=None))
            continue
        attributes = feature.get("attributes")
        geometry = feature.get("geometry") if isinstance(feature.get("geometry"), dict) else None
        out.append(
            RawFeature(
                attributes=dict(attributes) if isinstance(attributes, dict) else {},
                geometry=dict(geometry) if geometry is not None else None,
                wkid=_parse_wkid(geometry) or envelope_wkid,
            )
        )
    return out


class ArcGisFeatureSource:
    def __init__(self, settings: FeedSettings, http_client: HttpClient | None = None) -> None:
        self.settings = settings
        self._owns_client = http_client is None
        self.client = http_client or HttpClient(
            timeout=settings.timeout,
            verify_tls=settings.verify_tls,
        )

    def fetch(self) -> list[RawFeature]:
        payload = self.client.get_json(
            self.settings.url,
            params=self.settings.params or None,
            timeout=self.settings.timeout,
        )
        return decode_features(payload)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
