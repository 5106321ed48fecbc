"""In-process station repository with ellipsoidal distances."""

from __future__ import annotations

import logging
import threading
from functools import reduce
from typing import Iterable

from gas_stations.common.geometry import geodesic_distance_km, require_nearby_arguments, valid_lat_lon
from gas_stations.common.logging import get_logger, log_event
from gas_stations.common.models import GasStation, StationWithDistance, UpsertReport


class InMemoryStationRepository:
    """Same contract as the PostGIS repository, kept in a dict.

    A batch is applied to a private copy and published with a single
    reference swap, so concurrent readers see either the old or the new map.
    """

    def __init__(self, stations: Iterable[GasStation] = (), logger: logging.Logger | None = None) -> None:
        self._stations: dict[int, GasStation] = {s.object_id: s for s in stations}
        self._write_lock = threading.Lock()
        self.logger = logger or get_logger("store")

    def ensure_schema(self) -> None:
        return None

    def check_ready(self) -> None:
        return None

    def close(self) -> None:
        return None

    def _apply(self, working: dict[int, GasStation], report: UpsertReport, station: GasStation) -> UpsertReport:
        if not valid_lat_lon(station.latitude, station.longitude):
            reason = "coordinates out of range"
            log_event(
                self.logger,
                "station skipped by store",
                level=logging.WARNING,
                stage="persisting",
                event="ROW_SKIPPED",
                status="skipped",
                object_id=station.object_id,
                reason=reason,
            )
            return report.with_skipped(station.object_id, reason)
        # Rebuild from scalars so no caller-supplied object is stored as-is.
        working[station.object_id] = GasStation(
            object_id=station.object_id,
            address=station.address,
            longitude=float(station.longitude),
            latitude=float(station.latitude),
        )
        return report.with_imported()

    def upsert(self, stations: Iterable[GasStation]) -> UpsertReport:
        with self._write_lock:
            working = dict(self._stations)
            report = reduce(
                lambda acc, station: self._apply(working, acc, station),
                stations,
                UpsertReport(),
            )
            self._stations = working
        return report

    def nearby(self, latitude: float, longitude: float, radius_km: float) -> list[StationWithDistance]:
        require_nearby_arguments(latitude, longitude, radius_km)
        snapshot = self._stations
        hits = []
        for station in snapshot.values():
            distance = geodesic_distance_km(latitude, longitude, station.latitude, station.longitude)
            if distance <= radius_km:
                hits.append(StationWithDistance(station=station, distance_km=distance))
        return sorted(hits, key=lambda hit: (hit.distance_km, hit.station.object_id))

    def list_all(self) -> list[GasStation]:
        return sorted(self._stations.values(), key=lambda station: station.object_id)
