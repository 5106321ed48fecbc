"""PostGIS-backed station repository.

Every operation borrows one pooled connection, runs a single transaction and
hands the connection back on every exit path.  Upserts apply one savepoint
per row so that a row rejected by a table constraint is skipped without
losing the rest of the batch; anything that breaks the transaction itself
rolls the whole batch back.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import reduce
from typing import Iterable, Iterator

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from gas_stations.common.config_loader import DatabaseSettings
from gas_stations.common.constants import STATION_COLUMNS, STATION_TABLE, WGS84_SRID
from gas_stations.common.errors import PersistenceFailure, SchemaMismatch
from gas_stations.common.geometry import require_nearby_arguments
from gas_stations.common.logging import get_logger, log_event
from gas_stations.common.models import GasStation, StationWithDistance, UpsertReport

SCHEMA_SQL = f"""
CREATE EXTENSION IF NOT EXISTS postgis;

CREATE TABLE IF NOT EXISTS {STATION_TABLE} (
  id          serial PRIMARY KEY,
  object_id   integer NOT NULL UNIQUE,
  adresse     text NOT NULL,
  longitude   double precision NOT NULL CHECK (longitude BETWEEN -180 AND 180),
  latitude    double precision NOT NULL CHECK (latitude BETWEEN -90 AND 90),
  geometry    geometry(Point, {WGS84_SRID}) NOT NULL,
  CONSTRAINT {STATION_TABLE}_geometry_matches
    CHECK (ST_X(geometry) = longitude AND ST_Y(geometry) = latitude)
);

CREATE INDEX IF NOT EXISTS {STATION_TABLE}_geography_gist
  ON {STATION_TABLE} USING GIST ((geometry::geography));
"""

UPSERT_SQL = f"""
INSERT INTO {STATION_TABLE} (object_id, adresse, longitude, latitude, geometry)
VALUES (
  %(object_id)s,
  %(address)s,
  %(longitude)s,
  %(latitude)s,
  ST_SetSRID(ST_MakePoint(%(longitude)s, %(latitude)s), {WGS84_SRID})
)
ON CONFLICT (object_id) DO UPDATE SET
  adresse = EXCLUDED.adresse,
  longitude = EXCLUDED.longitude,
  latitude = EXCLUDED.latitude,
  geometry = EXCLUDED.geometry;
"""

NEARBY_SQL = f"""
WITH origin AS (
  SELECT ST_SetSRID(ST_MakePoint(%(longitude)s, %(latitude)s), {WGS84_SRID})::geography AS geog
)
SELECT
  s.object_id,
  s.adresse,
  s.longitude,
  s.latitude,
  ST_Distance(s.geometry::geography, origin.geog) / 1000.0 AS distance_km
FROM {STATION_TABLE} s, origin
WHERE ST_DWithin(s.geometry::geography, origin.geog, %(radius_m)s)
ORDER BY distance_km ASC, s.object_id ASC;
"""

LIST_ALL_SQL = f"""
SELECT object_id, adresse, longitude, latitude
FROM {STATION_TABLE}
ORDER BY object_id ASC;
"""

POSTGIS_VERSION_SQL = "SELECT extversion FROM pg_extension WHERE extname = 'postgis';"

TABLE_COLUMNS_SQL = """
SELECT column_name
FROM information_schema.columns
WHERE table_schema = current_schema()
  AND table_name = %s;
"""

# Row-level failures: constraint violations and out-of-range values.
ROW_LEVEL_ERRORS = (psycopg2.IntegrityError, psycopg2.DataError)


def create_pool(settings: DatabaseSettings) -> ThreadedConnectionPool:
    try:
        return ThreadedConnectionPool(settings.pool_min, settings.pool_max, dsn=settings.dsn)
    except psycopg2.Error as exc:
        raise PersistenceFailure(f"Cannot open database pool: {exc}") from exc


def _station_from_row(row) -> GasStation:
    object_id, address, longitude, latitude = row[:4]
    return GasStation(
        object_id=int(object_id),
        address=address,
        longitude=float(longitude),
        latitude=float(latitude),
    )


class PostgisStationRepository:
    def __init__(self, pool, logger: logging.Logger | None = None) -> None:
        self.pool = pool
        self.logger = logger or get_logger("store")

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "PostgisStationRepository":
        return cls(create_pool(settings))

    def close(self) -> None:
        self.pool.closeall()

    @contextmanager
    def _connection(self) -> Iterator:
        try:
            conn = self.pool.getconn()
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"Cannot acquire database connection: {exc}") from exc

        broken = False
        try:
            yield conn
        except psycopg2.OperationalError:
            broken = True
            raise
        finally:
            self.pool.putconn(conn, close=broken or bool(getattr(conn, "closed", False)))

    def ensure_schema(self) -> None:
        try:
            with self._connection() as conn:
                with conn:
                    with conn.cursor() as cur:
                        cur.execute(SCHEMA_SQL)
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"Schema bootstrap failed: {exc}") from exc

    def check_ready(self) -> None:
        try:
            with self._connection() as conn:
                with conn:
                    with conn.cursor() as cur:
                        cur.execute(POSTGIS_VERSION_SQL)
                        postgis = cur.fetchone()
                        cur.execute(TABLE_COLUMNS_SQL, (STATION_TABLE,))
                        columns = {row[0] for row in cur.fetchall()}
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"Readiness probe failed: {exc}") from exc

        if postgis is None:
            raise SchemaMismatch("PostGIS extension is not installed")
        if not columns:
            raise SchemaMismatch(f"Table {STATION_TABLE} does not exist")
        missing = set(STATION_COLUMNS) - columns
        if missing:
            raise SchemaMismatch(f"Table {STATION_TABLE} lacks columns: {', '.join(sorted(missing))}")

    def _upsert_one(self, cur, report: UpsertReport, station: GasStation) -> UpsertReport:
        cur.execute("SAVEPOINT station_row;")
        try:
            cur.execute(
                UPSERT_SQL,
                {
                    "object_id": station.object_id,
                    "address": station.address,
                    "longitude": station.longitude,
                    "latitude": station.latitude,
                },
            )
        except ROW_LEVEL_ERRORS as exc:
            cur.execute("ROLLBACK TO SAVEPOINT station_row;")
            reason = (str(exc).strip().splitlines() or [type(exc).__name__])[0]
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
        cur.execute("RELEASE SAVEPOINT station_row;")
        return report.with_imported()

    def upsert(self, stations: Iterable[GasStation]) -> UpsertReport:
        stations = list(stations)
        if not stations:
            return UpsertReport()

        try:
            with self._connection() as conn:
                with conn:
                    with conn.cursor() as cur:
                        return reduce(
                            lambda report, station: self._upsert_one(cur, report, station),
                            stations,
                            UpsertReport(),
                        )
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"Upsert of {len(stations)} stations rolled back: {exc}") from exc

    def nearby(self, latitude: float, longitude: float, radius_km: float) -> list[StationWithDistance]:
        require_nearby_arguments(latitude, longitude, radius_km)
        try:
            with self._connection() as conn:
                with conn:
                    with conn.cursor() as cur:
                        cur.execute(
                            NEARBY_SQL,
                            {
                                "latitude": latitude,
                                "longitude": longitude,
                                "radius_m": radius_km * 1000.0,
                            },
                        )
                        rows = cur.fetchall()
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"Nearby query failed: {exc}") from exc

        return [StationWithDistance(station=_station_from_row(row), distance_km=float(row[4])) for row in rows]

    def list_all(self) -> list[GasStation]:
        try:
            with self._connection() as conn:
                with conn:
                    with conn.cursor() as cur:
                        cur.execute(LIST_ALL_SQL)
                        rows = cur.fetchall()
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"Listing stations failed: {exc}") from exc

        return [_station_from_row(row) for row in rows]
