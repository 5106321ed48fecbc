"""Application constants."""

USER_AGENT = "gas-stations-import/1.0 (+feed-sync)"
ADDRESS_UNAVAILABLE = "address unavailable"
WGS84_SRID = 4326
DEFAULT_RADIUS_METERS = 1000.0
DEFAULT_IMPORT_INTERVAL_SECONDS = 60 * 60
STATION_TABLE = "gas_stations"
STATION_COLUMNS = (
    "id",
    "object_id",
    "adresse",
    "longitude",
    "latitude",
    "geometry",
)
REJECT_MISSING_ID = "MISSING_ID"
REJECT_INVALID_COORDINATES = "INVALID_COORDINATES"
EXIT_SUCCESS = 0
EXIT_CLIENT_ERROR = 2
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "event",
    "status",
    "object_id",
    "reason",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
