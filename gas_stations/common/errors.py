"""Domain errors and failure typing."""


class GasStationError(Exception):
    """Base class for import and query failures."""

    error_code = "GAS_STATION_ERROR"


class ConfigError(GasStationError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class UpstreamUnavailable(GasStationError):
    """Raised when the upstream feed cannot be reached or answers with an error."""

    error_code = "UPSTREAM_UNAVAILABLE"


class MalformedPayload(GasStationError):
    """Raised when the upstream body cannot be decoded into a feature envelope."""

    error_code = "MALFORMED_PAYLOAD"


class PersistenceFailure(GasStationError):
    """Raised when a store transaction or query is lost as a whole."""

    error_code = "PERSISTENCE_FAILURE"


class SchemaMismatch(GasStationError):
    """Raised by the readiness probe when the store lacks required structure."""

    error_code = "SCHEMA_MISMATCH"


class InvalidQuery(GasStationError):
    """Raised for client errors on the proximity query path."""

    error_code = "INVALID_QUERY"
