"""CLI entrypoint for the gas station feed import and proximity lookup."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from gas_stations.common.config_loader import Settings, load_settings
from gas_stations.common.constants import EXIT_CLIENT_ERROR, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from gas_stations.common.errors import GasStationError, InvalidQuery
from gas_stations.common.logging import build_logger, log_event
from gas_stations.harvest.arcgis_feed import ArcGisFeatureSource
from gas_stations.service.orchestrator import ImportOrchestrator
from gas_stations.service.query import ProximityQueryService
from gas_stations.service.scheduler import ImportScheduler
from gas_stations.store.memory import InMemoryStationRepository
from gas_stations.store.postgis import PostgisStationRepository

COMMANDS = ("import", "nearby", "list", "init-db", "serve")


@dataclass
class App:
    settings: Settings
    source: ArcGisFeatureSource
    repository: object
    orchestrator: ImportOrchestrator
    queries: ProximityQueryService

    def close(self) -> None:
        self.source.close()
        self.repository.close()


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--store", default="postgis", choices=["postgis", "memory"])
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--lat", default=None)
    parser.add_argument("--lng", default=None)
    parser.add_argument("--radius", default=None, help="search radius in meters")
    return parser.parse_args(argv)


def build_app(settings: Settings, *, store: str, data_dir: Path | None, logger: logging.Logger) -> App:
    if store == "memory":
        repository = InMemoryStationRepository(logger=logger.getChild("store"))
    else:
        repository = PostgisStationRepository.from_settings(settings.database)
    source = ArcGisFeatureSource(settings.feed)
    orchestrator = ImportOrchestrator(
        source,
        repository,
        reports_dir=(data_dir / "reports") if data_dir is not None else None,
        logger=logger.getChild("import"),
    )
    queries = ProximityQueryService(repository, default_radius_meters=settings.default_radius_meters)
    return App(settings, source, repository, orchestrator, queries)


def _emit(payload) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2))
    sys.stdout.write("\n")


def run_serve(app: App, logger: logging.Logger) -> int:
    schedule = app.settings.schedule
    scheduler = ImportScheduler(
        app.orchestrator,
        interval_seconds=schedule.interval_seconds,
        run_on_start=schedule.run_on_start,
        logger=logger.getChild("scheduler"),
    )
    scheduler.start()
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        log_event(logger, "interrupted, shutting down", event="SHUTDOWN", status="ok")
    finally:
        scheduler.stop(timeout=30)
    return EXIT_SUCCESS


def execute_command(args: argparse.Namespace, app: App, logger: logging.Logger) -> int:
    if args.command == "init-db":
        app.repository.ensure_schema()
        log_event(logger, "schema ready", event="SCHEMA_READY", status="ok")
        return EXIT_SUCCESS

    if args.command == "import":
        result = app.orchestrator.run_cycle()
        _emit(result.to_dict())
        if result.status == "busy":
            return EXIT_PARTIAL
        return EXIT_SUCCESS if result.ok else EXIT_HARD_FAIL

    if args.command == "nearby":
        try:
            hits = app.queries.find_nearby(args.lat, args.lng, args.radius)
        except InvalidQuery as exc:
            log_event(logger, f"rejected query: {exc}", event="QUERY_INVALID", status="client_error", error_code=exc.error_code)
            _emit({"error": str(exc)})
            return EXIT_CLIENT_ERROR
        _emit([hit.to_dict() for hit in hits])
        return EXIT_SUCCESS

    if args.command == "list":
        _emit([station.to_dict() for station in app.queries.list_all()])
        return EXIT_SUCCESS

    if args.command == "serve":
        return run_serve(app, logger)

    raise ValueError(f"Unknown command: {args.command}")


def run_command(args: argparse.Namespace) -> int:
    data_dir = Path(args.data_dir) if args.data_dir else None
    logger = build_logger(data_dir, level=args.log_level)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None

    try:
        settings = load_settings(Path(args.config_dir), overlay_config_dir=overlay_config_dir)
        app = build_app(settings, store=args.store, data_dir=data_dir, logger=logger)
    except GasStationError as exc:
        log_event(logger, f"startup failed: {exc}", level=logging.ERROR, event="STARTUP_FAIL", status="error", error_code=exc.error_code)
        return EXIT_HARD_FAIL

    try:
        return execute_command(args, app, logger)
    except GasStationError as exc:
        log_event(
            logger,
            f"{args.command} failed: {exc}",
            level=logging.ERROR,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    finally:
        app.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return run_command(args)
    except Exception:
        logging.getLogger("gas_stations").exception("unexpected failure")
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
