from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

import pytest

from gas_stations.common.constants import REJECT_INVALID_COORDINATES, REJECT_MISSING_ID
from gas_stations.common.errors import MalformedPayload, PersistenceFailure, SchemaMismatch, UpstreamUnavailable
from gas_stations.common.models import RawFeature
from gas_stations.service.orchestrator import ImportOrchestrator
from gas_stations.store.memory import InMemoryStationRepository


def _features():
    return [
        RawFeature({"objectid": 1, "adresse": "Aachener Str. 1"}, {"x": 6.9300, "y": 50.9380}),
        RawFeature({"objectid": 2}, {"x": 6.9600, "y": 50.9420}),
        RawFeature({"adresse": "no id"}, {"x": 6.9, "y": 50.9}),
        RawFeature({"objectid": 4}, {"x": 6.9, "y": 200}),
    ]


class FakeSource:
    def __init__(self, features=None, error: Exception | None = None):
        self.features = features if features is not None else []
        self.error = error
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.features)


class SpyRepository(InMemoryStationRepository):
    def __init__(self, ready_error: Exception | None = None, upsert_error: Exception | None = None):
        super().__init__()
        self.ready_error = ready_error
        self.upsert_error = upsert_error
        self.upsert_calls = 0

    def check_ready(self):
        if self.ready_error is not None:
            raise self.ready_error

    def upsert(self, stations):
        self.upsert_calls += 1
        if self.upsert_error is not None:
            raise self.upsert_error
        return super().upsert(stations)


@pytest.mark.integration
def test_cycle_imports_valid_stations_and_reports_rejections(tmp_path: Path):
    repo = SpyRepository()
    orchestrator = ImportOrchestrator(FakeSource(_features()), repo, reports_dir=tmp_path / "reports")

    result = orchestrator.run_cycle(run_id="import-test")

    assert result.status == "done"
    assert orchestrator.state == "done"
    assert result.features == 4
    assert (result.report.imported, result.report.skipped) == (2, 0)
    assert [(r.object_id, r.reason) for r in result.rejected] == [
        (None, REJECT_MISSING_ID),
        (4, REJECT_INVALID_COORDINATES),
    ]
    assert [s.object_id for s in repo.list_all()] == [1, 2]

    written = json.loads((tmp_path / "reports" / "import-test.json").read_text(encoding="utf-8"))
    assert written["report"]["imported"] == 2
    assert written["rejected_count"] == 2
    assert (tmp_path / "reports" / "latest.json").exists()


@pytest.mark.integration
def test_rerunning_same_payload_is_idempotent():
    repo = SpyRepository()
    orchestrator = ImportOrchestrator(FakeSource(_features()), repo)

    first = orchestrator.run_cycle()
    state_after_first = repo.list_all()
    second = orchestrator.run_cycle()

    assert second.report.imported + second.report.skipped == first.report.imported
    assert repo.list_all() == state_after_first
    assert len({s.object_id for s in repo.list_all()}) == len(repo.list_all())


@pytest.mark.integration
def test_readiness_failure_skips_fetch():
    source = FakeSource(_features())
    orchestrator = ImportOrchestrator(source, SpyRepository(ready_error=SchemaMismatch("no table")))

    result = orchestrator.run_cycle()

    assert result.status == "failed"
    assert result.error_code == "SCHEMA_MISMATCH"
    assert result.error.startswith("validating")
    assert source.calls == 0


@pytest.mark.integration
@pytest.mark.parametrize(
    ("error", "code"),
    [
        (UpstreamUnavailable("HTTP status: 502"), "UPSTREAM_UNAVAILABLE"),
        (MalformedPayload("no features"), "MALFORMED_PAYLOAD"),
    ],
)
def test_fetch_failures_are_fatal_without_persisting(error, code):
    repo = SpyRepository()
    source = FakeSource(error=error)
    orchestrator = ImportOrchestrator(source, repo)

    result = orchestrator.run_cycle()

    assert result.status == "failed"
    assert result.state == "failed"
    assert result.error_code == code
    assert source.calls == 1
    assert repo.upsert_calls == 0


@pytest.mark.integration
def test_persistence_failure_is_returned_not_raised():
    repo = SpyRepository(upsert_error=PersistenceFailure("connection lost"))
    result = ImportOrchestrator(FakeSource(_features()), repo).run_cycle()

    assert result.status == "failed"
    assert result.error_code == "PERSISTENCE_FAILURE"
    assert result.report is None
    assert len(result.rejected) == 2
    assert repo.list_all() == []


@pytest.mark.integration
def test_unexpected_error_is_contained():
    class ExplodingSource:
        def fetch(self):
            raise KeyError("surprise")

    result = ImportOrchestrator(ExplodingSource(), SpyRepository()).run_cycle()

    assert result.status == "failed"
    assert result.error_code == "UNEXPECTED_ERROR"


@pytest.mark.integration
def test_no_valid_stations_short_circuits_repository():
    repo = SpyRepository()
    features = [RawFeature({"adresse": "x"}, None)]

    result = ImportOrchestrator(FakeSource(features), repo).run_cycle()

    assert result.status == "done"
    assert (result.report.imported, result.report.skipped) == (0, 0)
    assert repo.upsert_calls == 0


@pytest.mark.integration
def test_concurrent_trigger_is_suppressed_while_cycle_in_flight():
    entered = threading.Event()
    release = threading.Event()

    class BlockingSource(FakeSource):
        def fetch(self):
            entered.set()
            assert release.wait(timeout=5)
            return super().fetch()

    orchestrator = ImportOrchestrator(BlockingSource(_features()), SpyRepository())
    results = []
    worker = threading.Thread(target=lambda: results.append(orchestrator.run_cycle()))
    worker.start()
    try:
        assert entered.wait(timeout=5)
        assert orchestrator.busy
        concurrent = orchestrator.run_cycle()
    finally:
        release.set()
        worker.join(timeout=5)

    assert concurrent.status == "busy"
    assert results[0].status == "done"
    assert orchestrator.busy is False


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)


@pytest.mark.integration
def test_unwritable_reports_dir_still_returns_committed_result(tmp_path: Path):
    blocker = tmp_path / "reports"
    blocker.write_text("not a directory", encoding="utf-8")
    handler = RecordingHandler()
    logger = logging.getLogger("tests.import_cycle.report_write")
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    repo = SpyRepository()

    try:
        result = ImportOrchestrator(FakeSource(_features()), repo, reports_dir=blocker, logger=logger).run_cycle()
    finally:
        logger.removeHandler(handler)

    assert result.status == "done"
    assert [s.object_id for s in repo.list_all()] == [1, 2]
    failures = [r for r in handler.records if getattr(r, "event", None) == "REPORT_WRITE_FAIL"]
    assert len(failures) == 1
    assert failures[0].levelno == logging.WARNING


@pytest.mark.integration
def test_busy_trigger_does_not_overwrite_latest_report(tmp_path: Path):
    entered = threading.Event()
    release = threading.Event()

    class BlockingSource(FakeSource):
        def fetch(self):
            entered.set()
            assert release.wait(timeout=5)
            return super().fetch()

    reports_dir = tmp_path / "reports"
    orchestrator = ImportOrchestrator(BlockingSource(_features()), SpyRepository(), reports_dir=reports_dir)
    worker = threading.Thread(target=lambda: orchestrator.run_cycle(run_id="import-real"))
    worker.start()
    try:
        assert entered.wait(timeout=5)
        busy = orchestrator.run_cycle(run_id="import-busy")
    finally:
        release.set()
        worker.join(timeout=5)

    assert busy.status == "busy"
    assert not (reports_dir / "import-busy.json").exists()
    latest = json.loads((reports_dir / "latest.json").read_text(encoding="utf-8"))
    assert latest["run_id"] == "import-real"
    assert latest["status"] == "done"
