"""One import cycle: readiness, fetch, transform, upsert."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from gas_stations.common.errors import GasStationError
from gas_stations.common.ids import generate_run_id
from gas_stations.common.logging import get_logger, log_event
from gas_stations.common.models import ImportResult, RejectionReason, UpsertReport
from gas_stations.common.time_utils import elapsed_ms
from gas_stations.pipeline.reports import write_import_report
from gas_stations.pipeline.transform import transform_features


class ImportOrchestrator:
    """Drives import cycles against one repository.

    Cycles never overlap: a trigger that arrives while another cycle holds
    the slot returns a ``busy`` result straight away.  Failures that end a
    cycle are returned as ``failed`` results and never raised to the caller.
    """

    def __init__(
        self,
        source,
        repository,
        *,
        reports_dir: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.source = source
        self.repository = repository
        self.reports_dir = reports_dir
        self.logger = logger or get_logger("import")
        self.state = "idle"
        self._slot = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    def _enter(self, state: str, run_id: str) -> None:
        self.state = state
        log_event(self.logger, f"{state} started", run_id=run_id, stage=state, event="STAGE_START", status="ok")

    def _log_rejections(self, run_id: str, rejected: list[RejectionReason]) -> None:
        for rejection in rejected:
            log_event(
                self.logger,
                f"feature {rejection.index} rejected: {rejection.detail}",
                run_id=run_id,
                stage="transforming",
                event="RECORD_REJECTED",
                status="rejected",
                object_id=rejection.object_id,
                reason=rejection.reason,
            )

    def run_cycle(self, run_id: str | None = None) -> ImportResult:
        run_id = run_id or generate_run_id()
        if not self._slot.acquire(blocking=False):
            log_event(
                self.logger,
                "import already in flight, trigger ignored",
                run_id=run_id,
                event="CYCLE_BUSY",
                status="busy",
            )
            return ImportResult(run_id=run_id, status="busy", state=self.state)

        try:
            result = self._run(run_id)
            if self.reports_dir is not None:
                self._write_report(result)
        finally:
            self._slot.release()
        return result

    def _write_report(self, result: ImportResult) -> None:
        try:
            write_import_report(self.reports_dir, result)
        except OSError as exc:
            log_event(
                self.logger,
                f"could not write import report: {exc}",
                level=logging.WARNING,
                run_id=result.run_id,
                stage=result.state,
                event="REPORT_WRITE_FAIL",
                status="error",
                error_code="REPORT_WRITE_FAIL",
            )

    def _run(self, run_id: str) -> ImportResult:
        started = time.monotonic()
        feature_count = 0
        rejected: list[RejectionReason] = []

        try:
            self._enter("validating", run_id)
            self.repository.check_ready()

            self._enter("fetching", run_id)
            features = self.source.fetch()
            feature_count = len(features)

            self._enter("transforming", run_id)
            transformed = transform_features(features)
            rejected = transformed.rejected
            self._log_rejections(run_id, rejected)

            if not transformed.stations:
                report = UpsertReport()
                log_event(
                    self.logger,
                    "no valid stations, nothing to persist",
                    run_id=run_id,
                    stage="transforming",
                    event="CYCLE_EMPTY",
                    status="ok",
                    rows_in=feature_count,
                    rows_out=0,
                )
            else:
                self._enter("persisting", run_id)
                report = self.repository.upsert(transformed.stations)
        except GasStationError as exc:
            return self._failed(run_id, started, feature_count, rejected, exc.error_code, exc)
        except Exception as exc:
            return self._failed(run_id, started, feature_count, rejected, "UNEXPECTED_ERROR", exc)

        self.state = "done"
        duration = elapsed_ms(started)
        log_event(
            self.logger,
            f"import done: {report.imported} imported, {report.skipped} skipped, {len(rejected)} rejected",
            run_id=run_id,
            stage="done",
            event="CYCLE_END",
            status="ok",
            duration_ms=duration,
            rows_in=feature_count,
            rows_out=report.imported,
        )
        return ImportResult(
            run_id=run_id,
            status="done",
            state="done",
            features=feature_count,
            rejected=tuple(rejected),
            report=report,
            duration_ms=duration,
        )

    def _failed(
        self,
        run_id: str,
        started: float,
        feature_count: int,
        rejected: list[RejectionReason],
        error_code: str,
        exc: BaseException,
    ) -> ImportResult:
        failed_stage = self.state
        self.state = "failed"
        duration = elapsed_ms(started)
        log_event(
            self.logger,
            f"import failed while {failed_stage}: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            stage=failed_stage,
            event="CYCLE_FAIL",
            status="error",
            error_code=error_code,
            duration_ms=duration,
            exc_info=error_code == "UNEXPECTED_ERROR",
        )
        return ImportResult(
            run_id=run_id,
            status="failed",
            state="failed",
            features=feature_count,
            rejected=tuple(rejected),
            error_code=error_code,
            error=f"{failed_stage}: {exc}",
            duration_ms=duration,
        )
