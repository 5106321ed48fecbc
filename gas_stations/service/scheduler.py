"""Recurring import trigger with an explicit lifecycle."""

from __future__ import annotations

import logging
import threading

from gas_stations.common.constants import DEFAULT_IMPORT_INTERVAL_SECONDS
from gas_stations.common.logging import get_logger, log_event
from gas_stations.common.models import ImportResult


class ImportScheduler:
    def __init__(
        self,
        orchestrator,
        *,
        interval_seconds: float = DEFAULT_IMPORT_INTERVAL_SECONDS,
        run_on_start: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self.logger = logger or get_logger("scheduler")
        self.last_result: ImportResult | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lifecycle = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lifecycle:
            if self.running:
                return
            # Each thread owns its stop event; one outliving stop(timeout) keeps it set.
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._loop, args=(self._stop,), name="gas-stations-import", daemon=True
            )
            self._thread.start()
        log_event(self.logger, "scheduler started", event="SCHEDULER_START", status="ok")

    def stop(self, timeout: float | None = None) -> None:
        with self._lifecycle:
            thread = self._thread
            self._stop.set()
            self._thread = None
        if thread is not None:
            thread.join(timeout)
            log_event(self.logger, "scheduler stopped", event="SCHEDULER_STOP", status="ok")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stop() is called; returns True once stopped."""
        return self._stop.wait(timeout)

    def trigger(self) -> ImportResult:
        result = self.orchestrator.run_cycle()
        if result.status != "busy":
            self.last_result = result
        return result

    def _tick(self) -> None:
        try:
            self.trigger()
        except Exception:
            log_event(
                self.logger,
                "scheduled import raised",
                level=logging.ERROR,
                exc_info=True,
                event="SCHEDULER_TICK_FAIL",
                status="error",
                error_code="UNEXPECTED_ERROR",
            )

    def _loop(self, stop: threading.Event) -> None:
        if self.run_on_start and not stop.is_set():
            self._tick()
        while not stop.wait(self.interval_seconds):
            self._tick()
