"""
Encroachment Auditor — Scheduler
=================================
Wraps :class:`~encroachment_auditor.orchestrator.AuditOrchestrator` in a
``schedule``-based loop that audits a fixed list of targets on every tick,
so the auditor can run as a background surveillance service.

Usage::

    from encroachment_auditor.config import AuditorSettings
    from encroachment_auditor.orchestrator import AuditOrchestrator
    from encroachment_auditor.scheduler import AuditScheduler, ScanTarget

    orchestrator = AuditOrchestrator.from_settings(AuditorSettings.from_env())
    targets = [ScanTarget(28.545, 77.300, "DELHI", "Yamuna Floodplain (Okhla)")]
    # Scan every 30 minutes until Ctrl-C
    AuditScheduler(orchestrator, targets, interval_minutes=30).start()
"""

from __future__ import annotations

import logging
import signal
import time
from dataclasses import dataclass

import schedule

from encroachment_auditor.orchestrator import AuditOrchestrator, OrchestrationResult

logger = logging.getLogger("geoaudit.encroachment_auditor.scheduler")


@dataclass(frozen=True)
class ScanTarget:
    """A coordinate audited on every tick."""

    lat: float
    lng: float
    state_code: str | None = None
    label: str = "Target Sector"


class AuditScheduler:
    """Schedule repeated audits of a list of :class:`ScanTarget`.

    Intercepts SIGINT/SIGTERM for graceful shutdown so the in-progress tick
    completes before the loop exits.  Each audit is independent; an
    ``ERROR`` result or unexpected exception is logged and the loop goes on.

    Args:
        orchestrator: Configured orchestrator.
        targets: Coordinates to audit each tick.
        interval_minutes: Minutes between ticks (``>= 1``).
        run_immediately: Run one tick on :meth:`start` before scheduling.
    """

    def __init__(
        self,
        orchestrator: AuditOrchestrator,
        targets: list[ScanTarget],
        interval_minutes: int = 60,
        *,
        run_immediately: bool = True,
    ) -> None:
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be ≥ 1")
        if not targets:
            raise ValueError("at least one ScanTarget is required")
        self.orchestrator = orchestrator
        self.targets = list(targets)
        self.interval_minutes = interval_minutes
        self.run_immediately = run_immediately
        self.last_results: list[OrchestrationResult] = []
        self._running = False

    def run_tick(self) -> list[OrchestrationResult]:
        """Audit every target once, keeping the loop alive on failure."""
        results: list[OrchestrationResult] = []
        for target in self.targets:
            try:
                result = self.orchestrator.run_audit(target.lat, target.lng, target.state_code)
            except Exception as exc:  # noqa: BLE001
                logger.error("Scheduled audit of %s failed: %s", target.label, exc)
                continue
            logger.info("%s: %s (%s)", target.label, result.status.value, result.message)
            results.append(result)
        self.last_results = results
        return results

    def stop(self) -> None:
        self._running = False

    def start(self) -> None:
        """Begin the scheduling loop (blocking).

        Runs until interrupted by SIGINT (Ctrl-C), SIGTERM or :meth:`stop`.
        """
        self._running = True

        def _shutdown(signum: int, frame: object) -> None:
            logger.info("Received signal %d, stopping scheduler...", signum)
            self._running = False

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)

        if self.run_immediately:
            logger.info("Running initial scan of %d target(s)...", len(self.targets))
            self.run_tick()

        job = schedule.every(self.interval_minutes).minutes.do(self.run_tick)
        logger.info(
            "Scheduler started: scanning every %d minute(s). Press Ctrl-C to stop.",
            self.interval_minutes,
        )

        try:
            while self._running:
                schedule.run_pending()
                time.sleep(1)
        finally:
            schedule.cancel_job(job)
            logger.info("Scheduler stopped.")
