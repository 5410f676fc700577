"""
Detection orchestrator.

One run walks the enabled detectors in priority order, records every finding in the
ledger and queues notifications according to each detector's cadence policy. A
failing detector is logged (and optionally recorded as a system_error issue) without
aborting the run; a finding that cannot be persisted is logged and skipped.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from secmon.core.exceptions import RunInProgressError
from secmon.detectors.base import Detector
from secmon.models import Issue
from secmon.schemas.findings import RawFinding
from secmon.schemas.runs import RunReport
from secmon.services.dispatch import NotificationQueue
from secmon.services.forensics import ForensicCollector
from secmon.services.ledger import IssueLedger
from secmon.services.options import OptionStore
from secmon.services.run_guard import RunGuard

logger = logging.getLogger(__name__)

SYSTEM_ISSUER = "system"
ERROR_TEXT_MAX_LENGTH = 500


class DetectionOrchestrator:
    """
    Runs detectors and feeds the ledger and the notification queue.

    run_guard: persistent throttle/lock shared across processes; without it only the
    in-process is_running flag prevents overlap.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ledger: IssueLedger,
        queue: NotificationQueue,
        collector: ForensicCollector,
        detectors: Iterable[Detector] | None = None,
        run_guard: RunGuard | None = None,
        options: OptionStore | None = None,
        record_detector_errors: bool = True,
    ) -> None:
        self.session_factory = session_factory
        self.ledger = ledger
        self.queue = queue
        self.collector = collector
        self.run_guard = run_guard
        self.options = options
        self.record_detector_errors = record_detector_errors
        self._detectors: dict[str, Detector] = {}
        self._state_lock = threading.Lock()
        self._running = False
        self._cancel = threading.Event()
        for detector in detectors or []:
            self.register(detector)

    def register(self, detector: Detector) -> None:
        if not detector.name:
            raise ValueError(f"{type(detector).__name__} has no name")
        if detector.name == SYSTEM_ISSUER:
            raise ValueError(f"Detector name '{SYSTEM_ISSUER}' is reserved")
        self._detectors[detector.name] = detector

    @property
    def detectors(self) -> list[Detector]:
        """Registered detectors in run order (priority, then registration order)."""
        return sorted(self._detectors.values(), key=lambda d: d.priority)

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Ask the current run to stop before the next detector."""
        self._cancel.set()

    def run_once(self, *, force: bool = False) -> RunReport:
        """
        Execute one run.

        Raises RunInProgressError when a run is active (in this process or, via the
        run guard, in another) and RunThrottledError when the previous run started less
        than the minimum interval ago. force bypasses only the interval.
        """
        with self._state_lock:
            if self._running:
                raise RunInProgressError("An orchestrator run is already in progress.")
            self._running = True
            self._cancel.clear()
        try:
            token = self.run_guard.acquire(force=force) if self.run_guard else None
            try:
                return self._run()
            finally:
                if token is not None:
                    self.run_guard.release(token)
        finally:
            with self._state_lock:
                self._running = False

    def _run(self) -> RunReport:
        report = RunReport(started_at=datetime.now(timezone.utc))
        logger.info("Orchestrator run started", extra={"detectors": len(self._detectors)})
        with self.session_factory() as session:
            for detector in self._enabled_detectors(session):
                if self._cancel.is_set():
                    report.cancelled = True
                    logger.warning("Orchestrator run cancelled")
                    break
                report.detectors_run += 1
                try:
                    findings = detector.detect() or []
                except Exception as e:
                    report.detectors_failed.append(detector.name)
                    logger.error(
                        "Detector failed",
                        extra={"detector": detector.name, "error": str(e)[:ERROR_TEXT_MAX_LENGTH]},
                        exc_info=True,
                    )
                    if self.record_detector_errors:
                        self._record_detector_error(session, detector, e, report)
                    continue
                for finding in findings:
                    self._handle_finding(session, detector, finding, report)
        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Orchestrator run finished",
            extra={
                "detectors_run": report.detectors_run,
                "detectors_failed": len(report.detectors_failed),
                "created": report.created,
                "redetected": report.redetected,
                "suppressed": report.suppressed,
                "notifications_queued": report.notifications_queued,
            },
        )
        return report

    def report(self, detector: Detector, findings: Iterable[RawFinding | dict[str, Any]]) -> RunReport:
        """
        Push findings from an event-driven detector outside a scheduled run.

        Uses the same record and notification path as run_once() but takes no run
        lock, so real-time events are never throttled.
        """
        report = RunReport(started_at=datetime.now(timezone.utc))
        with self.session_factory() as session:
            for finding in findings:
                self._handle_finding(session, detector, finding, report)
        report.finished_at = datetime.now(timezone.utc)
        return report

    def _enabled_detectors(self, session: Session) -> list[Detector]:
        enabled = []
        for detector in self.detectors:
            override = self.options.detector_enabled(session, detector.name) if self.options else None
            is_enabled = detector.is_enabled() if override is None else override
            if is_enabled:
                enabled.append(detector)
        return enabled

    def _handle_finding(
        self,
        session: Session,
        detector: Detector,
        finding: RawFinding | dict[str, Any],
        report: RunReport,
    ) -> None:
        report.findings += 1
        if not isinstance(finding, RawFinding):
            try:
                finding = RawFinding.model_validate(finding)
            except ValidationError as e:
                report.errors += 1
                logger.warning(
                    "Discarding malformed finding",
                    extra={"detector": detector.name, "error": str(e)[:ERROR_TEXT_MAX_LENGTH]},
                )
                return
        finding = self._with_forensics(detector, finding)

        try:
            outcome = self.ledger.record(session, detector.name, finding)
        except Exception as e:
            session.rollback()
            report.errors += 1
            logger.error(
                "Failed to record finding",
                extra={"detector": detector.name, "error": str(e)[:ERROR_TEXT_MAX_LENGTH]},
                exc_info=True,
            )
            return

        if outcome.suppressed:
            report.suppressed += 1
            return
        if outcome.created:
            report.created += 1
        else:
            report.redetected += 1
        if detector.should_notify(outcome.created, finding):
            self._notify(session, outcome.issue_id, detector.name, report)

    def _with_forensics(self, detector: Detector, finding: RawFinding) -> RawFinding:
        forensic = self.collector.collect(
            detector.classification,
            phase=finding.phase,
            frames=finding.backtrace,
        )
        context = dict(finding.context)
        context["forensic"] = forensic.model_dump(mode="json")
        return finding.model_copy(update={"context": context})

    def _notify(self, session: Session, issue_id: int, detector_name: str, report: RunReport) -> None:
        try:
            issue = session.get(Issue, issue_id)
            if issue is None:
                return
            report.notifications_queued += len(
                self.queue.enqueue_issue(session, issue, detector_name)
            )
        except Exception as e:
            session.rollback()
            report.errors += 1
            logger.error(
                "Failed to queue notification",
                extra={"issue_id": issue_id, "error": str(e)[:ERROR_TEXT_MAX_LENGTH]},
                exc_info=True,
            )

    def _record_detector_error(
        self,
        session: Session,
        detector: Detector,
        error: Exception,
        report: RunReport,
    ) -> None:
        finding = RawFinding(
            message=f"Detector '{detector.name}' failed: {type(error).__name__}",
            title=f"Detector failure: {detector.name}",
            description=str(error)[:ERROR_TEXT_MAX_LENGTH] or type(error).__name__,
            type="system_error",
            severity="high",
            details={"detector": detector.name, "error_type": type(error).__name__},
        )
        try:
            outcome = self.ledger.record(session, SYSTEM_ISSUER, finding)
        except Exception:
            session.rollback()
            logger.error(
                "Failed to record detector failure",
                extra={"detector": detector.name},
                exc_info=True,
            )
            return
        if outcome.created:
            self._notify(session, outcome.issue_id, SYSTEM_ISSUER, report)
