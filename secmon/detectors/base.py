"""
Detector contract.

A detector inspects one aspect of the monitored application and returns RawFindings.
Its classification decides forensic depth and notification cadence:

- TRIGGER: discrete real-time events; every occurrence is notified.
- SCAN: periodic sweeps of standing conditions; only first detection is notified.
- HYBRID: both; findings tagged phase="trigger" behave like TRIGGER, others like SCAN.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from secmon.schemas.findings import RawFinding


class IssuerClassification(str, Enum):
    TRIGGER = "trigger"
    SCAN = "scan"
    HYBRID = "hybrid"


class Detector(ABC):
    """
    Base class for all detectors.

    Subclasses set name (unique, used as issuer_name) and classification, and
    implement detect(). Lower priority values run first.
    """

    name: str = ""
    classification: IssuerClassification = IssuerClassification.SCAN
    priority: int = 10

    def __init__(self, enabled: bool = True, config: dict[str, Any] | None = None) -> None:
        self.enabled = enabled
        self.config: dict[str, Any] = dict(config or {})

    def configure(self, config: dict[str, Any]) -> None:
        self.config.update(config)

    def is_enabled(self) -> bool:
        return self.enabled

    @abstractmethod
    def detect(self) -> list[RawFinding]:
        """Run one detection pass. May raise; the orchestrator isolates failures."""

    def should_notify(self, created: bool, finding: RawFinding) -> bool:
        """Cadence policy for one recorded (non-suppressed) finding."""
        if created:
            return True
        return self.effective_classification(finding) is IssuerClassification.TRIGGER

    def effective_classification(self, finding: RawFinding | None = None) -> IssuerClassification:
        """Classification for one finding, resolving HYBRID by the finding's phase."""
        if self.classification is IssuerClassification.HYBRID:
            if finding is not None and finding.phase == "trigger":
                return IssuerClassification.TRIGGER
            return IssuerClassification.SCAN
        return self.classification

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} priority={self.priority}>"


class RealtimeDetector(Detector):
    """
    Event-driven detector. Application hooks call emit(); pending findings are drained
    by detect() on the next run, or pushed immediately through the orchestrator's
    report() path.
    """

    classification = IssuerClassification.TRIGGER

    def __init__(self, enabled: bool = True, config: dict[str, Any] | None = None) -> None:
        super().__init__(enabled=enabled, config=config)
        self._pending: list[RawFinding] = []

    def emit(self, finding: RawFinding) -> None:
        self._pending.append(finding)

    def detect(self) -> list[RawFinding]:
        drained, self._pending = self._pending, []
        return drained


class ScheduledDetector(Detector):
    """Periodic sweep detector; subclasses implement scan()."""

    classification = IssuerClassification.SCAN

    @abstractmethod
    def scan(self) -> list[RawFinding]:
        """Sweep once and return findings for conditions currently present."""

    def detect(self) -> list[RawFinding]:
        return self.scan()
