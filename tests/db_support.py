"""Shared fixtures: in-memory database, fake channel and simple detectors."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_CHANNEL_ENABLED", "false")

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from secmon.channels.base import Channel
from secmon.detectors.base import Detector, IssuerClassification, ScheduledDetector
from secmon.models import Base
from secmon.schemas.findings import RawFinding


def make_session_factory() -> sessionmaker:
    """Fresh in-memory SQLite database shared by every session of the factory."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


class FakeChannel(Channel):
    """
    Records sends. results is consumed one per send: True/False is returned, an
    exception instance is raised. Availability is re-checked on every call.
    """

    message_style = "plain"
    connection_check_ttl = 0.0

    def __init__(self, name: str = "fake", available: bool = True, results: list[Any] | None = None) -> None:
        self.name = name
        self.available = available
        self.results = list(results or [])
        self.sent: list[tuple[str, dict[str, Any]]] = []
        super().__init__({"enabled": True})

    def check_connection(self) -> bool:
        return self.available

    def send(self, message: str, context: dict[str, Any]) -> bool:
        self.sent.append((message, context))
        outcome = self.results.pop(0) if self.results else True
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class StaticDetector(Detector):
    """Returns the same findings on every run."""

    def __init__(
        self,
        name: str,
        classification: IssuerClassification,
        findings: list[RawFinding | dict[str, Any]],
        priority: int = 10,
    ) -> None:
        super().__init__()
        self.name = name
        self.classification = classification
        self.priority = priority
        self.findings = findings
        self.calls = 0

    def detect(self) -> list[RawFinding]:
        self.calls += 1
        return list(self.findings)


class FailingDetector(Detector):
    classification = IssuerClassification.SCAN

    def __init__(self, name: str = "broken", error: Exception | None = None) -> None:
        super().__init__()
        self.name = name
        self.error = error or RuntimeError("scanner crashed")

    def detect(self) -> list[RawFinding]:
        raise self.error


class SweepDetector(ScheduledDetector):
    """Loadable by dotted path; reports one outdated-component finding per sweep."""

    name = "sweep"

    def scan(self) -> list[RawFinding]:
        return [RawFinding(message="Outdated component found", file_path="/srv/app/vendor/lib.py")]
