"""Pydantic schemas for orchestrator runs."""

from datetime import datetime

from pydantic import BaseModel, Field


class RunReport(BaseModel):
    """Summary of one orchestrator run (or one real-time report batch)."""

    started_at: datetime
    finished_at: datetime | None = None
    detectors_run: int = 0
    detectors_failed: list[str] = Field(default_factory=list)
    findings: int = 0
    created: int = 0
    redetected: int = 0
    suppressed: int = 0
    errors: int = Field(default=0, description="Findings dropped by persistence or validation errors.")
    notifications_queued: int = 0
    cancelled: bool = False


class RunRequest(BaseModel):
    """Body for POST /runs."""

    force: bool = Field(default=False, description="Skip the minimum-interval throttle.")
    process_notifications: bool = Field(
        default=False,
        description="Process the notification queue after the run.",
    )
