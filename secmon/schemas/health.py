"""Pydantic schemas for health check responses."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str = Field(description="Current app environment (dev or prod)")
    database: Literal["connected", "disconnected"] | None = None
    channels_enabled: list[str] = Field(default_factory=list)
    detectors: int = Field(default=0, description="Registered detectors")
    run_in_progress: bool = False
