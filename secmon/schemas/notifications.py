"""Pydantic schemas for the notification queue."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TaskStatus = Literal["pending", "sent", "failed", "retry"]


class ProcessResult(BaseModel):
    """Counters for one process_pending pass."""

    processed: int = 0
    success: int = 0
    failed: int = 0
    retry: int = 0


class NotificationTaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    channel_name: str
    issue_id: int
    message: str
    context: dict[str, Any] | None = None
    status: str
    retry_count: int
    max_retries: int
    next_attempt_at: datetime | None = None
    last_attempt: datetime | None = None
    sent_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime | None = None


class NotificationTaskListResponse(BaseModel):
    items: list[NotificationTaskOut]
    total: int
    page: int
    per_page: int


class ProcessRequest(BaseModel):
    """Body for POST /notifications/process."""

    limit: int = Field(default=20, ge=1, le=1000)
