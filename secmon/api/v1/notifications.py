"""Notification queue endpoints: inspect tasks, process the queue, re-queue a task."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from secmon.api.v1.auth import get_current_user, require_admin
from secmon.api.v1.deps import get_services, http_error
from secmon.core.container import Services
from secmon.core.database import get_db
from secmon.core.exceptions import SecmonError
from secmon.schemas.auth import CurrentUser
from secmon.schemas.notifications import (
    NotificationTaskListResponse,
    NotificationTaskOut,
    ProcessRequest,
    ProcessResult,
    TaskStatus,
)

router = APIRouter()


@router.get("", response_model=NotificationTaskListResponse)
def list_tasks(
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
    status: TaskStatus | None = None,
    channel: str | None = Query(default=None, max_length=50),
    issue_id: int | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=200),
) -> NotificationTaskListResponse:
    return services.queue.list_tasks(
        db,
        status=status,
        channel_name=channel,
        issue_id=issue_id,
        page=page,
        per_page=per_page,
    )


@router.post("/process", response_model=ProcessResult)
def process_queue(
    body: ProcessRequest,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> ProcessResult:
    """Send due tasks now instead of waiting for the scheduled run."""
    return services.queue.process_pending(db, limit=body.limit)


@router.post("/{task_id}/retry", response_model=NotificationTaskOut)
def retry_task(
    task_id: int,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> NotificationTaskOut:
    """Reset a failed or retrying task to pending with a fresh retry budget."""
    try:
        task = services.queue.retry_task(db, task_id)
    except SecmonError as e:
        raise http_error(e) from e
    return NotificationTaskOut.model_validate(task)
