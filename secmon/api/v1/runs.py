"""Manual orchestrator trigger."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from secmon.api.v1.auth import require_admin
from secmon.api.v1.deps import get_services, http_error
from secmon.core.container import Services
from secmon.core.database import get_db
from secmon.core.exceptions import SecmonError
from secmon.schemas.auth import CurrentUser
from secmon.schemas.runs import RunReport, RunRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=RunReport)
def trigger_run(
    body: RunRequest,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
) -> RunReport:
    """
    Run all enabled detectors now. 409 while another run holds the lock, 429 when the
    previous run started less than ORCHESTRATOR_MIN_INTERVAL_SEC ago (unless force).
    """
    logger.info("Manual run requested", extra={"actor": admin.id, "force": body.force})
    try:
        report = services.orchestrator.run_once(force=body.force)
    except SecmonError as e:
        raise http_error(e) from e
    if body.process_notifications:
        services.queue.process_pending(db, limit=services.settings.NOTIFICATION_BATCH_SIZE)
    return report


@router.post("/cancel", status_code=202)
def cancel_run(
    services: Annotated[Services, Depends(get_services)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> dict[str, bool]:
    """Ask the active run in this process to stop before its next detector."""
    running = services.orchestrator.is_running
    if running:
        services.orchestrator.cancel()
    return {"running": running}
