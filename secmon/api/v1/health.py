"""Health check endpoint with database connectivity and service summary."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from secmon.api.v1.deps import get_services
from secmon.core.container import Services
from secmon.core.database import check_db_connected, get_db
from secmon.schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def get_health(
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
) -> HealthResponse:
    """Unauthenticated; used by load balancers and monitoring."""
    return HealthResponse(
        environment=services.settings.APP_ENV,
        database="connected" if check_db_connected(db) else "disconnected",
        channels_enabled=[c.name for c in services.registry.enabled()],
        detectors=len(services.orchestrator.detectors),
        run_in_progress=services.orchestrator.is_running,
    )
