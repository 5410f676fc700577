"""Dashboard counters."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from secmon.api.v1.auth import get_current_user
from secmon.api.v1.deps import get_services
from secmon.core.container import Services
from secmon.core.database import get_db
from secmon.schemas.auth import CurrentUser
from secmon.schemas.issues import IssueStats

router = APIRouter()


@router.get("", response_model=IssueStats)
def get_stats(
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueStats:
    return services.ledger.get_stats(db)
