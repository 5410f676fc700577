"""Issue ledger endpoints: listing, detail and operator triage actions."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from secmon.api.v1.auth import get_current_user
from secmon.api.v1.deps import get_services, http_error
from secmon.core.container import Services
from secmon.core.database import get_db
from secmon.core.exceptions import SecmonError
from secmon.schemas.auth import CurrentUser
from secmon.schemas.ignore_rules import IgnoreRuleOut
from secmon.schemas.issues import (
    CreateRuleFromIssueRequest,
    IgnoreIssueRequest,
    IssueListResponse,
    IssueOut,
    IssueQuery,
    IssueStatusRequest,
    ResolveIssueRequest,
)

router = APIRouter()


@router.get("", response_model=IssueListResponse)
def list_issues(
    query: Annotated[IssueQuery, Query()],
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueListResponse:
    """
    Paginated issue listing. Ignored issues are hidden unless include_ignored=true or
    status=ignored is requested; search matches title, description and file path.
    """
    if query.status == "ignored":
        query = query.model_copy(update={"include_ignored": True})
    return services.ledger.list_issues(db, query)


@router.get("/{issue_id}", response_model=IssueOut)
def get_issue(
    issue_id: int,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueOut:
    try:
        return IssueOut.model_validate(services.ledger.get_issue(db, issue_id))
    except SecmonError as e:
        raise http_error(e) from e


@router.post("/{issue_id}/viewed", response_model=IssueOut)
def mark_viewed(
    issue_id: int,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueOut:
    try:
        return IssueOut.model_validate(services.ledger.mark_viewed(db, issue_id, actor=user.id))
    except SecmonError as e:
        raise http_error(e) from e


@router.delete("/{issue_id}/viewed", response_model=IssueOut)
def unmark_viewed(
    issue_id: int,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueOut:
    try:
        return IssueOut.model_validate(services.ledger.unmark_viewed(db, issue_id))
    except SecmonError as e:
        raise http_error(e) from e


@router.post("/{issue_id}/ignore", response_model=IssueOut)
def ignore_issue(
    issue_id: int,
    body: IgnoreIssueRequest,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueOut:
    try:
        issue = services.ledger.ignore(db, issue_id, body.reason, actor=user.id)
    except SecmonError as e:
        raise http_error(e) from e
    return IssueOut.model_validate(issue)


@router.post("/{issue_id}/unignore", response_model=IssueOut)
def unignore_issue(
    issue_id: int,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueOut:
    try:
        return IssueOut.model_validate(services.ledger.unignore(db, issue_id))
    except SecmonError as e:
        raise http_error(e) from e


@router.post("/{issue_id}/resolve", response_model=IssueOut)
def resolve_issue(
    issue_id: int,
    body: ResolveIssueRequest,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueOut:
    try:
        issue = services.ledger.resolve(db, issue_id, body.notes, actor=user.id)
    except SecmonError as e:
        raise http_error(e) from e
    return IssueOut.model_validate(issue)


@router.put("/{issue_id}/status", response_model=IssueOut)
def set_issue_status(
    issue_id: int,
    body: IssueStatusRequest,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IssueOut:
    try:
        issue = services.ledger.set_status(db, issue_id, body.status, actor=user.id)
    except SecmonError as e:
        raise http_error(e) from e
    return IssueOut.model_validate(issue)


@router.post(
    "/{issue_id}/ignore-rule",
    response_model=IgnoreRuleOut,
    status_code=status.HTTP_201_CREATED,
)
def create_rule_from_issue(
    issue_id: int,
    body: CreateRuleFromIssueRequest,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IgnoreRuleOut:
    """Create an ignore rule from this issue's hash, file, IP, issuer or a title pattern, and ignore the issue."""
    try:
        rule = services.ledger.create_ignore_rule_from_issue(
            db,
            issue_id,
            body.rule_type,
            pattern=body.pattern,
            description=body.description,
            expires_days=body.expires_days,
            actor=user.id,
        )
    except SecmonError as e:
        raise http_error(e) from e
    return IgnoreRuleOut.model_validate(rule)
