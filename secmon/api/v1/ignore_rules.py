"""Ignore-rule administration endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from secmon.api.v1.auth import get_current_user, require_admin
from secmon.api.v1.deps import http_error
from secmon.core.database import get_db
from secmon.core.exceptions import SecmonError
from secmon.schemas.auth import CurrentUser
from secmon.schemas.ignore_rules import (
    IgnoreRuleCreate,
    IgnoreRuleListResponse,
    IgnoreRuleOut,
    IgnoreRuleUpdate,
    RuleType,
)
from secmon.services import ignore_rules

router = APIRouter()


@router.get("", response_model=IgnoreRuleListResponse)
def list_rules(
    db: Annotated[Session, Depends(get_db)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
    rule_type: RuleType | None = None,
    issuer_name: str | None = Query(default=None, max_length=100),
    active: bool | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=200),
) -> IgnoreRuleListResponse:
    rows, total = ignore_rules.list_rules(
        db,
        rule_type=rule_type,
        issuer_name=issuer_name,
        active=active,
        page=page,
        per_page=per_page,
    )
    return IgnoreRuleListResponse(
        items=[IgnoreRuleOut.model_validate(r) for r in rows],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("", response_model=IgnoreRuleOut, status_code=status.HTTP_201_CREATED)
def create_rule(
    body: IgnoreRuleCreate,
    db: Annotated[Session, Depends(get_db)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
) -> IgnoreRuleOut:
    """Create a rule. regex rules are matched case-insensitively against the issue title."""
    try:
        rule = ignore_rules.create_rule(db, **body.model_dump(), created_by=admin.id)
    except SecmonError as e:
        raise http_error(e) from e
    return IgnoreRuleOut.model_validate(rule)


@router.get("/{rule_id}", response_model=IgnoreRuleOut)
def get_rule(
    rule_id: int,
    db: Annotated[Session, Depends(get_db)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> IgnoreRuleOut:
    try:
        return IgnoreRuleOut.model_validate(ignore_rules.get_rule(db, rule_id))
    except SecmonError as e:
        raise http_error(e) from e


@router.patch("/{rule_id}", response_model=IgnoreRuleOut)
def update_rule(
    rule_id: int,
    body: IgnoreRuleUpdate,
    db: Annotated[Session, Depends(get_db)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> IgnoreRuleOut:
    try:
        rule = ignore_rules.update_rule(db, rule_id, **body.model_dump(exclude_unset=True))
    except SecmonError as e:
        raise http_error(e) from e
    return IgnoreRuleOut.model_validate(rule)


@router.post("/{rule_id}/deactivate", response_model=IgnoreRuleOut)
def deactivate_rule(
    rule_id: int,
    db: Annotated[Session, Depends(get_db)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> IgnoreRuleOut:
    try:
        return IgnoreRuleOut.model_validate(ignore_rules.set_rule_active(db, rule_id, False))
    except SecmonError as e:
        raise http_error(e) from e


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    db: Annotated[Session, Depends(get_db)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> Response:
    try:
        ignore_rules.delete_rule(db, rule_id)
    except SecmonError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
