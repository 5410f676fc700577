"""Operator login and the auth dependencies (get_current_user, require_admin)."""

import logging
from typing import Annotated

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from secmon.core.config import get_settings
from secmon.core.database import get_db
from secmon.core.security import create_access_token, decode_access_token, verify_password
from secmon.models.user import User
from secmon.schemas.auth import (
    CurrentUser,
    LoginRequest,
    TokenResponse,
    UserListItem,
    UsersListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
security = HTTPBearer(auto_error=False)

ANONYMOUS_OPERATOR = CurrentUser(id=None, username="anonymous", role="admin")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """
    Exchange username and password for a bearer token.
    Send it as: Authorization: Bearer <access_token>
    """
    user = db.query(User).filter(User.username == body.username).first()
    if user is None or not verify_password(body.password, user.password_hash):
        logger.warning("Failed login", extra={"username": body.username})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password.",
        )
    minutes = get_settings().JWT_EXPIRE_MINUTES
    token = create_access_token(sub=user.id, role=user.role, expire_minutes=minutes)
    return TokenResponse(access_token=token, expires_in=minutes * 60)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> CurrentUser:
    """Resolve the operator from the bearer token. 401 when missing or invalid."""
    if not get_settings().AUTH_ENABLED:
        return ANONYMOUS_OPERATOR
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError:
        raise _unauthorized("Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token payload")
    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return CurrentUser(id=user.id, username=user.username, role=user.role)


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """403 unless the operator has the admin role."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


@router.get("/users", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    users = db.query(User).order_by(User.id).all()
    return UsersListResponse(users=[UserListItem.model_validate(u) for u in users])
