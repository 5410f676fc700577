"""Request/response schemas for operator login and the current-operator dependency."""

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")


class CurrentUser(BaseModel):
    """
    Operator resolved from the bearer token.

    id is None for the anonymous operator used when AUTH_ENABLED is false; actions
    taken by it are recorded without an actor.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int | None
    username: str
    role: str


class UserListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    role: str


class UsersListResponse(BaseModel):
    users: list[UserListItem]
