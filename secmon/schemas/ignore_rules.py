"""Pydantic schemas for ignore-rule administration."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RuleType = Literal["hash", "issuer", "file", "ip", "pattern", "regex"]


class IgnoreRuleCreate(BaseModel):
    rule_type: RuleType
    rule_value: str = Field(..., min_length=1, max_length=2000)
    rule_name: str | None = Field(default=None, max_length=100)
    issuer_name: str | None = Field(default=None, max_length=100)
    issue_type: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=2000)
    expires_days: int | None = Field(default=None, ge=1, le=3650)


class IgnoreRuleUpdate(BaseModel):
    """Partial update; only fields that are set are changed."""

    rule_name: str | None = Field(default=None, min_length=1, max_length=100)
    rule_value: str | None = Field(default=None, min_length=1, max_length=2000)
    description: str | None = Field(default=None, max_length=2000)
    is_active: bool | None = None
    expires_days: int | None = Field(default=None, ge=1, le=3650)


class IgnoreRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rule_name: str
    rule_type: str
    rule_value: str
    issuer_name: str | None = None
    issue_type: str | None = None
    description: str | None = None
    is_active: bool
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    expires_at: datetime | None = None
    usage_count: int
    last_used_at: datetime | None = None


class IgnoreRuleListResponse(BaseModel):
    items: list[IgnoreRuleOut]
    total: int
    page: int
    per_page: int
