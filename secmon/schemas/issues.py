"""Pydantic schemas for the issue ledger: record outcomes, list queries and API payloads."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

IssueStatus = Literal["new", "investigating", "resolved", "ignored", "false_positive"]
RecordStatus = Literal["created", "redetected", "suppressed"]

# Rule types an operator can derive from an existing issue.
IssueRuleType = Literal["hash", "file", "ip", "issuer", "pattern"]

# Columns accepted for ordering the issue listing.
OrderColumn = Literal[
    "last_detected",
    "first_detected",
    "detection_count",
    "severity",
    "status",
    "issuer_name",
    "id",
]


class RecordOutcome(BaseModel):
    """Result of recording one finding in the ledger."""

    status: RecordStatus
    issue_id: int | None = Field(default=None, description="Unset when suppressed.")
    issue_hash: str
    line_code_hash: str

    @property
    def suppressed(self) -> bool:
        return self.status == "suppressed"

    @property
    def created(self) -> bool:
        return self.status == "created"


class IssueQuery(BaseModel):
    """Filters, ordering and pagination for the issue listing."""

    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1, le=200)
    status: IssueStatus | None = None
    severity: Literal["low", "medium", "high", "critical"] | None = None
    issuer: str | None = Field(default=None, max_length=100)
    search: str | None = Field(default=None, max_length=200)
    order_by: OrderColumn = "last_detected"
    order: Literal["asc", "desc"] = "desc"
    include_ignored: bool = False


class IssueOut(BaseModel):
    """Issue as returned by the admin API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    issue_hash: str
    line_code_hash: str
    issuer_name: str
    issue_type: str
    severity: str
    status: str
    title: str
    description: str | None = None
    details: str | None = None
    backtrace: list[dict[str, Any]] | None = None
    file_path: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    first_detected: datetime
    last_detected: datetime
    detection_count: int
    is_ignored: bool
    viewed: bool
    viewed_by: int | None = None
    viewed_at: datetime | None = None
    ignored_by: int | None = None
    ignored_at: datetime | None = None
    ignore_reason: str | None = None
    resolved_by: int | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    extra_metadata: dict[str, Any] | None = Field(default=None, serialization_alias="metadata")


class IssueListResponse(BaseModel):
    """Paginated issue listing."""

    items: list[IssueOut]
    total: int
    pages: int
    page: int
    per_page: int


class IgnoreIssueRequest(BaseModel):
    reason: str = Field(default="", max_length=2000)


class ResolveIssueRequest(BaseModel):
    notes: str = Field(default="", max_length=5000)


class IssueStatusRequest(BaseModel):
    status: Literal["new", "investigating", "resolved", "false_positive"]


class CreateRuleFromIssueRequest(BaseModel):
    """Body for POST /issues/{id}/ignore-rule."""

    rule_type: IssueRuleType
    pattern: str | None = Field(
        default=None,
        max_length=500,
        description="For pattern rules; defaults to the issue title.",
    )
    description: str | None = Field(default=None, max_length=2000)
    expires_days: int | None = Field(default=None, ge=1, le=3650)


class IssueStats(BaseModel):
    """Aggregate counters for the dashboard."""

    total_issues: int
    new_issues: int
    ignored_issues: int
    resolved_issues: int
    by_severity: dict[str, int]
    by_issuer: dict[str, int]
    total_ignore_rules: int
    active_ignore_rules: int
    issues_last_24h: int
    issues_last_7d: int
