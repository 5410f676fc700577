"""Pydantic request/response schemas."""

from secmon.schemas.channels import ChannelInfo, ConnectionTestResult
from secmon.schemas.findings import RawFinding, SeverityLevel, StackFrame
from secmon.schemas.forensics import ForensicContext, RequestContext
from secmon.schemas.health import HealthResponse
from secmon.schemas.ignore_rules import IgnoreRuleCreate, IgnoreRuleOut
from secmon.schemas.issues import IssueListResponse, IssueOut, IssueQuery, IssueStats, RecordOutcome
from secmon.schemas.notifications import NotificationTaskOut, ProcessResult
from secmon.schemas.runs import RunReport

__all__ = [
    "ChannelInfo",
    "ConnectionTestResult",
    "ForensicContext",
    "HealthResponse",
    "IgnoreRuleCreate",
    "IgnoreRuleOut",
    "IssueListResponse",
    "IssueOut",
    "IssueQuery",
    "IssueStats",
    "NotificationTaskOut",
    "ProcessResult",
    "RawFinding",
    "RecordOutcome",
    "RequestContext",
    "RunReport",
    "SeverityLevel",
    "StackFrame",
]
