"""Pydantic schemas for forensic context snapshots attached to findings."""

from typing import Any, Literal

from pydantic import BaseModel, Field

ContextLevel = Literal["full_forensic", "selective_forensic", "minimal_forensic"]
ExecutionContextType = Literal["REQUEST", "CLI", "CRON", "SCRIPT"]
FrameSource = Literal["module", "plugin", "core", "internal", "external", "unknown"]


class RequestContext(BaseModel):
    """HTTP request facts captured by the request-context middleware."""

    method: str = "unknown"
    path: str = "unknown"
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Request headers with lowercased names.",
    )
    client_host: str | None = None
    started_at: float | None = Field(default=None, description="Epoch seconds at request start.")
    user_id: int | None = None
    username: str | None = None


class CallFrame(BaseModel):
    """One classified frame of a captured call chain."""

    frame: int
    file: str = "unknown"
    line: int = 0
    function: str = "unknown"
    cls: str | None = None
    file_relative: str = "unknown"
    source_type: FrameSource = "unknown"
    package_name: str | None = None


class BacktraceInfo(BaseModel):
    total_frames: int = 0
    call_chain: list[CallFrame] = Field(default_factory=list)
    files_involved: list[str] = Field(default_factory=list)
    likely_source: str = "Unknown source"
    source_summary: str = "Unknown source"
    packages: list[str] = Field(default_factory=list)
    limited_trace: bool = False


class ExecutionContext(BaseModel):
    context_type: ExecutionContextType = "SCRIPT"
    source: str = "Direct Script Execution"
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    request_uri: str = "unknown"
    request_method: str | None = None
    http_host: str | None = None
    http_referer: str | None = None
    user_id: int | None = None
    username: str | None = None


class ForensicContext(BaseModel):
    """Snapshot attached to a finding's context under the 'forensic' key."""

    issuer_type: str
    detection_method: str
    context_level: ContextLevel
    timestamp: str
    execution_context: ExecutionContext
    backtrace_info: BacktraceInfo
    timing_info: dict[str, Any] | None = None
    memory_usage: int | None = None
    peak_memory: int | None = None
    scan_context: dict[str, Any] | None = None
