"""Pydantic schemas for raw detector findings and the stack frames they carry."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# Reusable severity levels for validation and type safety across schemas.
SeverityLevel = Literal["low", "medium", "high", "critical"]

SEVERITY_VALUES: frozenset[str] = frozenset({"low", "medium", "high", "critical"})

# Severity aliases (case-insensitive) -> canonical level.
_SEVERITY_ALIASES: dict[str, SeverityLevel] = {
    "critical": "critical",
    "crit": "critical",
    "high": "high",
    "medium": "medium",
    "med": "medium",
    "moderate": "medium",
    "low": "low",
    "info": "low",
    "informational": "low",
}


def normalize_severity(value: str | None) -> SeverityLevel | None:
    """Map a detector-supplied severity to a canonical level; None when unknown."""
    if not value or not isinstance(value, str) or not value.strip():
        return None
    return _SEVERITY_ALIASES.get(value.strip().lower())


class StackFrame(BaseModel):
    """One frame of a call chain, innermost first. Missing fields degrade to defaults."""

    model_config = {"extra": "ignore"}

    file: str = Field(default="unknown", description="Absolute or relative source path.")
    line: int = Field(default=0, ge=0, description="Line number; 0 when unknown.")
    function: str = Field(default="unknown", description="Function name.")
    cls: str | None = Field(default=None, description="Owning class, when known.")

    @field_validator("file", "function", mode="before")
    @classmethod
    def default_blank_to_unknown(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "unknown"
        return v if isinstance(v, str) else str(v)

    @field_validator("line", mode="before")
    @classmethod
    def coerce_line(cls, v: Any) -> int:
        try:
            line = int(v)
        except (TypeError, ValueError):
            return 0
        return line if line >= 0 else 0


class RawFinding(BaseModel):
    """
    One detection event produced by a detector, before deduplication.

    Only message is required. title/description override the message-derived values;
    details is either a structured mapping or free text and takes part in the issue
    fingerprint. context carries free-form forensic data and is not fingerprinted.
    """

    model_config = {"extra": "ignore"}

    message: str = Field(..., min_length=1, description="Human-readable detection message.")
    title: str | None = Field(default=None, description="Explicit issue title.")
    description: str | None = Field(default=None, description="Explicit issue description.")
    severity: SeverityLevel | None = Field(
        default=None,
        description="Severity hint; when absent the classifier decides.",
    )
    type: str | None = Field(default=None, max_length=50, description="Issue type hint.")
    file_path: str | None = Field(default=None, description="Affected file, if any.")
    ip_address: str | None = Field(default=None, max_length=45, description="Source IP, if any.")
    user_agent: str | None = Field(default=None, description="Client user agent, if any.")
    backtrace: list[StackFrame] | None = Field(
        default=None,
        description="Call chain at the detection point, innermost first.",
    )
    details: dict[str, Any] | str | None = Field(
        default=None,
        description="Detector-specific payload; part of the issue fingerprint.",
    )
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Forensic context and other non-identifying data.",
    )
    phase: Literal["trigger", "scan"] | None = Field(
        default=None,
        description="For hybrid detectors: which phase produced the finding.",
    )

    @field_validator("severity", mode="before")
    @classmethod
    def validate_severity(cls, v: Any) -> SeverityLevel | None:
        if v is None:
            return None
        # Unknown severities are dropped rather than rejected; the classifier fills them in.
        return normalize_severity(str(v))
