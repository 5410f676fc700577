"""Severity and issue-type classification for findings.

Detectors may tag severity and type directly; when they do not, a keyword heuristic on
the title fills the gap. The heuristic is replaceable: the ledger accepts any object
implementing IssueClassifier.
"""

from typing import Protocol

from secmon.schemas.findings import RawFinding, SeverityLevel

DEFAULT_SEVERITY: SeverityLevel = "medium"
DEFAULT_ISSUE_TYPE = "unknown"

# Title keyword -> issue type; checked in order, first hit wins.
_TYPE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("redirect", "redirect"),
    ("login", "login"),
    ("file", "file_change"),
    ("malware", "malware"),
    ("brute", "brute_force"),
)

_CRITICAL_KEYWORDS = ("malware", "backdoor", "eval")
_HIGH_KEYWORDS = ("brute force", "admin", "config")


class IssueClassifier(Protocol):
    """Assigns issue type and severity to a finding."""

    def issue_type(self, title: str, finding: RawFinding) -> str: ...

    def severity(self, issuer_name: str, title: str, finding: RawFinding) -> SeverityLevel: ...


class KeywordClassifier:
    """Explicit detector values first, then keyword matching on the lowercased title."""

    def issue_type(self, title: str, finding: RawFinding) -> str:
        if finding.type and finding.type.strip():
            return finding.type.strip()
        lowered = title.lower()
        for keyword, issue_type in _TYPE_KEYWORDS:
            if keyword in lowered:
                return issue_type
        return DEFAULT_ISSUE_TYPE

    def severity(self, issuer_name: str, title: str, finding: RawFinding) -> SeverityLevel:
        if finding.severity:
            return finding.severity
        lowered = title.lower()
        if any(k in lowered for k in _CRITICAL_KEYWORDS):
            return "critical"
        if any(k in lowered for k in _HIGH_KEYWORDS):
            return "high"
        return DEFAULT_SEVERITY
