"""Issue fingerprinting: stable identity hashes and field extraction for raw findings.

Two hashes identify a finding:

- issue_hash: position-independent identity from issuer, title, file and details.
- line_code_hash: identity pinned to the first call-site outside secmon's own code,
  used as the dedup key. Falls back to issue_hash when no usable frame exists.
"""

import hashlib
import ipaddress
import json
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from secmon.schemas.findings import RawFinding, StackFrame

# Directory of the secmon package; frames under it never pin a fingerprint.
PACKAGE_ROOT = str(Path(__file__).resolve().parent.parent)

_IPV4_PATTERN = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
_IP_IN_TEXT_PATTERN = re.compile(r"IP\s+([0-9.]+)")

TITLE_MAX_LENGTH = 255


def _md5_of(data: dict[str, Any]) -> str:
    """Hash a mapping deterministically (sorted keys, no whitespace variance)."""
    encoded = json.dumps(data, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def extract_title(finding: RawFinding) -> str:
    """Explicit title, else the message; bounded to the column length."""
    title = (finding.title or "").strip() or finding.message.strip() or "Unknown Issue"
    return title[:TITLE_MAX_LENGTH]


def extract_details(finding: RawFinding) -> str:
    """
    Details as text: JSON for structured details, the string itself otherwise.
    Without details, the identifying fields of the finding are serialized instead.
    """
    if isinstance(finding.details, dict):
        return json.dumps(finding.details, sort_keys=True, ensure_ascii=False, default=str)
    if isinstance(finding.details, str):
        return finding.details
    identifying = finding.model_dump(
        include={"message", "title", "type", "file_path", "ip_address"},
        exclude_none=True,
    )
    return json.dumps(identifying, sort_keys=True, ensure_ascii=False)


def extract_description(finding: RawFinding) -> str:
    """Explicit description, else the details text, else empty."""
    if finding.description:
        return finding.description
    if finding.details is None:
        return ""
    return extract_details(finding)


def _valid_ip(value: object) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    candidate = value.strip()
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return None
    return candidate


def extract_ip_address(finding: RawFinding) -> str | None:
    """
    Explicit ip_address, else an ip_address key or IPv4-looking value in details.
    Only syntactically valid IPv4/IPv6 addresses are returned.
    """
    explicit = _valid_ip(finding.ip_address)
    if explicit:
        return explicit
    details = finding.details
    if isinstance(details, dict):
        keyed = _valid_ip(details.get("ip_address"))
        if keyed:
            return keyed
        for v in details.values():
            if isinstance(v, str) and _IPV4_PATTERN.match(v) and _valid_ip(v):
                return v
    elif isinstance(details, str):
        match = _IP_IN_TEXT_PATTERN.search(details)
        if match:
            return _valid_ip(match.group(1))
    return None


def compute_issue_hash(issuer_name: str, finding: RawFinding) -> str:
    """H(issuer, title, file, details)."""
    return _md5_of(
        {
            "issuer": issuer_name,
            "message": extract_title(finding),
            "file": finding.file_path or "",
            "details": extract_details(finding),
        }
    )


class Fingerprinter:
    """
    Computes dedup hashes, skipping frames that belong to the monitoring system itself.

    internal_paths: substrings; a frame whose file contains any of them is skipped.
    internal_classes: class names whose frames are skipped regardless of file.
    """

    def __init__(
        self,
        internal_paths: Iterable[str] | None = None,
        internal_classes: Iterable[str] | None = None,
    ) -> None:
        paths = [p for p in (internal_paths or []) if p and p.strip()]
        self.internal_paths: tuple[str, ...] = tuple(
            _normalize_path(p) for p in (paths or [PACKAGE_ROOT])
        )
        self.internal_classes: frozenset[str] = frozenset(internal_classes or ())

    def is_internal(self, frame: StackFrame) -> bool:
        if frame.cls and frame.cls in self.internal_classes:
            return True
        path = _normalize_path(frame.file)
        return any(prefix in path for prefix in self.internal_paths)

    def first_external_frame(self, frames: Sequence[StackFrame] | None) -> StackFrame | None:
        """First frame with a known file and line that is not internal."""
        for frame in frames or ():
            if frame.file == "unknown" or frame.line <= 0:
                continue
            if self.is_internal(frame):
                continue
            return frame
        return None

    def issue_hash(self, issuer_name: str, finding: RawFinding) -> str:
        return compute_issue_hash(issuer_name, finding)

    def line_code_hash(
        self,
        issuer_name: str,
        finding: RawFinding,
        issue_hash: str | None = None,
    ) -> str:
        frame = self.first_external_frame(finding.backtrace)
        if frame is None:
            return issue_hash or compute_issue_hash(issuer_name, finding)
        return _md5_of(
            {
                "file": _normalize_path(frame.file),
                "line": frame.line,
                "issuer": issuer_name,
            }
        )


def _normalize_path(path: str) -> str:
    return path.replace("\\", "/")
