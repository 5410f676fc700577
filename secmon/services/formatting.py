"""Alert message formatting for notification channels."""

from datetime import datetime
from typing import Any, Literal

from secmon.models import Issue

MessageStyle = Literal["markdown", "plain"]

SEVERITY_ICONS = {
    "critical": "🔴",
    "high": "🟠",
    "medium": "🟡",
    "low": "🟢",
}

DETAILS_MAX_LENGTH = 500
RULE = "─" * 30


def _bold(text: str, style: MessageStyle) -> str:
    return f"*{text}*" if style == "markdown" else text


def _timestamp(value: datetime | None) -> str:
    if value is None:
        return "unknown"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_issue_message(
    issue: Issue,
    detector_name: str,
    site_name: str,
    site_url: str,
    style: MessageStyle = "markdown",
) -> str:
    """
    One alert for one issue.

    The detection count and last detection time are part of the text, so each
    re-detection produces a distinct message.
    """
    icon = SEVERITY_ICONS.get(issue.severity, "⚪")
    lines = [
        f"🔒 {_bold('SECURITY ALERT', style)}",
        RULE,
        "",
        f"📋 {_bold('System Information', style)}",
        f"• {_bold('Website:', style)} {site_name}",
        f"• {_bold('URL:', style)} {site_url}",
        f"• {_bold('Detected by:', style)} {detector_name}",
        f"• {_bold('Time:', style)} {_timestamp(issue.last_detected)}",
        "",
        f"🚨 {_bold('Security Issue Detected:', style)}",
        f"• {icon} [{issue.severity.upper()}] {issue.title}",
    ]
    if issue.description and issue.description != issue.title:
        lines.append(f"  └ {issue.description[:DETAILS_MAX_LENGTH]}")
    if issue.file_path:
        lines.append(f"• {_bold('File:', style)} {issue.file_path}")
    if issue.ip_address:
        lines.append(f"• {_bold('IP:', style)} {issue.ip_address}")
    lines.append(
        f"• {_bold('Detections:', style)} {issue.detection_count} "
        f"(first seen {_timestamp(issue.first_detected)})"
    )
    lines.append(f"• {_bold('Issue ID:', style)} #{issue.id}")
    lines.append("")
    lines.append(
        f"⚠️ {_bold('Action Required:', style)} Please review and take appropriate security measures."
    )
    return "\n".join(lines)


def issue_context(issue: Issue, detector_name: str, site_url: str) -> dict[str, Any]:
    """Structured context stored with each task and handed to Channel.send()."""
    return {
        "issuer": detector_name,
        "issue_id": issue.id,
        "severity": issue.severity,
        "issue_type": issue.issue_type,
        "title": issue.title,
        "detection_count": issue.detection_count,
        "site_url": site_url,
        "timestamp": _timestamp(issue.last_detected),
    }
