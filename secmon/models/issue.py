"""ORM model for deduplicated security issues (the issue ledger)."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    func,
)

from secmon.models.base import Base, JSONType

ISSUE_SEVERITIES = ("low", "medium", "high", "critical")
ISSUE_STATUSES = ("new", "investigating", "resolved", "ignored", "false_positive")


class Issue(Base):
    """
    One standing or recurring security condition.

    Exactly one row exists per line_code_hash; re-detections bump detection_count and
    last_detected in place. Rows are only removed by retention cleanup.
    """

    __tablename__ = "issues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issue_hash = Column(String(32), nullable=False, index=True)
    line_code_hash = Column(String(32), nullable=False, unique=True, index=True)
    issuer_name = Column(String(100), nullable=False, index=True)
    issue_type = Column(String(50), nullable=False, default="unknown", index=True)
    severity = Column(String(16), nullable=False, default="medium", index=True)
    status = Column(String(32), nullable=False, default="new", index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    details = Column(Text, nullable=True)
    raw_data = Column(JSONType, nullable=True)
    backtrace = Column(JSONType, nullable=True)
    file_path = Column(String(500), nullable=True, index=True)
    ip_address = Column(String(45), nullable=True, index=True)
    user_agent = Column(Text, nullable=True)
    first_detected = Column(DateTime(timezone=True), nullable=False)
    last_detected = Column(DateTime(timezone=True), nullable=False, index=True)
    detection_count = Column(Integer, nullable=False, default=1)
    is_ignored = Column(Boolean, nullable=False, default=False, index=True)
    viewed = Column(Boolean, nullable=False, default=False, index=True)
    viewed_by = Column(Integer, nullable=True)
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    ignored_by = Column(Integer, nullable=True)
    ignored_at = Column(DateTime(timezone=True), nullable=True)
    ignore_reason = Column(Text, nullable=True)
    resolved_by = Column(Integer, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSONType, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
