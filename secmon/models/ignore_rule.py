"""ORM model for persisted suppression rules."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from secmon.models.base import Base

# Evaluation order of rule types; the first matching rule wins.
RULE_TYPE_ORDER = ("hash", "issuer", "file", "ip", "pattern", "regex")


class IgnoreRule(Base):
    """
    Suppression directive evaluated before an issue is recorded.

    rule_type: one of RULE_TYPE_ORDER. Rules with expires_at in the past are treated
    as inactive by the matcher but are kept until retention removes them.
    issuer_name, issue_type: provenance of rules derived from an issue; not matched on.
    """

    __tablename__ = "ignore_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rule_name = Column(String(100), nullable=False)
    rule_type = Column(String(16), nullable=False, index=True)
    rule_value = Column(Text, nullable=False)
    issuer_name = Column(String(100), nullable=True, index=True)
    issue_type = Column(String(50), nullable=True, index=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(Integer, nullable=True)
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
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
