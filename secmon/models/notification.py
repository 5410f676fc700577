"""ORM model for queued notification deliveries."""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from secmon.models.base import Base, JSONType

TASK_STATUSES = ("pending", "sent", "failed", "retry")
TERMINAL_TASK_STATUSES = ("sent", "failed")


class NotificationTask(Base):
    """
    One delivery attempt stream of one issue message to one channel.

    pending/retry tasks are picked up by the dispatch queue; sent/failed are terminal
    and purged after the notification retention window.
    """

    __tablename__ = "notification_tasks"
    __table_args__ = (
        Index("ix_notification_tasks_due", "status", "next_attempt_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_name = Column(String(100), nullable=False, index=True)
    issue_id = Column(
        Integer,
        ForeignKey("issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message = Column(Text, nullable=False)
    context = Column(JSONType, nullable=True)
    status = Column(String(16), nullable=False, default="pending", index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=5)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
    last_attempt = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    claim_token = Column(String(64), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
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
