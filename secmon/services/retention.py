"""Data retention: purge closed issues, expired ignore rules and finished notification tasks."""

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from secmon.models import IgnoreRule, Issue, NotificationTask
from secmon.services.dispatch import NotificationQueue

if TYPE_CHECKING:
    from secmon.core.config import Settings

logger = logging.getLogger(__name__)

CLOSED_ISSUE_STATUSES = ("resolved", "false_positive")
# Rules used fewer times than this and idle for a whole retention window are deactivated.
IDLE_RULE_MIN_USAGE = 5


class RetentionResult(BaseModel):
    issues_deleted: int = 0
    rules_deleted: int = 0
    rules_deactivated: int = 0
    tasks_deleted: int = 0


def run_retention(
    session: Session,
    settings: "Settings",
    queue: NotificationQueue | None = None,
    now: datetime | None = None,
) -> RetentionResult:
    """
    Delete resolved/false-positive issues not touched for ISSUE_RETENTION_DAYS (with
    their notification tasks), delete expired ignore rules, deactivate idle rules and,
    when a queue is given, purge terminal notification tasks older than
    NOTIFICATION_RETENTION_DAYS.

    Idempotent: safe to run repeatedly.
    """
    if not settings.RETENTION_ENABLED:
        logger.info("Retention is disabled (RETENTION_ENABLED=false); skipping.")
        return RetentionResult()

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=settings.ISSUE_RETENTION_DAYS)

    closed_issue_ids = select(Issue.id).where(
        Issue.status.in_(CLOSED_ISSUE_STATUSES),
        Issue.updated_at < cutoff,
    )
    session.query(NotificationTask).filter(
        NotificationTask.issue_id.in_(closed_issue_ids)
    ).delete(synchronize_session=False)
    issues_deleted = (
        session.query(Issue)
        .filter(Issue.status.in_(CLOSED_ISSUE_STATUSES), Issue.updated_at < cutoff)
        .delete(synchronize_session=False)
    )
    rules_deleted = (
        session.query(IgnoreRule)
        .filter(IgnoreRule.expires_at.isnot(None), IgnoreRule.expires_at < now)
        .delete(synchronize_session=False)
    )
    rules_deactivated = (
        session.query(IgnoreRule)
        .filter(
            IgnoreRule.is_active.is_(True),
            IgnoreRule.last_used_at < cutoff,
            IgnoreRule.usage_count < IDLE_RULE_MIN_USAGE,
        )
        .update({IgnoreRule.is_active: False}, synchronize_session=False)
    )
    session.commit()

    tasks_deleted = 0
    if queue is not None:
        tasks_deleted = queue.cleanup(session, settings.NOTIFICATION_RETENTION_DAYS, now=now)

    result = RetentionResult(
        issues_deleted=issues_deleted,
        rules_deleted=rules_deleted,
        rules_deactivated=rules_deactivated,
        tasks_deleted=tasks_deleted,
    )
    if any(result.model_dump().values()):
        logger.info(
            "Retention run: cutoff=%s, issues_deleted=%s, rules_deleted=%s, "
            "rules_deactivated=%s, tasks_deleted=%s",
            cutoff.isoformat(),
            issues_deleted,
            rules_deleted,
            rules_deactivated,
            tasks_deleted,
        )
    return result
