"""Unit and integration tests for data retention: run_retention."""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import db_support

from secmon.channels.base import ChannelRegistry
from secmon.models import IgnoreRule, Issue, NotificationTask
from secmon.services.dispatch import NotificationQueue
from secmon.services.retention import run_retention

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _settings(enabled: bool = True) -> MagicMock:
    settings = MagicMock()
    settings.RETENTION_ENABLED = enabled
    settings.ISSUE_RETENTION_DAYS = 90
    settings.NOTIFICATION_RETENTION_DAYS = 7
    return settings


class TestRetentionDisabled(unittest.TestCase):
    """When RETENTION_ENABLED is False, run_retention does nothing."""

    def test_returns_zero_and_does_not_query(self) -> None:
        session = MagicMock()
        result = run_retention(session, _settings(enabled=False))
        self.assertEqual(result.issues_deleted, 0)
        self.assertEqual(result.tasks_deleted, 0)
        session.query.assert_not_called()
        session.commit.assert_not_called()


class TestRetentionIntegration(unittest.TestCase):
    """Against an in-memory database: only stale closed issues and dead rules go."""

    def setUp(self) -> None:
        self.db = db_support.make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def add_issue(self, suffix: str, status: str, updated_at: datetime) -> Issue:
        issue = Issue(
            issue_hash=suffix * 32,
            line_code_hash=suffix * 32,
            issuer_name="scanner",
            issue_type="unknown",
            severity="low",
            status=status,
            title=f"Issue {suffix}",
            first_detected=updated_at,
            last_detected=updated_at,
            detection_count=1,
            is_ignored=False,
            viewed=False,
            updated_at=updated_at,
        )
        self.db.add(issue)
        self.db.commit()
        return issue

    def add_task(self, issue: Issue, status: str, sent_at: datetime | None = None) -> NotificationTask:
        task = NotificationTask(
            channel_name="log",
            issue_id=issue.id,
            message="m",
            status=status,
            retry_count=0,
            max_retries=5,
            sent_at=sent_at,
            created_at=sent_at or NOW,
        )
        self.db.add(task)
        self.db.commit()
        return task

    def test_closed_stale_issues_deleted_with_their_tasks(self) -> None:
        old = NOW - timedelta(days=120)
        stale = self.add_issue("a", "resolved", old)
        self.add_issue("b", "false_positive", old)
        self.add_issue("c", "new", old)
        self.add_issue("d", "resolved", NOW - timedelta(days=10))
        self.add_task(stale, "pending")

        result = run_retention(self.db, _settings(), now=NOW)

        self.assertEqual(result.issues_deleted, 2)
        remaining = sorted(i.title for i in self.db.query(Issue).all())
        self.assertEqual(remaining, ["Issue c", "Issue d"])
        self.assertEqual(self.db.query(NotificationTask).count(), 0)

    def test_expired_rules_deleted_and_idle_rules_deactivated(self) -> None:
        expired = IgnoreRule(
            rule_name="expired", rule_type="ip", rule_value="1.2.3.4",
            is_active=True, usage_count=0, expires_at=NOW - timedelta(days=1),
        )
        idle = IgnoreRule(
            rule_name="idle", rule_type="pattern", rule_value="x",
            is_active=True, usage_count=1, last_used_at=NOW - timedelta(days=200),
        )
        busy = IgnoreRule(
            rule_name="busy", rule_type="pattern", rule_value="y",
            is_active=True, usage_count=50, last_used_at=NOW - timedelta(days=200),
        )
        self.db.add_all([expired, idle, busy])
        self.db.commit()

        result = run_retention(self.db, _settings(), now=NOW)

        self.assertEqual((result.rules_deleted, result.rules_deactivated), (1, 1))
        self.db.expire_all()
        states = {r.rule_name: r.is_active for r in self.db.query(IgnoreRule).all()}
        self.assertEqual(states, {"idle": False, "busy": True})

    def test_queue_cleanup_runs_when_queue_given(self) -> None:
        issue = self.add_issue("e", "new", NOW)
        self.add_task(issue, "sent", sent_at=NOW - timedelta(days=30))
        self.add_task(issue, "pending")
        queue = NotificationQueue(ChannelRegistry())

        result = run_retention(self.db, _settings(), queue=queue, now=NOW)

        self.assertEqual(result.tasks_deleted, 1)
        self.assertEqual(self.db.query(NotificationTask).count(), 1)

    def test_second_run_is_a_no_op(self) -> None:
        self.add_issue("f", "resolved", NOW - timedelta(days=120))
        run_retention(self.db, _settings(), now=NOW)
        result = run_retention(self.db, _settings(), now=NOW)
        self.assertEqual(result.issues_deleted, 0)


if __name__ == "__main__":
    unittest.main()
