"""
Notification dispatch and retry queue.

Detection only enqueues; delivery happens in process_pending(), which claims due tasks
with an atomic per-task UPDATE, sends them in parallel on a thread pool with a bounded
wait, and writes every outcome back on the calling thread.

Task lifecycle:
  pending/retry --send ok--> sent
  pending/retry --unavailable, send false, error, timeout--> retry (backoff)
  retry --retry_count reaches max_retries--> failed
  pending/retry --channel not registered--> failed (no retry)
"""

import logging
import math
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from secmon.channels.base import Channel, ChannelRegistry
from secmon.core.exceptions import InvalidTaskStateError, NotificationTaskNotFoundError
from secmon.models import Issue, NotificationTask
from secmon.models.notification import TERMINAL_TASK_STATUSES
from secmon.schemas.notifications import (
    NotificationTaskListResponse,
    NotificationTaskOut,
    ProcessResult,
)
from secmon.services.formatting import format_issue_message, issue_context

logger = logging.getLogger(__name__)

DUE_STATUSES = ("pending", "retry")
ERROR_MESSAGE_MAX_LENGTH = 1000


def backoff_delay(retry_count: int, base_sec: int, max_sec: int) -> timedelta:
    """Exponential backoff after the retry_count-th failed attempt: base * 2**(n-1), capped."""
    exponent = max(retry_count - 1, 0)
    return timedelta(seconds=min(base_sec * (2**exponent), max_sec))


def _attempt(channel: Channel, message: str, context: dict[str, Any]) -> str | None:
    """Runs on a worker thread. Returns None on success, else the error text."""
    if not channel.is_available():
        return f"Channel '{channel.name}' is not available"
    try:
        if channel.send(message, context):
            return None
        return "Channel send returned false"
    except Exception as e:
        return f"{type(e).__name__}: {e}"


class NotificationQueue:
    """Owns NotificationTask rows."""

    def __init__(
        self,
        registry: ChannelRegistry,
        *,
        site_name: str = "",
        site_url: str = "",
        max_retries: int = 5,
        backoff_base_sec: int = 60,
        backoff_max_sec: int = 3600,
        claim_timeout_sec: int = 300,
        send_timeout_sec: float = 15.0,
        workers: int = 4,
    ) -> None:
        self.registry = registry
        self.site_name = site_name
        self.site_url = site_url
        self.max_retries = max_retries
        self.backoff_base_sec = backoff_base_sec
        self.backoff_max_sec = backoff_max_sec
        self.claim_timeout = timedelta(seconds=claim_timeout_sec)
        self.send_timeout_sec = send_timeout_sec
        self.workers = workers

    def enqueue(
        self,
        session: Session,
        channel_name: str,
        issue_id: int,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        commit: bool = True,
    ) -> int:
        """Queue one delivery. An identical pending task is reused instead of duplicated."""
        existing = (
            session.query(NotificationTask.id)
            .filter(
                NotificationTask.issue_id == issue_id,
                NotificationTask.channel_name == channel_name,
                NotificationTask.status == "pending",
                NotificationTask.message == message,
            )
            .first()
        )
        if existing is not None:
            return existing[0]
        task = NotificationTask(
            channel_name=channel_name,
            issue_id=issue_id,
            message=message,
            context=context or {},
            status="pending",
            retry_count=0,
            max_retries=self.max_retries,
        )
        session.add(task)
        session.flush()
        if commit:
            session.commit()
        return task.id

    def enqueue_issue(self, session: Session, issue: Issue, detector_name: str) -> list[int]:
        """One task per enabled channel, each with a message in that channel's style."""
        task_ids = []
        context = issue_context(issue, detector_name, self.site_url)
        for channel in self.registry.enabled():
            message = format_issue_message(
                issue,
                detector_name,
                self.site_name,
                self.site_url,
                style=channel.message_style,
            )
            task_ids.append(
                self.enqueue(session, channel.name, issue.id, message, context, commit=False)
            )
        session.commit()
        if not task_ids:
            logger.warning(
                "No enabled notification channels; issue not queued",
                extra={"issue_id": issue.id},
            )
        return task_ids

    def _claim(self, session: Session, limit: int, now: datetime) -> list[NotificationTask]:
        stale_before = now - self.claim_timeout
        claimable = or_(
            NotificationTask.claim_token.is_(None),
            NotificationTask.claimed_at < stale_before,
        )
        candidate_ids = [
            row[0]
            for row in session.query(NotificationTask.id)
            .filter(
                NotificationTask.status.in_(DUE_STATUSES),
                or_(
                    NotificationTask.next_attempt_at.is_(None),
                    NotificationTask.next_attempt_at <= now,
                ),
                claimable,
            )
            .order_by(NotificationTask.created_at, NotificationTask.id)
            .limit(limit)
            .all()
        ]
        token = uuid.uuid4().hex
        claimed_ids = []
        for task_id in candidate_ids:
            result = session.execute(
                update(NotificationTask)
                .where(
                    NotificationTask.id == task_id,
                    NotificationTask.status.in_(DUE_STATUSES),
                    claimable,
                )
                .values(claim_token=token, claimed_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                claimed_ids.append(task_id)
        session.commit()
        if not claimed_ids:
            return []
        return (
            session.query(NotificationTask)
            .filter(NotificationTask.id.in_(claimed_ids), NotificationTask.claim_token == token)
            .order_by(NotificationTask.id)
            .all()
        )

    def process_pending(
        self,
        session: Session,
        limit: int = 20,
        now: datetime | None = None,
    ) -> ProcessResult:
        """Deliver due tasks. now is the reference time for due and backoff calculations."""
        now = now or datetime.now(timezone.utc)
        tasks = self._claim(session, limit, now)
        result = ProcessResult()
        if not tasks:
            return result

        futures: dict[int, Future] = {}
        max_workers = min(self.workers, len(tasks))
        executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="secmon-send",
        )
        try:
            for task in tasks:
                channel = self.registry.get(task.channel_name)
                if channel is None:
                    continue
                futures[task.id] = executor.submit(
                    _attempt, channel, task.message, dict(task.context or {})
                )
            waves = math.ceil(len(futures) / max_workers)
            done, _ = wait(futures.values(), timeout=self.send_timeout_sec * max(waves, 1))
        finally:
            # Never block on a hung send; unfinished attempts are recorded as timeouts.
            executor.shutdown(wait=False, cancel_futures=True)

        for task in tasks:
            result.processed += 1
            task.last_attempt = now
            task.claim_token = None
            task.claimed_at = None
            future = futures.get(task.id)
            if future is None:
                task.status = "failed"
                task.error_message = "Channel not configured"
                result.failed += 1
                logger.warning(
                    "Notification failed: channel not configured",
                    extra={"task_id": task.id, "channel": task.channel_name},
                )
                continue
            if future in done:
                error = future.result()
            else:
                future.cancel()
                error = f"Send timed out after {self.send_timeout_sec}s"
            if error is None:
                task.status = "sent"
                task.sent_at = now
                task.error_message = None
                task.next_attempt_at = None
                result.success += 1
                continue
            task.retry_count = (task.retry_count or 0) + 1
            task.error_message = error[:ERROR_MESSAGE_MAX_LENGTH]
            if task.retry_count >= (task.max_retries or self.max_retries):
                task.status = "failed"
                task.next_attempt_at = None
                result.failed += 1
                logger.warning(
                    "Notification failed permanently",
                    extra={
                        "task_id": task.id,
                        "channel": task.channel_name,
                        "attempts": task.retry_count,
                        "error": task.error_message[:200],
                    },
                )
            else:
                task.status = "retry"
                task.next_attempt_at = now + backoff_delay(
                    task.retry_count, self.backoff_base_sec, self.backoff_max_sec
                )
                result.retry += 1
        session.commit()
        logger.info(
            "Notification pass completed",
            extra={
                "processed": result.processed,
                "success": result.success,
                "failed": result.failed,
                "retry": result.retry,
            },
        )
        return result

    def cleanup(
        self,
        session: Session,
        retention_days: int = 7,
        now: datetime | None = None,
    ) -> int:
        """Delete sent/failed tasks whose last activity is older than retention_days."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
        last_activity = func.coalesce(
            NotificationTask.sent_at,
            NotificationTask.last_attempt,
            NotificationTask.created_at,
        )
        deleted = (
            session.query(NotificationTask)
            .filter(
                NotificationTask.status.in_(TERMINAL_TASK_STATUSES),
                last_activity < cutoff,
            )
            .delete(synchronize_session=False)
        )
        session.commit()
        if deleted:
            logger.info("Notification cleanup: tasks_deleted=%s", deleted)
        return deleted

    def get_task(self, session: Session, task_id: int) -> NotificationTask:
        task = session.get(NotificationTask, task_id)
        if task is None:
            raise NotificationTaskNotFoundError(task_id)
        return task

    def retry_task(self, session: Session, task_id: int) -> NotificationTask:
        """Operator re-queue: reset attempts and make the task due immediately."""
        task = self.get_task(session, task_id)
        if task.status == "sent":
            raise InvalidTaskStateError(f"Notification task {task_id} was already sent.")
        task.status = "pending"
        task.retry_count = 0
        task.next_attempt_at = None
        task.error_message = None
        task.claim_token = None
        task.claimed_at = None
        session.commit()
        return task

    def list_tasks(
        self,
        session: Session,
        *,
        status: str | None = None,
        channel_name: str | None = None,
        issue_id: int | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> NotificationTaskListResponse:
        q = session.query(NotificationTask)
        if status:
            q = q.filter(NotificationTask.status == status)
        if channel_name:
            q = q.filter(NotificationTask.channel_name == channel_name)
        if issue_id is not None:
            q = q.filter(NotificationTask.issue_id == issue_id)
        total = q.count()
        rows = (
            q.order_by(NotificationTask.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return NotificationTaskListResponse(
            items=[NotificationTaskOut.model_validate(row) for row in rows],
            total=total,
            page=page,
            per_page=per_page,
        )
