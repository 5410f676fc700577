"""
Persistent throttle and lock for orchestrator runs.

A single row in run_locks per guarded job. acquire() claims it with one conditional
UPDATE so two processes triggered at the same moment cannot both start a run.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from secmon.core.exceptions import RunInProgressError, RunThrottledError
from secmon.models import RunLock

logger = logging.getLogger(__name__)


class RunGuard:
    """
    Throttle (minimum interval between run starts) plus a lock with a TTL.

    A run that crashes without release() blocks further runs only until lock_ttl_sec
    has passed.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        name: str = "orchestrator",
        min_interval_sec: int = 60,
        lock_ttl_sec: int = 900,
    ) -> None:
        self.session_factory = session_factory
        self.name = name
        self.min_interval = timedelta(seconds=min_interval_sec)
        self.lock_ttl = timedelta(seconds=lock_ttl_sec)

    def acquire(self, force: bool = False, now: datetime | None = None) -> str:
        """
        Claim the lock and return a holder token.

        force skips the minimum-interval check but never an active lock.
        Raises RunInProgressError or RunThrottledError.
        """
        now = now or datetime.now(timezone.utc)
        token = uuid.uuid4().hex
        with self.session_factory() as session:
            self._ensure_row(session)
            conditions = [
                RunLock.name == self.name,
                or_(RunLock.locked_until.is_(None), RunLock.locked_until < now),
            ]
            if not force and self.min_interval:
                conditions.append(
                    or_(
                        RunLock.last_run_at.is_(None),
                        RunLock.last_run_at <= now - self.min_interval,
                    )
                )
            result = session.execute(
                update(RunLock)
                .where(*conditions)
                .values(holder=token, locked_until=now + self.lock_ttl, last_run_at=now)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount == 1:
                return token

            locked = (
                session.query(RunLock.name)
                .filter(RunLock.name == self.name, RunLock.locked_until >= now)
                .first()
            )
        if locked is not None:
            raise RunInProgressError(f"Run '{self.name}' is already in progress.")
        raise RunThrottledError(
            f"Run '{self.name}' was started less than "
            f"{int(self.min_interval.total_seconds())}s ago."
        )

    def release(self, token: str) -> bool:
        """Release the lock if token still holds it. Returns False when it was lost."""
        now = datetime.now(timezone.utc)
        with self.session_factory() as session:
            result = session.execute(
                update(RunLock)
                .where(RunLock.name == self.name, RunLock.holder == token)
                .values(holder=None, locked_until=None, last_finished_at=now)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        if result.rowcount == 0:
            logger.warning("Run lock was not held at release", extra={"lock": self.name})
            return False
        return True

    def _ensure_row(self, session: Session) -> None:
        if session.get(RunLock, self.name) is not None:
            return
        session.add(RunLock(name=self.name))
        try:
            session.commit()
        except IntegrityError:
            # Created concurrently by another process.
            session.rollback()
