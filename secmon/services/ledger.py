"""
Issue deduplication and state ledger.

record() turns a RawFinding into at most one Issue row per line_code_hash: suppressed
findings write nothing, known fingerprints are bumped with a single atomic UPDATE,
unknown ones are inserted. A concurrent insert of the same fingerprint surfaces as an
IntegrityError and is retried as an UPDATE. Persistence errors propagate.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from pathlib import PurePath

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from secmon.core.exceptions import IssueNotFoundError, InvalidIgnoreRuleError
from secmon.models import IgnoreRule, Issue
from secmon.models.issue import ISSUE_STATUSES
from secmon.schemas.findings import RawFinding
from secmon.schemas.issues import (
    IssueListResponse,
    IssueOut,
    IssueQuery,
    IssueStats,
    RecordOutcome,
)
from secmon.services.classifier import IssueClassifier, KeywordClassifier
from secmon.services.fingerprint import (
    PACKAGE_ROOT,
    Fingerprinter,
    extract_description,
    extract_details,
    extract_ip_address,
    extract_title,
)
from secmon.services.ignore_rules import IgnoreRuleMatcher, create_rule

logger = logging.getLogger(__name__)

FILE_PATH_MAX_LENGTH = 500
ISSUE_TYPE_MAX_LENGTH = 50
TOP_ISSUERS_LIMIT = 10


class IssueLedger:
    """
    Owns Issue rows: recording, operator actions and queries.

    excluded_path_prefix: issues whose file_path starts with it are hidden from
    list_issues (the monitor's own source tree).
    """

    def __init__(
        self,
        fingerprinter: Fingerprinter,
        matcher: IgnoreRuleMatcher,
        classifier: IssueClassifier | None = None,
        excluded_path_prefix: str | None = PACKAGE_ROOT,
    ) -> None:
        self.fingerprinter = fingerprinter
        self.matcher = matcher
        self.classifier = classifier or KeywordClassifier()
        self.excluded_path_prefix = excluded_path_prefix

    def record(self, session: Session, issuer_name: str, finding: RawFinding) -> RecordOutcome:
        issue_hash = self.fingerprinter.issue_hash(issuer_name, finding)
        line_code_hash = self.fingerprinter.line_code_hash(issuer_name, finding, issue_hash)
        title = extract_title(finding)
        issue_type = self.classifier.issue_type(title, finding)[:ISSUE_TYPE_MAX_LENGTH]

        if self.matcher.is_suppressed(session, issuer_name, finding, issue_hash):
            return RecordOutcome(
                status="suppressed",
                issue_hash=issue_hash,
                line_code_hash=line_code_hash,
            )

        now = datetime.now(timezone.utc)
        existing_id = self._bump(session, line_code_hash, now)
        if existing_id is not None:
            session.commit()
            return RecordOutcome(
                status="redetected",
                issue_id=existing_id,
                issue_hash=issue_hash,
                line_code_hash=line_code_hash,
            )

        issue = Issue(
            issue_hash=issue_hash,
            line_code_hash=line_code_hash,
            issuer_name=issuer_name,
            issue_type=issue_type,
            severity=self.classifier.severity(issuer_name, title, finding),
            status="new",
            title=title,
            description=extract_description(finding) or None,
            details=extract_details(finding),
            raw_data=finding.model_dump(mode="json", exclude={"context"}, exclude_none=True),
            backtrace=(
                [frame.model_dump() for frame in finding.backtrace] if finding.backtrace else None
            ),
            file_path=finding.file_path[:FILE_PATH_MAX_LENGTH] if finding.file_path else None,
            ip_address=extract_ip_address(finding),
            user_agent=finding.user_agent,
            first_detected=now,
            last_detected=now,
            detection_count=1,
            is_ignored=False,
            viewed=False,
            extra_metadata=finding.context or None,
        )
        session.add(issue)
        try:
            session.commit()
        except IntegrityError:
            # Another writer inserted the same fingerprint first.
            session.rollback()
            existing_id = self._bump(session, line_code_hash, now)
            if existing_id is None:
                raise
            session.commit()
            logger.info(
                "Concurrent insert resolved as re-detection",
                extra={"issue_id": existing_id, "issuer": issuer_name},
            )
            return RecordOutcome(
                status="redetected",
                issue_id=existing_id,
                issue_hash=issue_hash,
                line_code_hash=line_code_hash,
            )

        logger.info(
            "Issue created",
            extra={"issue_id": issue.id, "issuer": issuer_name, "severity": issue.severity},
        )
        return RecordOutcome(
            status="created",
            issue_id=issue.id,
            issue_hash=issue_hash,
            line_code_hash=line_code_hash,
        )

    def _bump(self, session: Session, line_code_hash: str, now: datetime) -> int | None:
        """Atomically count a re-detection; returns the issue id or None when absent."""
        result = session.execute(
            update(Issue)
            .where(Issue.line_code_hash == line_code_hash)
            .values(
                detection_count=Issue.detection_count + 1,
                last_detected=now,
                updated_at=now,
                viewed=False,
                viewed_by=None,
                viewed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return (
            session.query(Issue.id)
            .filter(Issue.line_code_hash == line_code_hash)
            .scalar()
        )

    # Operator actions

    def get_issue(self, session: Session, issue_id: int) -> Issue:
        issue = session.get(Issue, issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue

    def mark_viewed(self, session: Session, issue_id: int, actor: int | None = None) -> Issue:
        issue = self.get_issue(session, issue_id)
        issue.viewed = True
        issue.viewed_by = actor
        issue.viewed_at = datetime.now(timezone.utc)
        session.commit()
        return issue

    def unmark_viewed(self, session: Session, issue_id: int) -> Issue:
        issue = self.get_issue(session, issue_id)
        issue.viewed = False
        issue.viewed_by = None
        issue.viewed_at = None
        session.commit()
        return issue

    def ignore(
        self,
        session: Session,
        issue_id: int,
        reason: str = "",
        actor: int | None = None,
        *,
        commit: bool = True,
    ) -> Issue:
        issue = self.get_issue(session, issue_id)
        issue.is_ignored = True
        issue.status = "ignored"
        issue.ignored_by = actor
        issue.ignored_at = datetime.now(timezone.utc)
        issue.ignore_reason = reason
        if commit:
            session.commit()
        logger.info("Issue ignored", extra={"issue_id": issue_id, "actor": actor})
        return issue

    def unignore(self, session: Session, issue_id: int) -> Issue:
        issue = self.get_issue(session, issue_id)
        _clear_ignore(issue)
        issue.status = "new"
        session.commit()
        return issue

    def resolve(
        self,
        session: Session,
        issue_id: int,
        notes: str = "",
        actor: int | None = None,
    ) -> Issue:
        issue = self.get_issue(session, issue_id)
        issue.status = "resolved"
        issue.resolved_by = actor
        issue.resolved_at = datetime.now(timezone.utc)
        issue.resolution_notes = notes
        session.commit()
        logger.info("Issue resolved", extra={"issue_id": issue_id, "actor": actor})
        return issue

    def set_status(
        self,
        session: Session,
        issue_id: int,
        status: str,
        actor: int | None = None,
    ) -> Issue:
        """Move an issue to any lifecycle status; leaving 'ignored' clears the ignore marker."""
        if status not in ISSUE_STATUSES:
            raise ValueError(f"status must be one of {list(ISSUE_STATUSES)}, got {status!r}")
        if status == "ignored":
            return self.ignore(session, issue_id, actor=actor)
        if status == "resolved":
            return self.resolve(session, issue_id, actor=actor)
        issue = self.get_issue(session, issue_id)
        if issue.is_ignored:
            _clear_ignore(issue)
        issue.status = status
        session.commit()
        return issue

    def create_ignore_rule_from_issue(
        self,
        session: Session,
        issue_id: int,
        rule_type: str,
        *,
        pattern: str | None = None,
        description: str | None = None,
        expires_days: int | None = None,
        actor: int | None = None,
    ) -> IgnoreRule:
        """Derive a rule from the issue and ignore the issue in the same transaction."""
        issue = self.get_issue(session, issue_id)
        if rule_type == "hash":
            value = issue.issue_hash
            name = f"Ignore specific issue: {issue.title[:50]}"
        elif rule_type == "file":
            value = issue.file_path
            name = f"Ignore file: {PurePath(issue.file_path or '').name}"
        elif rule_type == "ip":
            value = issue.ip_address
            name = f"Ignore IP: {issue.ip_address}"
        elif rule_type == "issuer":
            value = issue.issuer_name
            name = f"Disable issuer: {issue.issuer_name}"
        elif rule_type == "pattern":
            value = pattern or issue.title
            name = f"Ignore pattern: {value[:50]}"
        else:
            raise InvalidIgnoreRuleError(
                f"Cannot derive a {rule_type!r} rule from an issue; use hash, file, ip, issuer or pattern"
            )
        if not value:
            raise InvalidIgnoreRuleError(f"Issue {issue_id} has no value for a {rule_type!r} rule")

        rule = create_rule(
            session,
            rule_type=rule_type,
            rule_value=value,
            rule_name=name,
            issuer_name=issue.issuer_name,
            issue_type=issue.issue_type,
            description=description or f"Auto-generated from issue #{issue_id}",
            expires_days=expires_days,
            created_by=actor,
            commit=False,
        )
        self.ignore(session, issue_id, f"Ignored by rule: {name}", actor, commit=False)
        session.commit()
        logger.info(
            "Ignore rule created from issue",
            extra={"issue_id": issue_id, "rule_id": rule.id, "rule_type": rule_type},
        )
        return rule

    # Queries

    def list_issues(self, session: Session, query: IssueQuery) -> IssueListResponse:
        q = session.query(Issue)
        if query.status:
            q = q.filter(Issue.status == query.status)
        if query.severity:
            q = q.filter(Issue.severity == query.severity)
        if query.issuer:
            q = q.filter(Issue.issuer_name == query.issuer)
        if query.search:
            term = query.search.strip()
            q = q.filter(
                or_(
                    Issue.title.icontains(term, autoescape=True),
                    Issue.description.icontains(term, autoescape=True),
                    Issue.file_path.icontains(term, autoescape=True),
                )
            )
        if not query.include_ignored:
            q = q.filter(Issue.is_ignored.is_(False))
        if self.excluded_path_prefix:
            prefix = self.excluded_path_prefix.replace("\\", "/")
            q = q.filter(
                or_(
                    Issue.file_path.is_(None),
                    ~Issue.file_path.startswith(prefix, autoescape=True),
                )
            )

        total = q.count()
        column = getattr(Issue, query.order_by)
        ordering = column.asc() if query.order == "asc" else column.desc()
        rows = (
            q.order_by(ordering, Issue.id.desc())
            .offset((query.page - 1) * query.per_page)
            .limit(query.per_page)
            .all()
        )
        return IssueListResponse(
            items=[IssueOut.model_validate(row) for row in rows],
            total=total,
            pages=math.ceil(total / query.per_page) if total else 0,
            page=query.page,
            per_page=query.per_page,
        )

    def get_stats(self, session: Session) -> IssueStats:
        now = datetime.now(timezone.utc)

        def count_issues(*criteria) -> int:
            return session.query(func.count(Issue.id)).filter(*criteria).scalar() or 0

        by_severity = dict(
            session.query(Issue.severity, func.count(Issue.id)).group_by(Issue.severity).all()
        )
        issuer_count = func.count(Issue.id).label("n")
        by_issuer = dict(
            session.query(Issue.issuer_name, issuer_count)
            .group_by(Issue.issuer_name)
            .order_by(issuer_count.desc())
            .limit(TOP_ISSUERS_LIMIT)
            .all()
        )
        return IssueStats(
            total_issues=count_issues(),
            new_issues=count_issues(Issue.status == "new"),
            ignored_issues=count_issues(Issue.is_ignored.is_(True)),
            resolved_issues=count_issues(Issue.status == "resolved"),
            by_severity=by_severity,
            by_issuer=by_issuer,
            total_ignore_rules=session.query(func.count(IgnoreRule.id)).scalar() or 0,
            active_ignore_rules=(
                session.query(func.count(IgnoreRule.id))
                .filter(IgnoreRule.is_active.is_(True))
                .scalar()
                or 0
            ),
            issues_last_24h=count_issues(Issue.first_detected >= now - timedelta(days=1)),
            issues_last_7d=count_issues(Issue.first_detected >= now - timedelta(days=7)),
        )


def _clear_ignore(issue: Issue) -> None:
    issue.is_ignored = False
    issue.ignored_by = None
    issue.ignored_at = None
    issue.ignore_reason = None
