"""Ignore-rule matching and rule management.

Rules are evaluated in RULE_TYPE_ORDER; the first active, unexpired match suppresses
the finding and has its usage counter bumped atomically.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, or_, update
from sqlalchemy.orm import Session

from secmon.core.exceptions import IgnoreRuleNotFoundError, InvalidIgnoreRuleError
from secmon.models import IgnoreRule
from secmon.models.ignore_rule import RULE_TYPE_ORDER
from secmon.schemas.findings import RawFinding
from secmon.services.fingerprint import (
    extract_description,
    extract_ip_address,
    extract_title,
)

logger = logging.getLogger(__name__)

RULE_NAME_MAX_LENGTH = 100


class IgnoreRuleMatcher:
    """Evaluates findings against persisted suppression rules."""

    def active_rules(self, session: Session, now: datetime | None = None) -> list[IgnoreRule]:
        """Active, unexpired rules in evaluation order (type order, then id)."""
        now = now or datetime.now(timezone.utc)
        type_rank = case(
            {rule_type: i for i, rule_type in enumerate(RULE_TYPE_ORDER)},
            value=IgnoreRule.rule_type,
            else_=len(RULE_TYPE_ORDER),
        )
        return (
            session.query(IgnoreRule)
            .filter(IgnoreRule.is_active.is_(True))
            .filter(or_(IgnoreRule.expires_at.is_(None), IgnoreRule.expires_at > now))
            .order_by(type_rank, IgnoreRule.id)
            .all()
        )

    def match(
        self,
        session: Session,
        issuer_name: str,
        finding: RawFinding,
        computed_hash: str,
    ) -> IgnoreRule | None:
        """
        Return the first matching rule without side effects, or None.

        A rule's issuer_name and issue_type record where it came from; they do not
        narrow what it matches.
        """
        title = extract_title(finding)
        for rule in self.active_rules(session):
            if _rule_matches(rule, issuer_name, finding, computed_hash, title):
                return rule
        return None

    def is_suppressed(
        self,
        session: Session,
        issuer_name: str,
        finding: RawFinding,
        computed_hash: str,
    ) -> bool:
        """True when a rule matches; increments that rule's usage_count and last_used_at."""
        rule = self.match(session, issuer_name, finding, computed_hash)
        if rule is None:
            return False
        session.execute(
            update(IgnoreRule)
            .where(IgnoreRule.id == rule.id)
            .values(
                usage_count=IgnoreRule.usage_count + 1,
                last_used_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
        logger.info(
            "Finding suppressed by ignore rule",
            extra={
                "issuer": issuer_name,
                "rule_id": rule.id,
                "rule_type": rule.rule_type,
            },
        )
        return True


def _rule_matches(
    rule: IgnoreRule,
    issuer_name: str,
    finding: RawFinding,
    computed_hash: str,
    title: str,
) -> bool:
    value = rule.rule_value or ""
    if rule.rule_type == "hash":
        return value == computed_hash
    if rule.rule_type == "issuer":
        return value == issuer_name
    if rule.rule_type == "file":
        return bool(finding.file_path) and bool(value) and value in finding.file_path
    if rule.rule_type == "ip":
        return extract_ip_address(finding) == value
    if rule.rule_type == "pattern":
        if not value:
            return False
        return value in title or value in extract_description(finding)
    if rule.rule_type == "regex":
        try:
            return re.search(value, title, re.IGNORECASE) is not None
        except re.error as e:
            logger.warning(
                "Skipping ignore rule with invalid regex",
                extra={"rule_id": rule.id, "error": str(e)[:200]},
            )
            return False
    return False


def validate_rule(rule_type: str, rule_value: str) -> None:
    """Raise InvalidIgnoreRuleError for unknown types, empty values or bad regexes."""
    if rule_type not in RULE_TYPE_ORDER:
        raise InvalidIgnoreRuleError(
            f"rule_type must be one of {list(RULE_TYPE_ORDER)}, got {rule_type!r}"
        )
    if not rule_value or not rule_value.strip():
        raise InvalidIgnoreRuleError("rule_value must be non-empty")
    if rule_type == "regex":
        try:
            re.compile(rule_value)
        except re.error as e:
            raise InvalidIgnoreRuleError(f"Invalid regex: {e}") from e


def create_rule(
    session: Session,
    *,
    rule_type: str,
    rule_value: str,
    rule_name: str | None = None,
    issuer_name: str | None = None,
    issue_type: str | None = None,
    description: str | None = None,
    expires_days: int | None = None,
    created_by: int | None = None,
    commit: bool = True,
) -> IgnoreRule:
    """Validate and persist a new rule."""
    validate_rule(rule_type, rule_value)
    expires_at = None
    if expires_days is not None:
        if expires_days < 1:
            raise InvalidIgnoreRuleError("expires_days must be at least 1")
        expires_at = datetime.now(timezone.utc) + timedelta(days=expires_days)
    name = (rule_name or f"Ignore {rule_type}: {rule_value}")[:RULE_NAME_MAX_LENGTH]
    rule = IgnoreRule(
        rule_name=name,
        rule_type=rule_type,
        rule_value=rule_value,
        issuer_name=issuer_name,
        issue_type=issue_type,
        description=description,
        is_active=True,
        created_by=created_by,
        expires_at=expires_at,
        usage_count=0,
    )
    session.add(rule)
    session.flush()
    if commit:
        session.commit()
    return rule


def get_rule(session: Session, rule_id: int) -> IgnoreRule:
    rule = session.get(IgnoreRule, rule_id)
    if rule is None:
        raise IgnoreRuleNotFoundError(rule_id)
    return rule


def set_rule_active(session: Session, rule_id: int, active: bool) -> IgnoreRule:
    rule = get_rule(session, rule_id)
    rule.is_active = active
    session.commit()
    return rule


def delete_rule(session: Session, rule_id: int) -> None:
    rule = get_rule(session, rule_id)
    session.delete(rule)
    session.commit()


def update_rule(
    session: Session,
    rule_id: int,
    *,
    rule_name: str | None = None,
    rule_value: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
    expires_days: int | None = None,
) -> IgnoreRule:
    """Apply the given fields; arguments left as None are not changed."""
    rule = get_rule(session, rule_id)
    if rule_value is not None:
        validate_rule(rule.rule_type, rule_value)
        rule.rule_value = rule_value
    if rule_name is not None:
        rule.rule_name = rule_name[:RULE_NAME_MAX_LENGTH]
    if description is not None:
        rule.description = description
    if is_active is not None:
        rule.is_active = is_active
    if expires_days is not None:
        rule.expires_at = datetime.now(timezone.utc) + timedelta(days=expires_days)
    session.commit()
    return rule


def list_rules(
    session: Session,
    *,
    rule_type: str | None = None,
    issuer_name: str | None = None,
    active: bool | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[IgnoreRule], int]:
    """Rules newest first, with the total count before pagination."""
    q = session.query(IgnoreRule)
    if rule_type:
        q = q.filter(IgnoreRule.rule_type == rule_type)
    if issuer_name:
        q = q.filter(IgnoreRule.issuer_name == issuer_name)
    if active is not None:
        q = q.filter(IgnoreRule.is_active.is_(active))
    total = q.count()
    rows = q.order_by(IgnoreRule.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return rows, total
