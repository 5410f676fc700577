"""Integration tests for ignore-rule matching and rule management (in-memory SQLite)."""

import unittest
from datetime import datetime, timedelta, timezone

import db_support

from secmon.core.exceptions import IgnoreRuleNotFoundError, InvalidIgnoreRuleError
from secmon.models import IgnoreRule, Issue
from secmon.schemas.findings import RawFinding
from secmon.services import ignore_rules
from secmon.services.fingerprint import Fingerprinter, compute_issue_hash
from secmon.services.ignore_rules import IgnoreRuleMatcher
from secmon.services.ledger import IssueLedger


class IgnoreRuleTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = db_support.make_session_factory()()
        self.matcher = IgnoreRuleMatcher()
        self.ledger = IssueLedger(Fingerprinter(), self.matcher)

    def tearDown(self) -> None:
        self.db.close()

    def add_rule(self, rule_type: str, rule_value: str, **kwargs) -> IgnoreRule:
        rule = IgnoreRule(
            rule_name=kwargs.pop("rule_name", f"{rule_type} rule"),
            rule_type=rule_type,
            rule_value=rule_value,
            is_active=kwargs.pop("is_active", True),
            usage_count=0,
            **kwargs,
        )
        self.db.add(rule)
        self.db.commit()
        return rule


class TestIssuerRuleSuppresses(IgnoreRuleTestCase):
    """An issuer rule suppresses everything from that detector and counts its use."""

    def test_suppressed_without_issue_row(self) -> None:
        rule = self.add_rule("issuer", "file-integrity")
        finding = RawFinding(message="Modified file", file_path="/srv/app/index.php")

        outcome = self.ledger.record(self.db, "file-integrity", finding)

        self.assertTrue(outcome.suppressed)
        self.assertIsNone(outcome.issue_id)
        self.assertEqual(self.db.query(Issue).count(), 0)
        self.db.refresh(rule)
        self.assertEqual(rule.usage_count, 1)
        self.assertIsNotNone(rule.last_used_at)

    def test_other_issuers_not_suppressed(self) -> None:
        self.add_rule("issuer", "file-integrity")
        outcome = self.ledger.record(self.db, "login-fail", RawFinding(message="Failed login"))
        self.assertTrue(outcome.created)


class TestRuleTypes(IgnoreRuleTestCase):
    def test_hash_rule_matches_issue_hash(self) -> None:
        finding = RawFinding(message="Weak password policy")
        self.add_rule("hash", compute_issue_hash("config-scan", finding))
        self.assertTrue(self.matcher.is_suppressed(
            self.db, "config-scan", finding, compute_issue_hash("config-scan", finding)
        ))

    def test_file_rule_is_substring(self) -> None:
        self.add_rule("file", "/uploads/")
        hit = RawFinding(message="m", file_path="/srv/app/uploads/shell.php")
        miss = RawFinding(message="m", file_path="/srv/app/index.php")
        self.assertIsNotNone(self.matcher.match(self.db, "scan", hit, "h"))
        self.assertIsNone(self.matcher.match(self.db, "scan", miss, "h"))
        self.assertIsNone(self.matcher.match(self.db, "scan", RawFinding(message="m"), "h"))

    def test_ip_rule_uses_extracted_address(self) -> None:
        self.add_rule("ip", "1.2.3.4")
        finding = RawFinding(message="Failed login", details="Blocked IP 1.2.3.4")
        self.assertIsNotNone(self.matcher.match(self.db, "login", finding, "h"))

    def test_pattern_rule_checks_title_and_description(self) -> None:
        self.add_rule("pattern", "debug.log")
        in_title = RawFinding(message="Exposed debug.log")
        in_description = RawFinding(message="Exposed file", description="public debug.log found")
        self.assertIsNotNone(self.matcher.match(self.db, "s", in_title, "h"))
        self.assertIsNotNone(self.matcher.match(self.db, "s", in_description, "h"))

    def test_regex_rule_is_case_insensitive(self) -> None:
        self.add_rule("regex", r"^failed login for (guest|test)")
        self.assertIsNotNone(
            self.matcher.match(self.db, "s", RawFinding(message="FAILED LOGIN for Test"), "h")
        )
        self.assertIsNone(
            self.matcher.match(self.db, "s", RawFinding(message="Failed login for admin"), "h")
        )

    def test_invalid_stored_regex_is_skipped(self) -> None:
        self.add_rule("regex", "([unclosed")
        valid = self.add_rule("regex", "failed")
        with self.assertLogs("secmon.services.ignore_rules", level="WARNING"):
            rule = self.matcher.match(self.db, "s", RawFinding(message="Failed login"), "h")
        self.assertEqual(rule.id, valid.id)


class TestRuleSelection(IgnoreRuleTestCase):
    def test_type_order_decides_first_match(self) -> None:
        pattern = self.add_rule("pattern", "login")
        issuer = self.add_rule("issuer", "login-fail")
        finding = RawFinding(message="Failed login")

        self.ledger.record(self.db, "login-fail", finding)

        self.db.refresh(pattern)
        self.db.refresh(issuer)
        self.assertEqual(issuer.usage_count, 1)
        self.assertEqual(pattern.usage_count, 0)

    def test_inactive_and_expired_rules_ignored(self) -> None:
        self.add_rule("issuer", "scan", is_active=False)
        self.add_rule(
            "issuer",
            "scan",
            expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        self.assertIsNone(self.matcher.match(self.db, "scan", RawFinding(message="m"), "h"))

    def test_unexpired_rule_applies(self) -> None:
        self.add_rule(
            "issuer",
            "scan",
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        )
        self.assertIsNotNone(self.matcher.match(self.db, "scan", RawFinding(message="m"), "h"))

    def test_provenance_columns_do_not_narrow_matching(self) -> None:
        self.add_rule("pattern", "login", issuer_name="login-fail", issue_type="login")
        finding = RawFinding(message="Failed login")
        self.assertIsNotNone(self.matcher.match(self.db, "login-fail", finding, "h"))
        self.assertIsNotNone(self.matcher.match(self.db, "other", finding, "h"))

    def test_ip_rule_with_provenance_matches_other_issuers(self) -> None:
        self.add_rule("ip", "1.2.3.4", issuer_name="login-fail", issue_type="login")
        finding = RawFinding(message="SQL injection attempt", ip_address="1.2.3.4")
        self.assertTrue(self.matcher.is_suppressed(self.db, "sqli", finding, "h"))


class TestRuleManagement(IgnoreRuleTestCase):
    def test_validate_rule_rejects_bad_input(self) -> None:
        for rule_type, value in (("bogus", "x"), ("file", "  "), ("regex", "(")):
            with self.subTest(rule_type=rule_type):
                with self.assertRaises(InvalidIgnoreRuleError):
                    ignore_rules.validate_rule(rule_type, value)

    def test_create_rule_sets_defaults_and_expiry(self) -> None:
        rule = ignore_rules.create_rule(
            self.db, rule_type="ip", rule_value="1.2.3.4", expires_days=7, created_by=3
        )
        self.assertEqual(rule.rule_name, "Ignore ip: 1.2.3.4")
        self.assertTrue(rule.is_active)
        self.assertEqual(rule.created_by, 3)
        self.assertIsNotNone(rule.expires_at)

    def test_update_and_deactivate(self) -> None:
        rule = ignore_rules.create_rule(self.db, rule_type="pattern", rule_value="a")
        updated = ignore_rules.update_rule(self.db, rule.id, rule_value="b", description="why")
        self.assertEqual(updated.rule_value, "b")
        self.assertEqual(updated.description, "why")
        with self.assertRaises(InvalidIgnoreRuleError):
            ignore_rules.update_rule(self.db, rule.id, rule_value=" ")
        self.assertFalse(ignore_rules.set_rule_active(self.db, rule.id, False).is_active)

    def test_list_filters_and_counts(self) -> None:
        ignore_rules.create_rule(self.db, rule_type="pattern", rule_value="a")
        ignore_rules.create_rule(self.db, rule_type="ip", rule_value="1.1.1.1")
        rows, total = ignore_rules.list_rules(self.db, rule_type="ip")
        self.assertEqual(total, 1)
        self.assertEqual(rows[0].rule_value, "1.1.1.1")
        _, total_all = ignore_rules.list_rules(self.db, active=True)
        self.assertEqual(total_all, 2)

    def test_missing_rule(self) -> None:
        with self.assertRaises(IgnoreRuleNotFoundError):
            ignore_rules.delete_rule(self.db, 999)


if __name__ == "__main__":
    unittest.main()
