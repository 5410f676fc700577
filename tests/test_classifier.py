"""Unit tests for the keyword severity/type classifier."""

import unittest

import db_support  # noqa: F401

from secmon.schemas.findings import RawFinding
from secmon.services.classifier import DEFAULT_ISSUE_TYPE, DEFAULT_SEVERITY, KeywordClassifier


class TestKeywordClassifier(unittest.TestCase):
    def setUp(self) -> None:
        self.classifier = KeywordClassifier()

    def test_explicit_values_win(self) -> None:
        finding = RawFinding(message="Malware found", type="custom", severity="low")
        self.assertEqual(self.classifier.issue_type("Malware found", finding), "custom")
        self.assertEqual(self.classifier.severity("scanner", "Malware found", finding), "low")

    def test_type_keywords(self) -> None:
        cases = {
            "Suspicious redirect to external host": "redirect",
            "Failed login for admin": "login",
            "Core file modified": "file_change",
            "Brute attack detected": "brute_force",
            "Something else": DEFAULT_ISSUE_TYPE,
        }
        for title, expected in cases.items():
            with self.subTest(title=title):
                self.assertEqual(
                    self.classifier.issue_type(title, RawFinding(message=title)), expected
                )

    def test_severity_keywords(self) -> None:
        cases = {
            "Backdoor uploaded": "critical",
            "eval() in theme file": "critical",
            "Brute force on login": "high",
            "New admin user created": "high",
            "Debug output enabled": DEFAULT_SEVERITY,
        }
        for title, expected in cases.items():
            with self.subTest(title=title):
                self.assertEqual(
                    self.classifier.severity("x", title, RawFinding(message=title)), expected
                )


if __name__ == "__main__":
    unittest.main()
