"""Unit tests for finding fingerprints and field extraction."""

import unittest

import db_support  # noqa: F401

from secmon.schemas.findings import RawFinding, StackFrame, normalize_severity
from secmon.services.fingerprint import (
    PACKAGE_ROOT,
    Fingerprinter,
    compute_issue_hash,
    extract_description,
    extract_ip_address,
    extract_title,
)


def _frame(file: str, line: int, function: str = "handler", cls: str | None = None) -> StackFrame:
    return StackFrame(file=file, line=line, function=function, cls=cls)


class TestIssueHash(unittest.TestCase):
    """issue_hash depends on issuer, title, file and details only."""

    def test_same_inputs_same_hash(self) -> None:
        a = RawFinding(message="Modified core file", file_path="/srv/app/index.php")
        b = RawFinding(message="Modified core file", file_path="/srv/app/index.php")
        self.assertEqual(compute_issue_hash("file-integrity", a), compute_issue_hash("file-integrity", b))

    def test_issuer_changes_hash(self) -> None:
        finding = RawFinding(message="Modified core file")
        self.assertNotEqual(
            compute_issue_hash("file-integrity", finding),
            compute_issue_hash("malware-scan", finding),
        )

    def test_context_is_not_fingerprinted(self) -> None:
        a = RawFinding(message="Failed login", context={"attempt": 1})
        b = RawFinding(message="Failed login", context={"attempt": 2})
        self.assertEqual(compute_issue_hash("login", a), compute_issue_hash("login", b))

    def test_dict_details_key_order_does_not_matter(self) -> None:
        a = RawFinding(message="x", details={"a": 1, "b": 2})
        b = RawFinding(message="x", details={"b": 2, "a": 1})
        self.assertEqual(compute_issue_hash("d", a), compute_issue_hash("d", b))


class TestLineCodeHash(unittest.TestCase):
    """line_code_hash pins the first frame outside the monitor's own code."""

    def setUp(self) -> None:
        self.fp = Fingerprinter()
        self.external = _frame("/srv/app/views.py", 42)

    def test_stable_under_internal_frame_noise(self) -> None:
        a = RawFinding(
            message="Failed login",
            backtrace=[_frame(f"{PACKAGE_ROOT}/services/ledger.py", 10), self.external],
        )
        b = RawFinding(
            message="Failed login again",
            backtrace=[
                _frame(f"{PACKAGE_ROOT}/services/orchestrator.py", 200),
                _frame(f"{PACKAGE_ROOT}/detectors/base.py", 7),
                self.external,
            ],
        )
        self.assertEqual(self.fp.line_code_hash("login", a), self.fp.line_code_hash("login", b))

    def test_different_call_site_changes_hash(self) -> None:
        a = RawFinding(message="m", backtrace=[self.external])
        b = RawFinding(message="m", backtrace=[_frame("/srv/app/views.py", 43)])
        self.assertNotEqual(self.fp.line_code_hash("login", a), self.fp.line_code_hash("login", b))

    def test_falls_back_to_issue_hash_without_usable_frames(self) -> None:
        finding = RawFinding(
            message="m",
            backtrace=[_frame("unknown", 5), _frame("/srv/app/x.py", 0)],
        )
        self.assertEqual(
            self.fp.line_code_hash("login", finding),
            compute_issue_hash("login", finding),
        )

    def test_falls_back_when_only_internal_frames(self) -> None:
        finding = RawFinding(message="m", backtrace=[_frame(f"{PACKAGE_ROOT}/main.py", 3)])
        self.assertEqual(self.fp.line_code_hash("x", finding), compute_issue_hash("x", finding))

    def test_custom_internal_paths_and_classes(self) -> None:
        fp = Fingerprinter(internal_paths=["/srv/app/vendor/"], internal_classes={"Hooks"})
        chain = [
            _frame("/srv/app/vendor/lib.py", 1),
            _frame("/srv/app/hooks.py", 9, cls="Hooks"),
            self.external,
        ]
        self.assertIs(fp.first_external_frame(chain), chain[2])

    def test_windows_paths_are_normalized(self) -> None:
        fp = Fingerprinter(internal_paths=["C:\\app\\secmon"])
        self.assertTrue(fp.is_internal(_frame("C:\\app\\secmon\\ledger.py", 1)))


class TestExtraction(unittest.TestCase):
    def test_title_prefers_explicit_and_truncates(self) -> None:
        self.assertEqual(extract_title(RawFinding(message="msg", title="Title")), "Title")
        self.assertEqual(len(extract_title(RawFinding(message="x" * 400))), 255)

    def test_description_falls_back_to_details(self) -> None:
        finding = RawFinding(message="m", details="free text")
        self.assertEqual(extract_description(finding), "free text")
        self.assertEqual(extract_description(RawFinding(message="m")), "")

    def test_ip_from_explicit_field_and_details(self) -> None:
        self.assertEqual(extract_ip_address(RawFinding(message="m", ip_address="1.2.3.4")), "1.2.3.4")
        self.assertEqual(
            extract_ip_address(RawFinding(message="m", details={"ip_address": "5.6.7.8"})),
            "5.6.7.8",
        )
        self.assertEqual(
            extract_ip_address(RawFinding(message="m", details={"source": "9.9.9.9"})),
            "9.9.9.9",
        )
        self.assertEqual(
            extract_ip_address(RawFinding(message="m", details="Blocked IP 10.0.0.1 after 5 tries")),
            "10.0.0.1",
        )
        self.assertIsNone(extract_ip_address(RawFinding(message="m")))

    def test_invalid_ip_values_are_not_extracted(self) -> None:
        self.assertIsNone(extract_ip_address(RawFinding(message="m", details={"ip_address": "x" * 100})))
        self.assertIsNone(extract_ip_address(RawFinding(message="m", details={"ip_address": "not-an-ip"})))
        self.assertIsNone(extract_ip_address(RawFinding(message="m", details={"source": "999.1.1.1"})))
        self.assertIsNone(extract_ip_address(RawFinding(message="m", details="Blocked IP 300.0.0.1")))
        self.assertEqual(
            extract_ip_address(RawFinding(message="m", details={"ip_address": " 2001:db8::1 "})),
            "2001:db8::1",
        )


class TestFindingModel(unittest.TestCase):
    def test_severity_aliases(self) -> None:
        self.assertEqual(RawFinding(message="m", severity="CRIT").severity, "critical")
        self.assertEqual(RawFinding(message="m", severity="moderate").severity, "medium")
        self.assertIsNone(RawFinding(message="m", severity="catastrophic").severity)
        self.assertIsNone(normalize_severity("  "))

    def test_malformed_frames_degrade(self) -> None:
        frame = StackFrame.model_validate({"file": None, "line": "abc", "function": 12})
        self.assertEqual(frame.file, "unknown")
        self.assertEqual(frame.line, 0)
        self.assertEqual(frame.function, "12")
        self.assertEqual(StackFrame.model_validate({"line": -4}).line, 0)


if __name__ == "__main__":
    unittest.main()
