"""Unit tests for forensic context collection."""

import unittest

import db_support  # noqa: F401

from secmon.detectors.base import IssuerClassification
from secmon.schemas.forensics import RequestContext
from secmon.services.fingerprint import PACKAGE_ROOT
from secmon.services.forensics import (
    CALL_CHAIN_OUTPUT_LIMIT,
    MINIMAL_TRACE_DEPTH,
    ForensicCollector,
    client_ip_from_headers,
    execution_mode,
    request_context,
)


class TestClientIp(unittest.TestCase):
    def test_first_public_header_wins(self) -> None:
        headers = {
            "X-Forwarded-For": "8.8.8.8, 10.0.0.1",
            "X-Real-IP": "10.0.0.2",
        }
        self.assertEqual(client_ip_from_headers(headers, "127.0.0.1"), "8.8.8.8")

    def test_header_precedence(self) -> None:
        headers = {"cf-connecting-ip": "1.1.1.1", "x-forwarded-for": "8.8.8.8"}
        self.assertEqual(client_ip_from_headers(headers), "1.1.1.1")

    def test_private_or_garbage_values_fall_back_to_peer(self) -> None:
        headers = {"x-forwarded-for": "192.168.1.5", "x-real-ip": "not-an-ip"}
        self.assertEqual(client_ip_from_headers(headers, "203.0.113.9"), "203.0.113.9")
        self.assertEqual(client_ip_from_headers({}), "unknown")

    def test_forwarded_header_syntax(self) -> None:
        self.assertEqual(client_ip_from_headers({"forwarded": 'for="9.9.9.9"'}), "9.9.9.9")


class TestCollect(unittest.TestCase):
    def setUp(self) -> None:
        self.collector = ForensicCollector(app_root="/srv/app")

    def test_levels_by_classification(self) -> None:
        frames = [{"file": "/srv/app/a.py", "line": 1}]
        cases = [
            (IssuerClassification.TRIGGER, None, "full_forensic"),
            (IssuerClassification.SCAN, None, "minimal_forensic"),
            (IssuerClassification.HYBRID, "trigger", "selective_forensic"),
            (IssuerClassification.HYBRID, "scan", "minimal_forensic"),
        ]
        for classification, phase, level in cases:
            with self.subTest(classification=classification, phase=phase):
                context = self.collector.collect(classification, phase=phase, frames=frames)
                self.assertEqual(context.context_level, level)

    def test_full_context_has_timing_and_memory(self) -> None:
        context = self.collector.collect(IssuerClassification.TRIGGER, frames=[])
        self.assertIsNotNone(context.timing_info)
        self.assertIsNone(context.scan_context)
        self.assertFalse(context.backtrace_info.limited_trace)

    def test_minimal_context_limits_trace_and_describes_scan(self) -> None:
        frames = [{"file": f"/srv/app/f{i}.py", "line": i + 1} for i in range(10)]
        context = self.collector.collect(IssuerClassification.SCAN, frames=frames)
        self.assertEqual(context.backtrace_info.total_frames, MINIMAL_TRACE_DEPTH)
        self.assertTrue(context.backtrace_info.limited_trace)
        self.assertIn("python_version", context.scan_context["scan_environment"])
        self.assertIsNone(context.timing_info)

    def test_call_chain_output_is_capped(self) -> None:
        frames = [{"file": f"/srv/app/f{i}.py", "line": i + 1} for i in range(15)]
        info = self.collector.collect(IssuerClassification.TRIGGER, frames=frames).backtrace_info
        self.assertEqual(info.total_frames, 15)
        self.assertEqual(len(info.call_chain), CALL_CHAIN_OUTPUT_LIMIT)

    def test_malformed_frames_never_raise(self) -> None:
        frames = [None, "garbage", {"file": 12, "line": "x"}, {"class": "View", "file": "/srv/app/v.py", "line": 3}]
        info = self.collector.collect(IssuerClassification.TRIGGER, frames=frames).backtrace_info
        self.assertEqual(info.total_frames, 4)
        self.assertEqual(info.call_chain[0].source_type, "unknown")
        self.assertEqual(info.call_chain[3].cls, "View")

    def test_frame_classification_and_likely_source(self) -> None:
        frames = [
            {"file": f"{PACKAGE_ROOT}/services/ledger.py", "line": 10},
            {"file": "/usr/lib/python3/site-packages/requests/api.py", "line": 20},
            {"file": "/srv/app/views/login.py", "line": 30},
        ]
        info = self.collector.collect(IssuerClassification.TRIGGER, frames=frames).backtrace_info
        self.assertEqual(
            [f.source_type for f in info.call_chain], ["internal", "plugin", "module"]
        )
        self.assertEqual(info.packages, ["requests"])
        self.assertEqual(info.likely_source, "Package: requests")
        self.assertEqual(info.source_summary, "Package: requests (Packages: requests)")
        self.assertIn("views/login.py", info.files_involved)

    def test_live_stack_capture(self) -> None:
        context = self.collector.collect(IssuerClassification.TRIGGER)
        functions = [f.function for f in context.backtrace_info.call_chain]
        self.assertEqual(functions[0], "test_live_stack_capture")


class TestExecutionContext(unittest.TestCase):
    def test_request_context(self) -> None:
        token = request_context.set(
            RequestContext(
                method="POST",
                path="/wp-login.php",
                headers={"x-forwarded-for": "8.8.4.4", "user-agent": "curl/8", "host": "shop.example"},
                client_host="10.0.0.1",
            )
        )
        try:
            ctx = ForensicCollector().execution_context()
        finally:
            request_context.reset(token)
        self.assertEqual(ctx.context_type, "REQUEST")
        self.assertEqual(ctx.ip_address, "8.8.4.4")
        self.assertEqual(ctx.user_agent, "curl/8")
        self.assertEqual(ctx.request_uri, "/wp-login.php")

    def test_cron_mode(self) -> None:
        token = execution_mode.set("CRON")
        try:
            collector = ForensicCollector()
            ctx = collector.execution_context()
            scan = collector.collect(IssuerClassification.SCAN, frames=[]).scan_context
        finally:
            execution_mode.reset(token)
        self.assertEqual((ctx.context_type, ctx.source), ("CRON", "Scheduled Job"))
        self.assertEqual(scan["scan_type"], "cron_scan")
        self.assertTrue(scan["is_background"])


if __name__ == "__main__":
    unittest.main()
