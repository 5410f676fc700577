"""Tests for service wiring: detector loading and channel overrides."""

import unittest

import db_support
from db_support import FakeChannel, SweepDetector

from secmon.core.config import settings
from secmon.core.container import build_services, load_detectors
from secmon.detectors.base import IssuerClassification


class TestLoadDetectors(unittest.TestCase):
    def test_loads_by_dotted_path(self) -> None:
        detectors = load_detectors(["db_support:SweepDetector"])
        self.assertIsInstance(detectors[0], SweepDetector)
        self.assertIs(detectors[0].classification, IssuerClassification.SCAN)

    def test_rejects_non_detector(self) -> None:
        with self.assertRaises(TypeError):
            load_detectors(["db_support:FakeChannel"])


class TestBuildServices(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = db_support.make_session_factory()
        self.channel = FakeChannel("slack")
        self.channel.configure({"channel": "#sec"})
        self.services = build_services(
            settings,
            session_factory=self.session_factory,
            detectors=[SweepDetector()],
            channels=[self.channel],
        )

    def test_scheduled_detector_runs_through_orchestrator(self) -> None:
        report = self.services.orchestrator.run_once()
        self.assertEqual((report.detectors_run, report.created), (1, 1))

    def test_stored_overrides_layer_over_defaults(self) -> None:
        with self.session_factory() as db:
            self.services.options.update_channel_config(db, "slack", {"channel": "#ops", "enabled": False})
            self.services.apply_channel_overrides(db)
            self.assertEqual(self.channel.config["channel"], "#ops")
            self.assertFalse(self.channel.enabled)

            self.services.options.update_channel_config(db, "slack", {"channel": None, "enabled": None})
            self.services.apply_channel_overrides(db, "slack")
        self.assertEqual(self.channel.config["channel"], "#sec")
        self.assertTrue(self.channel.enabled)


if __name__ == "__main__":
    unittest.main()
