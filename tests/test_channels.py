"""Unit tests for channel adapters with mocked HTTP and SMTP backends."""

import json
import logging
import os
import smtplib
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import httpx

import db_support  # noqa: F401

from secmon.channels.base import MASK, ChannelRegistry
from secmon.channels.email import EmailChannel
from secmon.channels.log import LogChannel
from secmon.channels.slack import SlackChannel
from secmon.channels.telegram import MESSAGE_MAX_LENGTH, TelegramChannel
from secmon.core.exceptions import ChannelNotFoundError, ChannelSendError

CONTEXT = {"severity": "high", "title": "Brute force", "issuer": "login-fail", "issue_id": 7}


def _mock_http_client(client_cls: MagicMock, status_code: int, body: dict | None = None) -> MagicMock:
    response = MagicMock(status_code=status_code, text="error body")
    response.json.return_value = body if body is not None else {"ok": True}
    client = client_cls.return_value.__enter__.return_value
    client.post.return_value = response
    client.get.return_value = response
    return client


class TestSlackChannel(unittest.TestCase):
    def setUp(self) -> None:
        self.channel = SlackChannel(
            {"enabled": True, "webhook_url": "https://hooks.slack.test/T/B/x", "channel": "#sec"}
        )

    @patch("secmon.channels.slack.httpx.Client")
    def test_send_posts_attachment(self, client_cls) -> None:
        client = _mock_http_client(client_cls, 200)

        self.assertTrue(self.channel.send("body", CONTEXT))

        url, = client.post.call_args.args
        payload = client.post.call_args.kwargs["json"]
        self.assertEqual(url, "https://hooks.slack.test/T/B/x")
        self.assertEqual(payload["channel"], "#sec")
        self.assertEqual(payload["attachments"][0]["title"], "[HIGH] Brute force")
        self.assertEqual(payload["attachments"][0]["text"], "body")

    @patch("secmon.channels.slack.httpx.Client")
    def test_error_statuses_raise(self, client_cls) -> None:
        for status in (404, 429, 500):
            with self.subTest(status=status):
                _mock_http_client(client_cls, status)
                with self.assertRaises(ChannelSendError) as ctx:
                    self.channel.send("body", CONTEXT)
                self.assertEqual(ctx.exception.status_code, status)

    @patch("secmon.channels.slack.httpx.Client")
    def test_check_posts_empty_payload(self, client_cls) -> None:
        client = _mock_http_client(client_cls, 400)
        client.post.return_value.text = "no_text"

        self.assertTrue(self.channel.check_connection())
        self.assertEqual(client.post.call_args.kwargs["json"], {})

        for status in (403, 404, 500):
            with self.subTest(status=status):
                _mock_http_client(client_cls, status)
                self.assertFalse(self.channel.check_connection())

    @patch("secmon.channels.slack.httpx.Client")
    def test_check_rejects_insecure_url_without_request(self, client_cls) -> None:
        self.channel.configure({"webhook_url": "http://insecure"})
        self.assertFalse(self.channel.check_connection())
        client_cls.assert_not_called()

    @patch("secmon.channels.slack.httpx.Client")
    def test_unreachable_webhook_is_unavailable(self, client_cls) -> None:
        client_cls.return_value.__enter__.return_value.post.side_effect = httpx.ConnectError("refused")
        self.assertFalse(self.channel.is_available())

    @patch("secmon.channels.slack.httpx.Client")
    def test_connection_test_posts_message(self, client_cls) -> None:
        client = _mock_http_client(client_cls, 200)

        result = self.channel.test_connection()

        self.assertTrue(result.success)
        payload = client.post.call_args.kwargs["json"]
        self.assertEqual(payload["attachments"][0]["title"], "[LOW] Connection Test")

    @patch("secmon.channels.slack.httpx.Client")
    def test_connection_test_reports_status(self, client_cls) -> None:
        _mock_http_client(client_cls, 404)
        result = self.channel.test_connection()
        self.assertFalse(result.success)
        self.assertIn("not found", result.message)

    def test_public_config_masks_secret(self) -> None:
        config = self.channel.public_config()
        self.assertEqual(config["webhook_url"], MASK)
        self.assertEqual(config["channel"], "#sec")
        self.assertTrue(self.channel.info().enabled)


class TestTelegramChannel(unittest.TestCase):
    def setUp(self) -> None:
        self.channel = TelegramChannel({"enabled": True, "bot_token": "123:abc", "chat_id": "-100"})

    @patch("secmon.channels.telegram.httpx.Client")
    def test_send_truncates_long_messages(self, client_cls) -> None:
        client = _mock_http_client(client_cls, 200)

        self.assertTrue(self.channel.send("x" * 5000, CONTEXT))

        url, = client.post.call_args.args
        payload = client.post.call_args.kwargs["json"]
        self.assertEqual(url, "https://api.telegram.org/bot123:abc/sendMessage")
        self.assertEqual(len(payload["text"]), MESSAGE_MAX_LENGTH)
        self.assertEqual(payload["chat_id"], "-100")

    @patch("secmon.channels.telegram.httpx.Client")
    def test_error_statuses_raise(self, client_cls) -> None:
        for status in (401, 429, 400):
            with self.subTest(status=status):
                _mock_http_client(client_cls, status, {"ok": False, "description": "Bad Request"})
                with self.assertRaises(ChannelSendError) as ctx:
                    self.channel.send("body", CONTEXT)
                self.assertEqual(ctx.exception.status_code, status)

    @patch("secmon.channels.telegram.httpx.Client")
    def test_check_connection_calls_get_me(self, client_cls) -> None:
        client = _mock_http_client(client_cls, 200)
        self.assertTrue(self.channel.check_connection())
        self.assertTrue(client.get.call_args.args[0].endswith("/getMe"))

    def test_missing_config_is_unavailable(self) -> None:
        channel = TelegramChannel({"enabled": True, "bot_token": "123:abc"})
        self.assertFalse(channel.is_available())
        with self.assertRaises(ChannelSendError):
            channel.send("body", CONTEXT)


class TestEmailChannel(unittest.TestCase):
    def setUp(self) -> None:
        self.channel = EmailChannel(
            {
                "enabled": True,
                "host": "smtp.test",
                "port": 2525,
                "username": "alerts",
                "password": "secret",
                "use_tls": True,
                "from_address": "monitor@test",
                "to": "ops@test, sec@test",
            }
        )

    @patch("secmon.channels.email.smtplib.SMTP")
    def test_send_message(self, smtp_cls) -> None:
        client = smtp_cls.return_value
        client.send_message.return_value = {}

        self.assertTrue(self.channel.send("body", CONTEXT))

        smtp_cls.assert_called_once_with("smtp.test", 2525, timeout=10.0)
        client.starttls.assert_called_once()
        client.login.assert_called_once_with("alerts", "secret")
        msg = client.send_message.call_args.args[0]
        self.assertEqual(msg["Subject"], "[Security Alert][HIGH] Brute force")
        self.assertEqual(msg["To"], "ops@test, sec@test")
        client.quit.assert_called_once()

    @patch("secmon.channels.email.smtplib.SMTP")
    def test_refused_recipients_raise(self, smtp_cls) -> None:
        smtp_cls.return_value.send_message.return_value = {"ops@test": (550, b"no such user")}
        with self.assertRaises(ChannelSendError):
            self.channel.send("body", CONTEXT)

    @patch("secmon.channels.email.smtplib.SMTP")
    def test_auth_failure_raises_send_error(self, smtp_cls) -> None:
        smtp_cls.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad")
        with self.assertRaises(ChannelSendError) as ctx:
            self.channel.send("body", CONTEXT)
        self.assertEqual(ctx.exception.status_code, 535)
        smtp_cls.return_value.close.assert_called_once()

    def test_masks_password(self) -> None:
        self.assertEqual(self.channel.public_config()["password"], MASK)


class TestLogChannel(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "alerts", "security.log")
        self.channel = LogChannel({"enabled": True, "path": self.path})

    def tearDown(self) -> None:
        # Closes the rotating handler before the directory goes away
        self.channel.configure({})
        self.tmp.cleanup()

    def test_writes_json_line(self) -> None:
        self.assertTrue(self.channel.is_available())
        self.assertTrue(self.channel.send("body", CONTEXT))

        with open(self.path, encoding="utf-8") as fh:
            entry = json.loads(fh.readline())
        self.assertEqual(entry["level"], "ERROR")
        self.assertEqual(entry["issue_id"], 7)
        self.assertEqual(entry["message"], "body")

    def test_new_instance_does_not_duplicate_lines(self) -> None:
        self.channel.send("first", CONTEXT)
        replacement = LogChannel({"enabled": True, "path": self.path})
        replacement.send("second", CONTEXT)

        with open(self.path, encoding="utf-8") as fh:
            messages = [json.loads(line)["message"] for line in fh]
        self.assertEqual(messages, ["first", "second"])
        self.assertEqual(len(logging.getLogger("secmon.channels.log.alerts.log").handlers), 1)

    def test_reconfigure_releases_handler(self) -> None:
        self.channel.send("body", CONTEXT)
        self.channel.configure({"path": os.path.join(self.tmp.name, "other.log")})
        self.assertEqual(logging.getLogger("secmon.channels.log.alerts.log").handlers, [])


class TestAvailabilityAndRegistry(unittest.TestCase):
    def test_disabled_channel_is_unavailable_without_check(self) -> None:
        channel = db_support.FakeChannel("slack")
        channel.enabled = False
        channel.check_connection = MagicMock(return_value=True)
        self.assertFalse(channel.is_available())
        channel.check_connection.assert_not_called()

    def test_availability_is_cached(self) -> None:
        channel = db_support.FakeChannel("slack")
        channel.connection_check_ttl = 60.0
        channel.check_connection = MagicMock(return_value=True)
        channel.is_available()
        channel.is_available()
        self.assertEqual(channel.check_connection.call_count, 1)
        channel.configure({"extra": 1})
        channel.is_available()
        self.assertEqual(channel.check_connection.call_count, 2)

    def test_failing_check_counts_as_unavailable(self) -> None:
        channel = db_support.FakeChannel("slack")
        channel.check_connection = MagicMock(side_effect=OSError("refused"))
        self.assertFalse(channel.is_available())
        self.assertFalse(channel.test_connection().success)

    def test_registry_lookup(self) -> None:
        registry = ChannelRegistry([db_support.FakeChannel("slack"), db_support.FakeChannel("log")])
        self.assertEqual(registry.names(), ["slack", "log"])
        with self.assertRaises(ChannelNotFoundError):
            registry.require("pager")


if __name__ == "__main__":
    unittest.main()
