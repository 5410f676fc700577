"""Slack delivery through an incoming webhook."""

import logging
import time
from typing import Any

import httpx

from secmon.channels.base import Channel
from secmon.core.exceptions import ChannelSendError
from secmon.schemas.channels import ConnectionTestResult

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "critical": "#d00000",
    "high": "#ff8c00",
    "medium": "#ffd000",
    "low": "#36a64f",
}


class SlackChannel(Channel):
    """
    Config keys: webhook_url (secret), channel, username, icon_emoji, timeout.

    check_connection() posts an empty payload, which a live webhook rejects with
    400 "no_text" without posting anything. test_connection() posts a visible
    connection-test message.
    """

    name = "slack"
    message_style = "markdown"
    secret_keys = frozenset({"webhook_url"})

    def _timeout(self) -> float:
        return float(self.get_config("timeout", 10.0))

    def check_connection(self) -> bool:
        url = self.get_config("webhook_url", "")
        if not (isinstance(url, str) and url.startswith("https://")):
            return False
        with httpx.Client(timeout=self._timeout()) as client:
            resp = client.post(url, json={})
        if resp.status_code == 200:
            return True
        if resp.status_code == 400 and "no_text" in resp.text:
            return True
        logger.warning(
            "Slack webhook check failed",
            extra={"status_code": resp.status_code},
        )
        return False

    def test_connection(self) -> ConnectionTestResult:
        if not self.enabled:
            return ConnectionTestResult(success=False, message="slack channel is disabled.")
        context = {"severity": "low", "title": "Connection Test", "issuer": "secmon"}
        try:
            self.send(
                "Security monitor connection test. Slack notifications are working.",
                context,
            )
        except (ChannelSendError, httpx.HTTPError) as e:
            with self._lock:
                self._last_check = (time.monotonic(), False)
            return ConnectionTestResult(success=False, message=f"slack test failed: {e}")
        with self._lock:
            self._last_check = (time.monotonic(), True)
        return ConnectionTestResult(success=True, message="slack test message sent.")

    def build_payload(self, message: str, context: dict[str, Any]) -> dict[str, Any]:
        severity = context.get("severity", "medium")
        title = context.get("title") or "Security Alert"
        return {
            "channel": self.get_config("channel", "#security"),
            "username": self.get_config("username", "Security Monitor Bot"),
            "icon_emoji": self.get_config("icon_emoji", ":warning:"),
            "text": f"🚨 Security alert from {context.get('issuer', 'unknown')}: {title}",
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(severity, SEVERITY_COLORS["medium"]),
                    "title": f"[{str(severity).upper()}] {title}",
                    "title_link": context.get("site_url"),
                    "text": message,
                    "mrkdwn_in": ["text"],
                    "footer": "Security Monitor",
                    "ts": int(time.time()),
                }
            ],
        }

    def send(self, message: str, context: dict[str, Any]) -> bool:
        url = self.get_config("webhook_url")
        if not url:
            raise ChannelSendError("Slack webhook_url is not configured.")
        with httpx.Client(timeout=self._timeout()) as client:
            resp = client.post(url, json=self.build_payload(message, context))
        if resp.status_code == 404:
            raise ChannelSendError("Slack webhook not found (revoked or mistyped URL).", 404)
        if resp.status_code == 429:
            raise ChannelSendError("Slack rate limit exceeded.", 429)
        if resp.status_code >= 400:
            raise ChannelSendError(
                f"Slack webhook error {resp.status_code}: {resp.text[:200]}",
                resp.status_code,
            )
        return True
