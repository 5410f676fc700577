"""Telegram delivery through the Bot API."""

import logging
from typing import Any

import httpx

from secmon.channels.base import Channel
from secmon.core.exceptions import ChannelSendError

logger = logging.getLogger(__name__)

# Bot API hard limit for message text
MESSAGE_MAX_LENGTH = 4096


class TelegramChannel(Channel):
    """Config keys: bot_token (secret), chat_id, api_base_url, timeout."""

    name = "telegram"
    # Plain text: titles with underscores or brackets break Telegram's Markdown parser.
    message_style = "plain"
    secret_keys = frozenset({"bot_token"})

    def _endpoint(self, method: str) -> str:
        base = self.get_config("api_base_url", "https://api.telegram.org").rstrip("/")
        return f"{base}/bot{self.get_config('bot_token')}/{method}"

    def _timeout(self) -> float:
        return float(self.get_config("timeout", 10.0))

    def check_connection(self) -> bool:
        if not self.get_config("bot_token") or not self.get_config("chat_id"):
            return False
        with httpx.Client(timeout=self._timeout()) as client:
            resp = client.get(self._endpoint("getMe"))
        if resp.status_code != 200:
            logger.warning(
                "Telegram getMe failed",
                extra={"status_code": resp.status_code},
            )
            return False
        return bool(resp.json().get("ok"))

    def send(self, message: str, context: dict[str, Any]) -> bool:
        if not self.get_config("bot_token") or not self.get_config("chat_id"):
            raise ChannelSendError("Telegram bot_token and chat_id must be configured.")
        payload = {
            "chat_id": self.get_config("chat_id"),
            "text": message[:MESSAGE_MAX_LENGTH],
            "disable_web_page_preview": True,
        }
        with httpx.Client(timeout=self._timeout()) as client:
            resp = client.post(self._endpoint("sendMessage"), json=payload)
        if resp.status_code == 401:
            raise ChannelSendError("Telegram authentication failed (invalid bot token).", 401)
        if resp.status_code == 429:
            raise ChannelSendError("Telegram rate limit exceeded.", 429)
        if resp.status_code >= 400:
            try:
                description = resp.json().get("description", "")
            except ValueError:
                description = resp.text[:200]
            raise ChannelSendError(
                f"Telegram API error {resp.status_code}: {description}",
                resp.status_code,
            )
        return bool(resp.json().get("ok"))
