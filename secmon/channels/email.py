"""Email delivery over SMTP."""

import smtplib
from email.message import EmailMessage
from typing import Any

from secmon.channels.base import Channel
from secmon.core.exceptions import ChannelSendError

SUBJECT_TITLE_MAX_LENGTH = 80


class EmailChannel(Channel):
    """Config keys: host, port, username, password (secret), use_tls, from_address, to (list), timeout."""

    name = "email"
    message_style = "plain"
    secret_keys = frozenset({"password"})

    def _recipients(self) -> list[str]:
        to = self.get_config("to", [])
        if isinstance(to, str):
            to = [addr.strip() for addr in to.split(",")]
        return [addr for addr in to if addr]

    def _connect(self) -> smtplib.SMTP:
        client = smtplib.SMTP(
            self.get_config("host"),
            int(self.get_config("port", 587)),
            timeout=float(self.get_config("timeout", 10.0)),
        )
        try:
            if self.get_config("use_tls", True):
                client.starttls()
            username = self.get_config("username")
            if username:
                client.login(username, self.get_config("password", ""))
        except (smtplib.SMTPException, OSError):
            client.close()
            raise
        return client

    def check_connection(self) -> bool:
        if not self.get_config("host") or not self.get_config("from_address"):
            return False
        if not self._recipients():
            return False
        client = self._connect()
        try:
            code, _ = client.noop()
        finally:
            client.quit()
        return code == 250

    def build_subject(self, context: dict[str, Any]) -> str:
        severity = str(context.get("severity", "medium")).upper()
        title = str(context.get("title") or "Security issue detected")[:SUBJECT_TITLE_MAX_LENGTH]
        return f"[Security Alert][{severity}] {title}"

    def send(self, message: str, context: dict[str, Any]) -> bool:
        recipients = self._recipients()
        if not self.get_config("host") or not recipients:
            raise ChannelSendError("Email host and recipients must be configured.")
        msg = EmailMessage()
        msg["Subject"] = self.build_subject(context)
        msg["From"] = self.get_config("from_address")
        msg["To"] = ", ".join(recipients)
        msg.set_content(message)
        try:
            client = self._connect()
        except smtplib.SMTPAuthenticationError as e:
            raise ChannelSendError(f"SMTP authentication failed: {e.smtp_code}", e.smtp_code) from e
        try:
            refused = client.send_message(msg)
        finally:
            client.quit()
        if refused:
            raise ChannelSendError(f"SMTP refused recipients: {', '.join(refused)}")
        return True
