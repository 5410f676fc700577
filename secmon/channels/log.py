"""Local alert log: one JSON line per alert in a size-rotated file."""

import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from typing import Any

from secmon.channels.base import Channel

SEVERITY_LEVELS = {
    "critical": logging.CRITICAL,
    "high": logging.ERROR,
    "medium": logging.WARNING,
    "low": logging.INFO,
}


class LogChannel(Channel):
    """Config keys: path, max_bytes, backup_count."""

    name = "log"
    message_style = "plain"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self._handler: logging.handlers.RotatingFileHandler | None = None
        # One non-propagating logger per channel name; alerts never reach the application's handlers.
        self._alert_logger = logging.getLogger(f"{__name__}.alerts.{self.name}")
        self._alert_logger.propagate = False
        self._alert_logger.setLevel(logging.INFO)
        super().__init__(config)

    def configure(self, options: dict[str, Any]) -> None:
        super().configure(options)
        self.close()

    def close(self) -> None:
        """Detach and close every handler on the alert logger."""
        with self._lock:
            for handler in list(self._alert_logger.handlers):
                self._alert_logger.removeHandler(handler)
                handler.close()
            self._handler = None

    def _path(self) -> str:
        return self.get_config("path", "logs/security-alerts.log")

    def _ensure_handler(self) -> logging.handlers.RotatingFileHandler:
        with self._lock:
            if self._handler is None:
                # A previous instance with the same name may still hold a handler
                for stale in list(self._alert_logger.handlers):
                    self._alert_logger.removeHandler(stale)
                    stale.close()
                directory = os.path.dirname(os.path.abspath(self._path()))
                os.makedirs(directory, exist_ok=True)
                handler = logging.handlers.RotatingFileHandler(
                    self._path(),
                    maxBytes=int(self.get_config("max_bytes", 10 * 1024 * 1024)),
                    backupCount=int(self.get_config("backup_count", 5)),
                    encoding="utf-8",
                )
                handler.setFormatter(logging.Formatter("%(message)s"))
                self._alert_logger.addHandler(handler)
                self._handler = handler
            return self._handler

    def check_connection(self) -> bool:
        path = os.path.abspath(self._path())
        directory = os.path.dirname(path)
        if os.path.isdir(directory):
            return os.access(directory, os.W_OK)
        parent = directory
        while parent and not os.path.isdir(parent):
            next_parent = os.path.dirname(parent)
            if next_parent == parent:
                return False
            parent = next_parent
        return os.access(parent, os.W_OK)

    def send(self, message: str, context: dict[str, Any]) -> bool:
        self._ensure_handler()
        severity = str(context.get("severity", "medium"))
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(SEVERITY_LEVELS.get(severity, logging.WARNING)),
            "issuer": context.get("issuer"),
            "issue_id": context.get("issue_id"),
            "severity": severity,
            "title": context.get("title"),
            "message": message,
        }
        self._alert_logger.log(
            SEVERITY_LEVELS.get(severity, logging.WARNING),
            json.dumps(entry, ensure_ascii=False, default=str),
        )
        return True
