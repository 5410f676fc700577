"""
Channel contract and registry.

A channel delivers one formatted alert to one backend. is_available() combines the
administrative enable flag with a live connectivity/configuration check; the check
result is cached for connection_check_ttl seconds so a batch of sends does not re-check
the backend once per task.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

from secmon.core.exceptions import ChannelNotFoundError
from secmon.schemas.channels import ChannelInfo, ConnectionTestResult
from secmon.services.formatting import MessageStyle

logger = logging.getLogger(__name__)

MASK = "********"


class Channel(ABC):
    """
    Base class for delivery backends.

    Subclasses set name, declare which config keys are secrets, and implement
    check_connection() and send().
    """

    name: str = ""
    message_style: MessageStyle = "markdown"
    secret_keys: frozenset[str] = frozenset()
    connection_check_ttl: float = 60.0

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config: dict[str, Any] = {}
        self.enabled = False
        self._lock = threading.Lock()
        self._last_check: tuple[float, bool] | None = None
        if config:
            self.configure(config)

    def configure(self, options: dict[str, Any]) -> None:
        """Merge options into the current config; an 'enabled' key sets the enable flag."""
        with self._lock:
            self.config.update({k: v for k, v in options.items() if k != "enabled"})
            if "enabled" in options:
                self.enabled = bool(options["enabled"])
            self._last_check = None

    def get_config(self, key: str, default: Any = None) -> Any:
        value = self.config.get(key)
        return default if value is None or value == "" else value

    def is_available(self) -> bool:
        if not self.enabled:
            return False
        with self._lock:
            cached = self._last_check
        if cached is not None and time.monotonic() - cached[0] < self.connection_check_ttl:
            return cached[1]
        try:
            ok = self.check_connection()
        except Exception as e:
            logger.warning(
                "Channel connection check failed",
                extra={"channel": self.name, "error": str(e)[:200]},
            )
            ok = False
        with self._lock:
            self._last_check = (time.monotonic(), ok)
        return ok

    @abstractmethod
    def check_connection(self) -> bool:
        """Configuration and connectivity check. May raise; treated as unavailable."""

    @abstractmethod
    def send(self, message: str, context: dict[str, Any]) -> bool:
        """Deliver one message. False or an exception means the attempt failed."""

    def test_connection(self) -> ConnectionTestResult:
        """Operator diagnostic; bypasses the availability cache."""
        if not self.enabled:
            return ConnectionTestResult(success=False, message=f"{self.name} channel is disabled.")
        try:
            ok = self.check_connection()
        except Exception as e:
            return ConnectionTestResult(success=False, message=f"{self.name} test failed: {e}")
        with self._lock:
            self._last_check = (time.monotonic(), ok)
        if ok:
            return ConnectionTestResult(success=True, message=f"{self.name} connection OK.")
        return ConnectionTestResult(
            success=False,
            message=f"{self.name} connection failed. Check the channel configuration.",
        )

    def public_config(self) -> dict[str, Any]:
        """Config with secret values masked, for the admin API."""
        return {
            key: (MASK if key in self.secret_keys and value else value)
            for key, value in self.config.items()
        }

    def info(self) -> ChannelInfo:
        return ChannelInfo(name=self.name, enabled=self.enabled, config=self.public_config())


class ChannelRegistry:
    """Channels by name, in registration order."""

    def __init__(self, channels: list[Channel] | None = None) -> None:
        self._channels: dict[str, Channel] = {}
        for channel in channels or []:
            self.register(channel)

    def register(self, channel: Channel) -> None:
        if not channel.name:
            raise ValueError(f"{type(channel).__name__} has no name")
        self._channels[channel.name] = channel

    def get(self, name: str) -> Channel | None:
        return self._channels.get(name)

    def require(self, name: str) -> Channel:
        channel = self.get(name)
        if channel is None:
            raise ChannelNotFoundError(name)
        return channel

    def all(self) -> list[Channel]:
        return list(self._channels.values())

    def enabled(self) -> list[Channel]:
        return [c for c in self._channels.values() if c.enabled]

    def names(self) -> list[str]:
        return list(self._channels)
