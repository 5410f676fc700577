"""Service wiring: builds the ledger, queue, channels and orchestrator from settings."""

import importlib
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from secmon.channels.base import Channel, ChannelRegistry
from secmon.channels.email import EmailChannel
from secmon.channels.log import LogChannel
from secmon.channels.slack import SlackChannel
from secmon.channels.telegram import TelegramChannel
from secmon.detectors.base import Detector
from secmon.services.dispatch import NotificationQueue
from secmon.services.fingerprint import Fingerprinter
from secmon.services.forensics import ForensicCollector
from secmon.services.ignore_rules import IgnoreRuleMatcher
from secmon.services.ledger import IssueLedger
from secmon.services.options import OptionStore
from secmon.services.orchestrator import DetectionOrchestrator
from secmon.services.run_guard import RunGuard

if TYPE_CHECKING:
    from secmon.core.config import Settings

logger = logging.getLogger(__name__)


def _secret(value) -> str | None:
    return value.get_secret_value() if value is not None else None


def build_channels(settings: "Settings") -> list[Channel]:
    """Channels configured from environment settings, in delivery order."""
    timeout = settings.CHANNEL_SEND_TIMEOUT_SEC
    return [
        SlackChannel(
            {
                "enabled": settings.SLACK_ENABLED,
                "webhook_url": _secret(settings.SLACK_WEBHOOK_URL),
                "channel": settings.SLACK_CHANNEL,
                "username": settings.SLACK_USERNAME,
                "icon_emoji": settings.SLACK_ICON_EMOJI,
                "timeout": timeout,
            }
        ),
        TelegramChannel(
            {
                "enabled": settings.TELEGRAM_ENABLED,
                "bot_token": _secret(settings.TELEGRAM_BOT_TOKEN),
                "chat_id": settings.TELEGRAM_CHAT_ID,
                "api_base_url": settings.TELEGRAM_API_BASE_URL,
                "timeout": timeout,
            }
        ),
        EmailChannel(
            {
                "enabled": settings.EMAIL_ENABLED,
                "host": settings.SMTP_HOST,
                "port": settings.SMTP_PORT,
                "username": settings.SMTP_USERNAME,
                "password": _secret(settings.SMTP_PASSWORD),
                "use_tls": settings.SMTP_USE_TLS,
                "from_address": settings.EMAIL_FROM,
                "to": list(settings.EMAIL_TO),
                "timeout": timeout,
            }
        ),
        LogChannel(
            {
                "enabled": settings.LOG_CHANNEL_ENABLED,
                "path": settings.LOG_CHANNEL_PATH,
                "max_bytes": settings.LOG_CHANNEL_MAX_BYTES,
                "backup_count": settings.LOG_CHANNEL_BACKUP_COUNT,
            }
        ),
    ]


def load_detectors(paths: Iterable[str]) -> list[Detector]:
    """Instantiate detector classes named as 'package.module:ClassName'."""
    detectors = []
    for path in paths:
        module_name, _, class_name = path.partition(":")
        module = importlib.import_module(module_name)
        cls = getattr(module, class_name)
        if not (isinstance(cls, type) and issubclass(cls, Detector)):
            raise TypeError(f"{path} is not a Detector subclass")
        detectors.append(cls())
    return detectors


class Services:
    """Constructed services for one process; passed to entry points and API dependencies."""

    def __init__(
        self,
        settings: "Settings",
        ledger: IssueLedger,
        queue: NotificationQueue,
        registry: ChannelRegistry,
        options: OptionStore,
        collector: ForensicCollector,
        orchestrator: DetectionOrchestrator,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self.queue = queue
        self.registry = registry
        self.options = options
        self.collector = collector
        self.orchestrator = orchestrator
        self._channel_defaults = {
            channel.name: {**channel.config, "enabled": channel.enabled}
            for channel in registry.all()
        }

    def apply_channel_overrides(self, session: Session, channel_name: str | None = None) -> None:
        """
        Layer stored channel options (admin edits) over the environment config.
        Keys removed from the stored override fall back to their environment value.
        """
        channels = [self.registry.require(channel_name)] if channel_name else self.registry.all()
        for channel in channels:
            overrides = self.options.get_channel_config(session, channel.name)
            channel.configure({**self._channel_defaults.get(channel.name, {}), **overrides})


def build_services(
    settings: "Settings",
    session_factory: Callable[[], Session] | None = None,
    detectors: Iterable[Detector] | None = None,
    channels: Iterable[Channel] | None = None,
) -> Services:
    """
    Wire all services. session_factory defaults to the application SessionLocal;
    detectors default to settings.DETECTORS and channels to the four built-in adapters.
    """
    if session_factory is None:
        from secmon.core.database import SessionLocal

        session_factory = SessionLocal

    internal_paths = settings.INTERNAL_PATH_PREFIXES or None
    fingerprinter = Fingerprinter(internal_paths=internal_paths)
    ledger = IssueLedger(fingerprinter=fingerprinter, matcher=IgnoreRuleMatcher())
    registry = ChannelRegistry(list(channels) if channels is not None else build_channels(settings))
    queue = NotificationQueue(
        registry,
        site_name=settings.SITE_NAME,
        site_url=settings.SITE_URL,
        max_retries=settings.NOTIFICATION_MAX_RETRIES,
        backoff_base_sec=settings.NOTIFICATION_BACKOFF_BASE_SEC,
        backoff_max_sec=settings.NOTIFICATION_BACKOFF_MAX_SEC,
        claim_timeout_sec=settings.NOTIFICATION_CLAIM_TIMEOUT_SEC,
        send_timeout_sec=settings.CHANNEL_SEND_TIMEOUT_SEC,
        workers=settings.NOTIFICATION_WORKERS,
    )
    options = OptionStore()
    collector = ForensicCollector(
        app_root=settings.APP_ROOT or None,
        internal_paths=internal_paths,
        debug=settings.DEBUG,
    )
    orchestrator = DetectionOrchestrator(
        session_factory=session_factory,
        ledger=ledger,
        queue=queue,
        collector=collector,
        detectors=detectors if detectors is not None else load_detectors(settings.DETECTORS),
        run_guard=RunGuard(
            session_factory,
            min_interval_sec=settings.ORCHESTRATOR_MIN_INTERVAL_SEC,
            lock_ttl_sec=settings.ORCHESTRATOR_LOCK_TTL_SEC,
        ),
        options=options,
        record_detector_errors=settings.RECORD_DETECTOR_ERRORS,
    )
    return Services(
        settings=settings,
        ledger=ledger,
        queue=queue,
        registry=registry,
        options=options,
        collector=collector,
        orchestrator=orchestrator,
    )
