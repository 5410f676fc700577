"""
CLI entrypoint that drains the notification queue. Run from cron, e.g.:

  python -m secmon.process_notifications

Every minute: * * * * * cd /path/to/secmon && .venv/bin/python -m secmon.process_notifications
"""

import argparse
import logging
import sys

from secmon.core.config import get_settings
from secmon.core.container import build_services
from secmon.core.database import SessionLocal
from secmon.services.forensics import execution_mode

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Send due security notifications.")
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.NOTIFICATION_BATCH_SIZE,
        help="Maximum tasks to claim in this pass",
    )
    args = parser.parse_args(argv)
    if args.limit < 1:
        parser.error("--limit must be at least 1")

    execution_mode.set("CRON")
    services = build_services(settings, detectors=[])
    db = SessionLocal()
    try:
        services.apply_channel_overrides(db)
        result = services.queue.process_pending(db, limit=args.limit)
        logger.info(
            "Notifications processed: processed=%s success=%s retry=%s failed=%s",
            result.processed,
            result.success,
            result.retry,
            result.failed,
        )
        return 0
    except Exception as e:
        logger.exception("Notification processing failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
