"""
CLI entrypoint for a scheduled detection run. Run from cron, e.g.:

  python -m secmon.run_checks

Every 5 minutes: */5 * * * * cd /path/to/secmon && .venv/bin/python -m secmon.run_checks

Runs all enabled detectors once, then sends due notifications. A run that is
throttled or already in progress elsewhere exits 0 without doing anything.
"""

import argparse
import logging
import sys

from secmon.core.config import get_settings
from secmon.core.container import build_services
from secmon.core.database import SessionLocal
from secmon.core.exceptions import RunInProgressError, RunThrottledError
from secmon.services.forensics import execution_mode

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run security detectors and send notifications.")
    parser.add_argument("--force", action="store_true", help="Ignore the minimum interval between runs")
    parser.add_argument(
        "--skip-notifications",
        action="store_true",
        help="Record issues only; leave queued notifications for process_notifications",
    )
    args = parser.parse_args(argv)

    execution_mode.set("CRON")
    settings = get_settings()
    services = build_services(settings)
    db = SessionLocal()
    try:
        services.apply_channel_overrides(db)
        try:
            report = services.orchestrator.run_once(force=args.force)
        except (RunThrottledError, RunInProgressError) as e:
            logger.info("Run skipped: %s", e.message)
            return 0
        logger.info(
            "Run completed: detectors_run=%s detectors_failed=%s created=%s redetected=%s "
            "suppressed=%s notifications_queued=%s",
            report.detectors_run,
            len(report.detectors_failed),
            report.created,
            report.redetected,
            report.suppressed,
            report.notifications_queued,
        )
        if not args.skip_notifications:
            result = services.queue.process_pending(db, limit=settings.NOTIFICATION_BATCH_SIZE)
            logger.info(
                "Notifications processed: processed=%s success=%s retry=%s failed=%s",
                result.processed,
                result.success,
                result.retry,
                result.failed,
            )
        return 0
    except Exception as e:
        logger.exception("Detection run failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
