"""
CLI entrypoint for the data retention job. Run from cron, e.g.:

  python -m secmon.retention

Or daily: 30 3 * * * cd /path/to/secmon && .venv/bin/python -m secmon.retention
"""

import logging
import sys

from secmon.core.config import get_settings
from secmon.core.container import build_services
from secmon.core.database import SessionLocal
from secmon.services.retention import run_retention

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Purge closed issues, expired rules and finished notification tasks."""
    settings = get_settings()
    services = build_services(settings, detectors=[])
    db = SessionLocal()
    try:
        result = run_retention(db, settings, queue=services.queue)
        logger.info(
            "Retention completed: issues_deleted=%s rules_deleted=%s tasks_deleted=%s",
            result.issues_deleted,
            result.rules_deleted,
            result.tasks_deleted,
        )
        return 0
    except Exception as e:
        logger.exception("Retention job failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
