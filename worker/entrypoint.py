"""
Worker entrypoint for scheduled jobs (ECS scheduled task / cron container).

Selected by the ``JOB`` environment variable:
    storage_cleanup  - delete temporary media older than STORAGE_RETENTION_HOURS
    send_reminders   - e-mail open action items of every active room

Exits 0 on success, 1 on failure or an unknown job.
All logging is JSON (structlog).
"""

from __future__ import annotations

import os
import sys

from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope
from shared_utils.logging_utils import configure_logging, get_scoped_logger, log_execution
from shared_utils.di_container import get_di_container

logger = get_scoped_logger(LogScope.WORKER)

JOBS = ("storage_cleanup", "send_reminders")


@log_execution(scope=LogScope.WORKER)
def run_storage_cleanup() -> dict:
    settings = get_settings()
    deleted = get_di_container().get_media_store().cleanup(settings.storage_retention_hours)
    return {"deleted": deleted}


@log_execution(scope=LogScope.WORKER)
def run_send_reminders() -> dict:
    report = get_di_container().get_reminder_service().send_reminders()
    return {
        "emails_sent": report.emails_sent,
        "errors": report.errors,
        "rooms_processed": report.rooms_processed,
    }


def main() -> int:
    """Worker main: read JOB, run it, report an exit code."""
    job = os.environ.get("JOB", "").strip().lower()

    if job not in JOBS:
        logger.error("worker_unknown_job", job=job)
        print(f"ERROR: JOB must be one of {', '.join(JOBS)}", file=sys.stderr)
        return 1

    configure_logging(get_settings().log_level)
    logger.info("worker_started", job=job)

    try:
        if job == "storage_cleanup":
            result = run_storage_cleanup()
        else:
            result = run_send_reminders()

        logger.info("worker_completed", job=job, **result)
        return 0

    except Exception as exc:
        logger.error(
            "worker_failed",
            job=job,
            error=str(exc),
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
