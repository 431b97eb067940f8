"""
Background worker for processing scheduled jobs.

Usage:
    python -m aris.worker

The worker polls for pending jobs and processes them.
For production, run this as a separate process (e.g., systemd service, Docker container).
"""

import asyncio
import logging
import os

from aris.core.structured_logging import build_log_context
from aris.db.enums import JobType, NotificationType
from aris.db.session import SessionLocal
from aris.jobs.registry import resolve_job_handler
from aris.services import job_service, notification_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Worker configuration
POLL_INTERVAL_SECONDS = int(os.getenv("WORKER_POLL_INTERVAL", "10"))
BATCH_SIZE = int(os.getenv("WORKER_BATCH_SIZE", "10"))


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)", job.id, job.job_type, job.attempts
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


def _record_job_failure(db, job, error_msg: str) -> None:
    """Tell org admins once a sync job has used up its attempts."""
    if job.attempts < job.max_attempts:
        return

    if job.job_type == JobType.METAKOCKA_SYNC.value:
        entity = (job.payload or {}).get("entity") or "unknown"
        notification_service.notify_metakocka_sync_failed(db, job.organization_id, entity, error_msg)
    elif job.job_type == JobType.EMAIL_SYNC.value:
        notification_service.notify_org_admins(
            db=db,
            org_id=job.organization_id,
            type=NotificationType.EMAIL_SYNC_FAILED,
            title="Email sync failed",
            message=error_msg[:500],
            details={"job_id": str(job.id)},
            dedupe_key=f"email_sync_failed:{job.id}",
        )


async def run_pending_jobs(db, limit: int = BATCH_SIZE) -> int:
    """Run one batch of due jobs. Returns the number picked up."""
    jobs = job_service.get_pending_jobs(db, limit=limit)
    if jobs:
        logger.info("Found %s pending jobs", len(jobs))

    for job in jobs:
        try:
            job_service.mark_job_running(db, job)
            await process_job(db, job)
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job.id)
        except Exception as e:
            db.rollback()
            error_msg = str(e) or type(e).__name__
            job_service.mark_job_failed(db, job, error_msg)
            logger.error(
                "Job %s failed: %s",
                job.id,
                type(e).__name__,
                extra=build_log_context(job_id=job.id, org_id=job.organization_id, route=job.job_type),
            )
            _record_job_failure(db, job, error_msg)
    return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)", POLL_INTERVAL_SECONDS, BATCH_SIZE
    )

    while True:
        with SessionLocal() as db:
            try:
                await run_pending_jobs(db)
            except Exception as e:
                logger.error("Error in worker loop: %s", e)

        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(route="worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
