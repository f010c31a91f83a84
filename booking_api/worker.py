"""
Background worker for processing scheduled jobs.

Usage:
    python -m booking_api.worker

The worker polls the jobs table for due work (emails, appointment reminders)
and processes it. Run it as a separate long-lived process. Because jobs are
rows in the database, scheduled reminders survive restarts of both the API
and the worker.
"""

import asyncio
import logging

from sqlalchemy.orm import Session

from booking_api.core.config import settings
from booking_api.core.structured_logging import build_log_context
from booking_api.db.enums import JobType
from booking_api.db.session import SessionLocal
from booking_api.jobs.registry import resolve_job_handler
from booking_api.jobs.utils import coerce_uuid
from booking_api.services import email_service, job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL
BATCH_SIZE = settings.WORKER_BATCH_SIZE
STALE_JOB_MINUTES = settings.WORKER_STALE_JOB_MINUTES


async def process_job(db: Session, job) -> None:
    """Process a single job based on its type."""
    logger.info("Processing job %s (type=%s, attempt=%s)", job.id, job.job_type, job.attempts)
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


def _mark_email_failed(db: Session, job, error: str) -> None:
    if job.job_type != JobType.SEND_EMAIL.value:
        return
    email_log_id = coerce_uuid((job.payload or {}).get("email_log_id"))
    if not email_log_id:
        return
    email_log = email_service.get_email_log(db, email_log_id)
    if email_log:
        email_service.mark_email_failed(db, email_log, error)


async def run_batch(db: Session, limit: int = BATCH_SIZE) -> int:
    """Claim and process one batch of due jobs. Returns the number processed."""
    jobs = job_service.claim_pending_jobs(db, limit=limit)
    if jobs:
        logger.info("Claimed %s pending jobs", len(jobs))

    for job in jobs:
        try:
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
                extra=build_log_context(job_id=str(job.id), route="worker", method="background"),
            )
            _mark_email_failed(db, job, error_msg)
    return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)", POLL_INTERVAL_SECONDS, BATCH_SIZE
    )

    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")

    while True:
        with SessionLocal() as db:
            try:
                requeued = job_service.requeue_stale_jobs(db, STALE_JOB_MINUTES)
                if requeued:
                    logger.warning("Requeued %s stale running jobs", requeued)
                await run_batch(db)
            except Exception:
                db.rollback()
                logger.exception("Error in worker loop")

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
