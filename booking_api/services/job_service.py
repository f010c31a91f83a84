"""Job service - durable background job scheduling and processing.

Jobs live in the ``jobs`` table, so a delay can outlive any single process.
``schedule_job`` and ``cancel_job`` only flush: they run inside the caller's
transaction. The worker-side ``mark_*`` helpers commit.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from booking_api.core.errors import JobNotFoundError
from booking_api.db.enums import JobStatus, JobType
from booking_api.db.models import Job
from booking_api.types import JsonObject


def _now(now: datetime | None = None) -> datetime:
    return now or datetime.now(timezone.utc)


def _coerce_job_id(job_id: UUID | str) -> UUID | None:
    if isinstance(job_id, UUID):
        return job_id
    try:
        return UUID(str(job_id))
    except (TypeError, ValueError):
        return None


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: JsonObject,
    run_at: datetime | None = None,
    max_attempts: int = 3,
    now: datetime | None = None,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    """
    job = Job(
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or _now(now),
        status=JobStatus.PENDING.value,
        attempts=0,
        max_attempts=max_attempts,
    )
    db.add(job)
    db.flush()
    return job


def cancel_job(db: Session, job_id: UUID | str, now: datetime | None = None) -> Job:
    """
    Cancel a pending job.

    Raises JobNotFoundError if no pending job has this id (already ran,
    already cancelled, or never existed).
    """
    parsed = _coerce_job_id(job_id)
    job = None
    if parsed is not None:
        job = (
            db.query(Job)
            .filter(Job.id == parsed, Job.status == JobStatus.PENDING.value)
            .with_for_update()
            .first()
        )
    if not job:
        raise JobNotFoundError(f"No pending job {job_id}")
    job.status = JobStatus.CANCELLED.value
    job.completed_at = _now(now)
    db.flush()
    return job


def get_pending_jobs(db: Session, limit: int = 10, now: datetime | None = None) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= _now(now),
        )
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def claim_pending_jobs(
    db: Session,
    limit: int = 10,
    job_types: list[JobType] | None = None,
    now: datetime | None = None,
) -> list[Job]:
    """
    Atomically claim due jobs for this worker.

    Uses FOR UPDATE SKIP LOCKED so concurrent workers never claim the same
    row. Claimed jobs are marked running with attempts incremented.
    """
    current = _now(now)
    query = db.query(Job).filter(
        Job.status == JobStatus.PENDING.value,
        Job.run_at <= current,
    )
    if job_types:
        query = query.filter(Job.job_type.in_([t.value for t in job_types]))
    jobs = (
        query.order_by(Job.run_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .all()
    )
    for job in jobs:
        job.status = JobStatus.RUNNING.value
        job.attempts += 1
        job.started_at = current
    db.commit()
    return jobs


def get_job(db: Session, job_id: UUID | str) -> Job | None:
    """Get a job by ID."""
    parsed = _coerce_job_id(job_id)
    if parsed is None:
        return None
    return db.query(Job).filter(Job.id == parsed).first()


def list_jobs(
    db: Session,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    """List jobs with optional filters."""
    query = db.query(Job)
    if status:
        query = query.filter(Job.status == status.value)
    if job_type:
        query = query.filter(Job.job_type == job_type.value)
    return query.order_by(Job.created_at.desc()).limit(limit).all()


def mark_job_completed(db: Session, job: Job, now: datetime | None = None) -> Job:
    """Mark a job as completed."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = _now(now)
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending for retry.
    """
    job.last_error = error
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job


def requeue_stale_jobs(
    db: Session, stale_after_minutes: int = 15, now: datetime | None = None
) -> int:
    """
    Return running jobs abandoned by a dead worker to the queue.

    A job counts as stale once it has been running longer than
    ``stale_after_minutes``. Jobs out of attempts are marked failed.
    """
    cutoff = _now(now) - timedelta(minutes=stale_after_minutes)
    stale = (
        db.query(Job)
        .filter(
            Job.status == JobStatus.RUNNING.value,
            Job.started_at.is_not(None),
            Job.started_at < cutoff,
        )
        .with_for_update(skip_locked=True)
        .all()
    )
    for job in stale:
        job.last_error = "Worker stopped before the job finished"
        if job.attempts < job.max_attempts:
            job.status = JobStatus.PENDING.value
        else:
            job.status = JobStatus.FAILED.value
    db.commit()
    return len(stale)
