"""Delayed-job scheduler interface + the database-backed implementation."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_api.core.clock import Clock, SystemClock
from booking_api.core.errors import JobNotFoundError, SchedulerError
from booking_api.db.enums import JobType
from booking_api.services import job_service
from booking_api.types import JsonObject

logger = logging.getLogger(__name__)


class DelayedJobScheduler(Protocol):
    def schedule(self, job_type: JobType, payload: JsonObject, delay: timedelta) -> str:
        """Schedule a job to run after ``delay``; return its reference."""

    def cancel(self, job_ref: str) -> None:
        """Cancel a pending job. Raises JobNotFoundError if none is pending."""


class DatabaseJobScheduler:
    """Durable scheduler backed by the ``jobs`` table and the polling worker."""

    def __init__(self, db: Session, clock: Clock | None = None, max_attempts: int = 3):
        self.db = db
        self.clock = clock or SystemClock()
        self.max_attempts = max_attempts

    def schedule(self, job_type: JobType, payload: JsonObject, delay: timedelta) -> str:
        run_at = self.clock.now() + max(delay, timedelta(0))
        try:
            job = job_service.schedule_job(
                self.db,
                job_type=job_type,
                payload=payload,
                run_at=run_at,
                max_attempts=self.max_attempts,
                now=self.clock.now(),
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to schedule %s job: %s", job_type.value, type(exc).__name__)
            raise SchedulerError("Could not schedule background job") from exc
        return str(job.id)

    def cancel(self, job_ref: str) -> None:
        try:
            job_service.cancel_job(self.db, job_ref, now=self.clock.now())
        except JobNotFoundError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Failed to cancel job %s: %s", job_ref, type(exc).__name__)
            raise SchedulerError("Could not cancel background job") from exc
