"""Reminder coordinator - keeps at most one live reminder job per appointment.

The reminder fires ``lead_hours`` before the appointment. When that moment is
already past, the Reminder row is still recorded but no job is scheduled
(``provider_ref`` stays NULL).

Callers must hold the appointment row lock; the coordinator does not
serialize concurrent calls for the same appointment itself.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from booking_api.core.clock import Clock, SystemClock, to_utc
from booking_api.core.errors import JobNotFoundError
from booking_api.db.enums import JobType
from booking_api.db.models import Reminder
from booking_api.services.job_scheduler import DelayedJobScheduler

logger = logging.getLogger(__name__)

DEFAULT_LEAD_HOURS = 24


def compute_due_at(scheduled_at: datetime, lead_hours: int = DEFAULT_LEAD_HOURS) -> datetime:
    return to_utc(scheduled_at) - timedelta(hours=lead_hours)


class ReminderCoordinator:
    def __init__(
        self,
        db: Session,
        scheduler: DelayedJobScheduler,
        clock: Clock | None = None,
        lead_hours: int = DEFAULT_LEAD_HOURS,
    ):
        self.db = db
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self.lead_hours = lead_hours

    def get(self, appointment_id: UUID) -> Reminder | None:
        return (
            self.db.query(Reminder)
            .filter(Reminder.appointment_id == appointment_id)
            .first()
        )

    def ensure(self, appointment_id: UUID, scheduled_at: datetime) -> Reminder:
        """Schedule the reminder for ``scheduled_at`` (replacing any existing job)."""
        existing = self.get(appointment_id)
        if existing is not None:
            return self.replace(appointment_id, scheduled_at)
        return self._schedule(Reminder(appointment_id=appointment_id), scheduled_at)

    def replace(self, appointment_id: UUID, new_scheduled_at: datetime) -> Reminder:
        """Cancel the current job (if any) and schedule a fresh one."""
        reminder = self.get(appointment_id)
        if reminder is None:
            return self._schedule(Reminder(appointment_id=appointment_id), new_scheduled_at)
        self._cancel_job(reminder)
        return self._schedule(reminder, new_scheduled_at)

    def remove(self, appointment_id: UUID) -> bool:
        """Cancel the job and delete the reminder. Returns False when none existed."""
        reminder = self.get(appointment_id)
        if reminder is None:
            return False
        self._cancel_job(reminder)
        self.db.delete(reminder)
        self.db.flush()
        logger.info("Reminder removed for appointment=%s", appointment_id)
        return True

    def mark_sent(self, reminder: Reminder, sent_at: datetime | None = None) -> Reminder:
        reminder.sent_at = sent_at or self.clock.now()
        self.db.flush()
        return reminder

    def _schedule(self, reminder: Reminder, scheduled_at: datetime) -> Reminder:
        due_at = compute_due_at(scheduled_at, self.lead_hours)
        delay = due_at - self.clock.now()

        provider_ref = None
        if delay > timedelta(0):
            provider_ref = self.scheduler.schedule(
                JobType.APPOINTMENT_REMINDER,
                {"appointment_id": str(reminder.appointment_id)},
                delay,
            )
        else:
            logger.info(
                "Reminder not scheduled for appointment=%s (due time already passed)",
                reminder.appointment_id,
            )

        reminder.due_at = due_at
        reminder.provider_ref = provider_ref
        reminder.sent_at = None
        if reminder not in self.db:
            self.db.add(reminder)
        self.db.flush()
        return reminder

    def _cancel_job(self, reminder: Reminder) -> None:
        if not reminder.provider_ref:
            return
        try:
            self.scheduler.cancel(reminder.provider_ref)
        except JobNotFoundError:
            # Already fired or purged.
            logger.info(
                "Reminder job %s for appointment=%s no longer pending",
                reminder.provider_ref,
                reminder.appointment_id,
            )
        reminder.provider_ref = None
