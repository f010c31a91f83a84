"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from booking_api.db.enums import JobType
from booking_api.jobs.handlers import email, reminders

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.SEND_EMAIL.value: email.process_send_email,
    JobType.APPOINTMENT_REMINDER.value: reminders.process_appointment_reminder,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
