"""Enum definitions for application constants."""

from booking_api.db.enums.action_tokens import ActionTokenAction, ActionTokenEntity
from booking_api.db.enums.appointments import (
    APPOINTMENT_TRANSITIONS,
    TERMINAL_APPOINTMENT_STATUSES,
    AppointmentEmailType,
    AppointmentReason,
    AppointmentStatus,
)
from booking_api.db.enums.email import DEFAULT_EMAIL_STATUS, EmailSentBy, EmailStatus
from booking_api.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType

__all__ = [
    "APPOINTMENT_TRANSITIONS",
    "ActionTokenAction",
    "ActionTokenEntity",
    "AppointmentEmailType",
    "AppointmentReason",
    "AppointmentStatus",
    "DEFAULT_EMAIL_STATUS",
    "DEFAULT_JOB_STATUS",
    "EmailSentBy",
    "EmailStatus",
    "JobStatus",
    "JobType",
    "TERMINAL_APPOINTMENT_STATUSES",
]
