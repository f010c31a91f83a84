"""Appointment-related enums."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle.

    PENDING -> CONFIRMED | CANCELLED | REJECTED
    CONFIRMED -> RESCHEDULED | CANCELLED | COMPLETED
    RESCHEDULED -> CONFIRMED (client accepts) | CANCELLED (client rejects)
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    COMPLETED = "completed"


TERMINAL_APPOINTMENT_STATUSES = frozenset(
    {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.REJECTED,
        AppointmentStatus.COMPLETED,
    }
)

APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.REJECTED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.RESCHEDULED, AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}
    ),
    AppointmentStatus.RESCHEDULED: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.REJECTED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}


class AppointmentReason(str, Enum):
    """Why the client is booking."""

    INFORMATION = "information"
    QUOTE = "quote"
    FOLLOW_UP = "follow_up"
    OTHER = "other"


class AppointmentEmailType(str, Enum):
    """Types of appointment-related emails."""

    REQUEST_RECEIVED = "request_received"
    ADMIN_NEW_REQUEST = "admin_new_request"
    CONFIRMED = "confirmed"
    RESCHEDULE_PROPOSAL = "reschedule_proposal"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    REMINDER = "reminder"
