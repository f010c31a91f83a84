"""SQLAlchemy ORM models."""

from booking_api.db.models.action_tokens import ActionToken
from booking_api.db.models.appointments import Appointment, Contact, Reminder
from booking_api.db.models.email import EmailLog
from booking_api.db.models.jobs import Job

__all__ = [
    "ActionToken",
    "Appointment",
    "Contact",
    "EmailLog",
    "Job",
    "Reminder",
]
