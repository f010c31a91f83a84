"""Domain errors for the appointment lifecycle.

Business-rule errors are raised before any write. Routers never catch them
individually; the handlers registered in main.py map them to HTTP responses.
"""


class AppointmentError(Exception):
    """Base class for all lifecycle errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppointmentError):
    status_code = 404


class InvalidTokenError(AppointmentError):
    status_code = 400

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class InvalidStateError(AppointmentError):
    status_code = 409


class InvalidDateError(AppointmentError):
    status_code = 400


class CancellationWindowError(AppointmentError):
    status_code = 400


class SlotLegalityError(AppointmentError):
    status_code = 400


class MissingScheduleError(AppointmentError):
    status_code = 400

    def __init__(self, message: str = "Appointment has no scheduled date yet"):
        super().__init__(message)


class SchedulerError(AppointmentError):
    """Delayed-job scheduling or cancellation failed."""

    status_code = 503


class JobNotFoundError(SchedulerError):
    """No pending job exists for the given reference."""

    status_code = 404


class NotificationError(AppointmentError):
    """Best-effort notification dispatch failed."""

    status_code = 502
